# Overview: Pytest coverage for the stock change accumulator and set expansion.

"""
Stock Ledger Tests

Covers joint validation of staged deltas, set expansion, restoration from
transaction item snapshots and the clamped commit.
"""

import pytest
from campus_store.extensions import db
from campus_store.models import Product, TransactionItem, TransactionItemComponent
from campus_store.services.stock_ledger_service import (
    StockChangeAccumulator,
    InsufficientStockError,
    InvalidSetConfigurationError,
    apply_stock_changes,
    expand_set,
    set_availability,
)


class TestStageAndCommit:
    """Simple products."""

    def test_insufficient_stock_reports_required_and_available(self, db_session, make_product):
        product = make_product(name="Ballpen", stock=5)
        acc = StockChangeAccumulator()

        with pytest.raises(InsufficientStockError) as exc:
            acc.stage_line(product, -6)

        assert exc.value.details == {
            "product_id": product.id,
            "product_name": "Ballpen",
            "required": 6,
            "available": 5,
        }
        assert db.session.get(Product, product.id).stock == 5

    def test_projected_stock_includes_staged_deltas(self, db_session, make_product):
        product = make_product(stock=10)
        acc = StockChangeAccumulator()
        acc.stage(product, -3)
        acc.stage(product, -4)

        assert acc.projected_stock(product) == 3
        assert acc.staged_delta(product.id) == -7
        # Persisted stock untouched until commit
        assert product.stock == 10

    def test_second_line_validated_against_projection(self, db_session, make_product):
        product = make_product(stock=5)
        acc = StockChangeAccumulator()
        acc.stage(product, -3)

        with pytest.raises(InsufficientStockError) as exc:
            acc.stage(product, -3)
        assert exc.value.available == 2

    def test_commit_writes_and_returns_new_stock(self, db_session, make_product):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=4)
        acc = StockChangeAccumulator()
        acc.stage(a, -2)
        acc.stage(b, 3)

        result = acc.commit()

        assert result == {a.id: 8, b.id: 7}
        assert a.stock == 8
        assert b.stock == 7

    def test_commit_clamps_at_zero(self, db_session, make_product):
        product = make_product(stock=5)
        acc = StockChangeAccumulator()
        acc.stage(product, -5)
        # Concurrent writer lowered stock after validation
        product.stock = 2

        acc.commit()
        assert product.stock == 0

    def test_accumulator_is_single_use(self, db_session, make_product):
        product = make_product(stock=5)
        acc = StockChangeAccumulator()
        acc.stage(product, -1)
        acc.commit()

        with pytest.raises(RuntimeError):
            acc.stage(product, -1)

    def test_discard_writes_nothing(self, db_session, make_product):
        product = make_product(stock=5)
        acc = StockChangeAccumulator()
        acc.stage(product, -5)
        acc.discard()

        assert product.stock == 5
        assert acc.deltas == {}


class TestSetExpansion:
    """Set products fan out into their components."""

    def test_expand_set_multiplies_quantities(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=20)
        pad = make_product(name="Pad", stock=20)
        kit = make_set("Starter Kit", [(pen, 2), (pad, 1)])

        reqs = expand_set(kit, 3)

        assert [(r.product.id, r.per_set_quantity, r.quantity) for r in reqs] == [
            (pen.id, 2, 6),
            (pad.id, 1, 3),
        ]

    def test_set_needs_more_components_than_available(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=3)
        kit = make_set("Pen Pack", [(pen, 4)])
        acc = StockChangeAccumulator()

        with pytest.raises(InsufficientStockError) as exc:
            acc.stage_line(kit, -1)

        assert exc.value.details["product_id"] == pen.id
        assert exc.value.details["required"] == 4
        assert exc.value.details["available"] == 3

    def test_loose_component_and_set_validated_jointly(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=3)
        kit = make_set("Pen Pair", [(pen, 2)])
        acc = StockChangeAccumulator()

        acc.stage_line(pen, -1)
        acc.stage_line(kit, -1)
        acc.commit()

        assert pen.stock == 0
        assert kit.stock == 0

    def test_loose_component_and_set_oversell_rejected(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=2)
        kit = make_set("Pen Pair", [(pen, 2)])
        acc = StockChangeAccumulator()
        acc.stage_line(pen, -1)

        with pytest.raises(InsufficientStockError):
            acc.stage_line(kit, -1)

    def test_set_without_components_is_invalid(self, db_session):
        empty = Product(name="Empty Set", stock=0, price_cents=0, is_set=True)
        db_session.add(empty)
        db_session.commit()

        with pytest.raises(InvalidSetConfigurationError):
            StockChangeAccumulator().stage_line(empty, -1)

    def test_missing_component_is_invalid(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=5)
        kit = make_set("Pen Pair", [(pen, 2)])
        pen_id = pen.id
        db_session.delete(pen)
        db_session.commit()

        with pytest.raises(InvalidSetConfigurationError) as exc:
            StockChangeAccumulator().stage_line(kit, -1)
        assert exc.value.details["component_product_id"] == pen_id

    def test_not_taken_component_is_not_deducted(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=5)
        pad = make_product(name="Pad", stock=0)
        kit = make_set("Kit", [(pen, 1), (pad, 1)])
        acc = StockChangeAccumulator()

        reqs = acc.stage_line(kit, -1, not_taken={pad.id: "Out of stock"})
        acc.commit()

        assert pen.stock == 4
        assert pad.stock == 0
        skipped = [r for r in reqs if not r.taken]
        assert len(skipped) == 1
        assert skipped[0].reason == "Out of stock"

    def test_set_availability_is_min_over_components(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=7)
        pad = make_product(name="Pad", stock=10)
        kit = make_set("Kit", [(pen, 2), (pad, 3)])

        assert set_availability(kit) == 3


class TestRestoration:
    """Reversal of persisted transaction items."""

    def test_restores_set_from_component_snapshot(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=0)
        pad = make_product(name="Pad", stock=0)
        kit = make_set("Kit", [(pen, 1)])

        item = TransactionItem(product_id=kit.id, name="Kit", quantity=2, price_cents=0,
                               total_cents=0, is_set=True)
        item.set_components.append(TransactionItemComponent(product_id=pen.id, name="Pen", quantity=2, taken=True))
        item.set_components.append(TransactionItemComponent(product_id=pad.id, name="Pad", quantity=2, taken=False))

        acc = StockChangeAccumulator()
        acc.stage_restoration(item)
        acc.commit()

        assert pen.stock == 2
        assert pad.stock == 0

    def test_restoration_skips_deleted_products(self, db_session):
        item = TransactionItem(product_id=None, name="Gone", quantity=3, price_cents=0,
                               total_cents=0, is_set=False)
        acc = StockChangeAccumulator()
        acc.stage_restoration(item)

        assert acc.commit() == {}

    def test_apply_stock_changes(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=10)
        kit = make_set("Pen Pair", [(pen, 2)])

        result = apply_stock_changes([(pen, -1), (kit, -2)])

        assert result == {pen.id: 5}

    def test_apply_stock_changes_is_all_or_nothing(self, db_session, make_product):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=1)

        with pytest.raises(InsufficientStockError):
            apply_stock_changes([(a, -5), (b, -2)])

        assert a.stock == 10
        assert b.stock == 1

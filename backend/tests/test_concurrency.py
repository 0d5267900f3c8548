# Overview: Pytest coverage for row versioning and the retry helper.

"""
Concurrency Tests

A product row changed by another writer between our read and our write
fails the versioned UPDATE with StaleDataError. run_with_retry rolls back,
so the next attempt re-reads the row and validates against the new stock.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError
from campus_store.extensions import db
from campus_store.models import Product, Transaction
from campus_store.services import transaction_service
from campus_store.services.concurrency import run_with_retry
from campus_store.services.stock_ledger_service import InsufficientStockError


def _bump_behind_session(db_session, product, stock):
    """Simulate another writer: change stock and version without touching our loaded copy."""
    db_session.execute(
        text("UPDATE products SET stock = :stock, version_id = version_id + 1 WHERE id = :id"),
        {"stock": stock, "id": product.id},
    )
    db_session.commit()


class TestRunWithRetry:

    def test_stale_write_is_retried(self, db_session):
        calls = []

        def _op():
            calls.append(len(calls))
            if len(calls) == 1:
                raise StaleDataError("row changed")
            return "done"

        assert run_with_retry(_op, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 2

    def test_gives_up_after_last_attempt(self, db_session):
        calls = []

        def _op():
            calls.append(len(calls))
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(_op, attempts=2, backoff_base=0)
        assert len(calls) == 2

    def test_other_errors_are_not_retried(self, db_session):
        calls = []

        def _op():
            calls.append(len(calls))
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            run_with_retry(_op, attempts=3, backoff_base=0)
        assert len(calls) == 1

    def test_attempts_default_from_config(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, 'RETRY_ATTEMPTS', 4)
        calls = []

        def _op():
            calls.append(len(calls))
            raise StaleDataError("row changed")

        with pytest.raises(StaleDataError):
            run_with_retry(_op, backoff_base=0)
        assert len(calls) == 4


class TestStaleProductRow:
    """A sale against a product row that moved after it was loaded."""

    @pytest.fixture
    def stale_session(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, 'RETRY_ATTEMPTS', 3)
        # Keep loaded attributes across commit so the bump stays invisible
        monkeypatch.setattr(db.session(), 'expire_on_commit', False)
        return db_session

    def test_version_id_increments_on_stock_write(self, db_session, make_product):
        notebook = make_product(stock=10)
        version = notebook.version_id

        notebook.stock = 9
        db_session.commit()

        assert notebook.version_id == version + 1

    def test_sale_revalidates_against_fresh_stock(self, stale_session, student, make_product):
        notebook = make_product(name="Notebook", stock=5)
        assert notebook.stock == 5
        _bump_behind_session(stale_session, notebook, 3)
        assert notebook.stock == 5

        with pytest.raises(InsufficientStockError) as exc:
            transaction_service.create_transaction(
                student_id=student.id,
                items=[{"product_id": notebook.id, "quantity": 4, "price_cents": 2500}],
            )
        stale_session.rollback()

        assert exc.value.available == 3
        assert db.session.get(Product, notebook.id).stock == 3
        assert stale_session.query(Transaction).count() == 0

    def test_sale_applies_to_fresh_stock(self, stale_session, student, make_product):
        notebook = make_product(name="Notebook", stock=5)
        assert notebook.stock == 5
        _bump_behind_session(stale_session, notebook, 3)

        transaction_service.create_transaction(
            student_id=student.id,
            items=[{"product_id": notebook.id, "quantity": 2, "price_cents": 2500}],
        )
        stale_session.commit()

        assert db.session.get(Product, notebook.id).stock == 1
        assert stale_session.query(Transaction).count() == 1

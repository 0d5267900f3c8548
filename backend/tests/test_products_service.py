# Overview: Pytest coverage for the product catalog service.

import pytest
from campus_store.extensions import db
from campus_store.models import AuditLog, BranchStock, Product, ProductSetItem, StockTransfer, Student
from campus_store.services import audit_log_service, products_service, transfer_service
from campus_store.validation import ValidationError, NotFoundError


class TestCreateProduct:
    """Catalog creation and validation."""

    def test_create_simple_product(self, db_session):
        product = products_service.create_product({
            "name": "Scientific Calculator",
            "price_cents": 89500,
            "stock": 12,
            "for_course": "BSCE",
            "years": [2, 1, 2, 11],
        })
        db_session.commit()

        assert product.id is not None
        assert product.years == [1, 2]
        assert product.legacy_year == 1
        assert product.last_price_updated is not None
        data = product.to_dict()
        assert data["available_quantity"] == 12
        assert data["year"] == 1

    def test_legacy_year_zero_means_all_years(self, db_session):
        product = products_service.create_product({"name": "ID Lace", "year": 0})
        db_session.commit()
        assert product.years == []
        assert product.to_dict()["year"] == 0

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            products_service.create_product({"price_cents": 100})

    def test_negative_and_fractional_numbers_rejected(self, db_session):
        with pytest.raises(ValidationError):
            products_service.create_product({"name": "Pen", "stock": -1})
        with pytest.raises(ValidationError):
            products_service.create_product({"name": "Pen", "price_cents": 10.5})

    def test_unknown_field_rejected(self, db_session):
        with pytest.raises(ValidationError):
            products_service.create_product({"name": "Pen", "sku": "X"})

    def test_zero_price_allowed(self, db_session):
        product = products_service.create_product({"name": "Free Flyer", "price_cents": 0})
        assert product.price_cents == 0

    def test_set_product_holds_no_stock(self, db_session, make_product):
        pen = make_product(name="Pen", stock=7)
        pad = make_product(name="Pad", stock=10)

        kit = products_service.create_product({
            "name": "Kit",
            "is_set": True,
            "stock": 50,
            "set_items": [{"product_id": pen.id, "quantity": 2}, {"product_id": pad.id, "quantity": 3}],
        })
        db_session.commit()

        assert kit.stock == 0
        assert [(i.component_product_id, i.quantity) for i in kit.set_items] == [(pen.id, 2), (pad.id, 3)]
        assert kit.to_dict()["available_quantity"] == 3

    def test_set_requires_valid_components(self, db_session, make_product, make_set):
        pen = make_product(name="Pen")
        kit = make_set("Kit", [(pen, 1)])

        with pytest.raises(ValidationError):
            products_service.create_product({"name": "Empty", "is_set": True, "set_items": []})
        with pytest.raises(NotFoundError):
            products_service.create_product({"name": "Ghost", "is_set": True, "set_items": [{"product_id": 9999}]})
        with pytest.raises(ValidationError):
            products_service.create_product({"name": "Nested", "is_set": True, "set_items": [{"product_id": kit.id}]})


class TestUpdateProduct:
    """Partial updates, price history and set reconfiguration."""

    def test_price_change_records_previous_price(self, db_session, make_product):
        product = make_product(price_cents=2500)

        products_service.update_product(product.id, {"price_cents": 3000, "updated_by": "admin"})
        db_session.commit()

        assert product.price_cents == 3000
        assert [(h.price_cents, h.updated_by) for h in product.price_history] == [(2500, "admin")]

    def test_same_price_records_nothing(self, db_session, make_product):
        product = make_product(price_cents=2500)
        products_service.update_product(product.id, {"price_cents": 2500, "remarks": "restocked"})
        db_session.commit()

        assert product.price_history == []
        assert product.remarks == "restocked"

    def test_update_years(self, db_session, make_product):
        product = make_product(years=(1, 2))
        products_service.update_product(product.id, {"years": [3]})
        db_session.commit()
        assert product.years == [3]

    def test_set_cannot_contain_itself(self, db_session, make_product, make_set):
        pen = make_product(name="Pen")
        kit = make_set("Kit", [(pen, 1)])
        with pytest.raises(ValidationError):
            products_service.update_product(kit.id, {"set_items": [{"product_id": kit.id, "quantity": 1}]})

    def test_component_cannot_become_a_set(self, db_session, make_product, make_set):
        pen = make_product(name="Pen", stock=10)
        pad = make_product(name="Pad", stock=10)
        make_set("Writing Kit", [(pen, 1), (pad, 1)])

        with pytest.raises(ValidationError) as exc:
            products_service.update_product(pen.id, {
                "is_set": True,
                "set_items": [{"product_id": pad.id, "quantity": 1}],
            })
        db_session.rollback()

        assert "Writing Kit" in str(exc.value)
        assert db.session.get(Product, pen.id).is_set is False

    def test_blank_name_rejected(self, db_session, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            products_service.update_product(product.id, {"name": ""})

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            products_service.update_product(9999, {"stock": 1})


class TestListAndDelete:
    """Filtering and deletion side effects."""

    def test_filter_by_course_and_year(self, db_session, make_product):
        make_product(name="Calculator", for_course="BSCE", years=(1,))
        make_product(name="Drawing Set", for_course="BSCE", years=(2,))
        make_product(name="ID Lace", for_course="BSCE")

        assert len(products_service.list_products(course="BSCE")) == 3
        assert [p.name for p in products_service.list_products(year=1)] == ["Calculator"]
        assert [p.name for p in products_service.list_products(year="0")] == ["ID Lace"]
        assert products_service.list_products(course="BSN") == []

    def test_delete_unsets_student_item_key(self, db_session, make_product, student):
        product = make_product(name="Lab Coat")
        student.items["lab_coat"] = True
        student.items["id_lace"] = True
        db_session.commit()

        product_id = product.id
        products_service.delete_product(product_id)
        db_session.commit()

        assert db.session.get(Product, product_id) is None
        assert db.session.get(Student, student.id).items == {"id_lace": True}

    def test_delete_set_removes_its_set_items(self, db_session, make_product, make_set):
        pen = make_product(name="Pen")
        kit = make_set("Kit", [(pen, 1)])

        products_service.delete_product(kit.id)
        db_session.commit()

        assert db_session.query(ProductSetItem).count() == 0
        assert db.session.get(Product, pen.id) is not None

    def test_delete_keeps_audit_and_transfer_history(self, db_session, foreign_keys, make_product, branch):
        notebook = make_product(name="Notebook", stock=10)
        product_id = notebook.id
        log = audit_log_service.create_audit_log(product_id=product_id, before_quantity=10, after_quantity=9)
        completed = transfer_service.create_transfer(
            items=[{"product_id": product_id, "quantity": 2}], to_branch_id=branch.id,
        )
        transfer_service.complete_transfer(completed.id)
        pending = transfer_service.create_transfer(
            items=[{"product_id": product_id, "quantity": 1}], to_branch_id=branch.id,
        )
        db_session.commit()
        log_id, completed_id, pending_id = log.id, completed.id, pending.id

        products_service.delete_product(product_id)
        db_session.commit()
        db_session.expire_all()

        assert db.session.get(Product, product_id) is None
        assert db.session.get(AuditLog, log_id).product_id is None
        assert db.session.get(AuditLog, log_id).to_dict()["product"] is None
        assert db_session.query(BranchStock).count() == 0
        for transfer_id in (completed_id, pending_id):
            assert db.session.get(StockTransfer, transfer_id).items[0].product_id is None
        assert db.session.get(StockTransfer, completed_id).transaction.items[0].product_id is None

        with pytest.raises(NotFoundError):
            audit_log_service.approve_audit_log(log_id)

# Overview: Pytest coverage for branches and the stock transfer lifecycle.

"""
Transfer Service Tests

LIFECYCLE under test:
- pending: nothing moved
- completed: central deducted (optional), branch stock added, branch
  transaction recorded
- cancelled: no side effects
"""

import pytest
from campus_store.extensions import db
from campus_store.models import BranchStock, Transaction, TransferBranch
from campus_store.services import transfer_service, transaction_service
from campus_store.services.stock_ledger_service import InsufficientStockError
from campus_store.validation import (
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)


def _transfer(branch, *lines, **kwargs):
    return transfer_service.create_transfer(
        items=[{"product_id": p.id, "quantity": q} for p, q in lines],
        to_branch_id=branch.id,
        **kwargs,
    )


class TestBranches:
    """Branch CRUD and branch stock lookups."""

    def test_create_trims_and_requires_name(self, db_session):
        branch = transfer_service.create_branch(name="  East Wing ", location=" Gym ")
        db_session.commit()
        assert branch.name == "East Wing"
        assert branch.location == "Gym"
        assert branch.is_active is True

        with pytest.raises(ValidationError):
            transfer_service.create_branch(name="   ")

    def test_duplicate_name_conflicts(self, db_session, branch):
        with pytest.raises(ConflictError):
            transfer_service.create_branch(name="North Campus")

        other = transfer_service.create_branch(name="South Campus")
        db_session.commit()
        with pytest.raises(ConflictError):
            transfer_service.update_branch(other.id, name="North Campus")

    def test_list_active_only(self, db_session, branch):
        transfer_service.update_branch(branch.id, is_active=False)
        transfer_service.create_branch(name="South Campus")
        db_session.commit()

        names = [b.name for b in transfer_service.list_branches(active_only=True)]
        assert names == ["South Campus"]
        assert len(transfer_service.list_branches()) == 2

    def test_branch_stock_defaults_to_zero(self, db_session, branch, make_product):
        notebook = make_product()
        data = transfer_service.get_branch_stock(branch.id, notebook.id)
        assert data["quantity"] == 0
        assert data["branch"] == "North Campus"

    def test_delete_blocked_while_referenced(self, db_session, branch, make_product):
        notebook = make_product(stock=10)
        _transfer(branch, (notebook, 1))
        db_session.commit()

        with pytest.raises(ConflictError) as exc:
            transfer_service.delete_branch(branch.id)
        assert str(exc.value) == "Cannot delete branch. It is used in 1 transfer(s)."

    def test_delete_unreferenced(self, db_session, branch):
        transfer_service.delete_branch(branch.id)
        db_session.commit()
        assert db_session.query(TransferBranch).count() == 0


class TestCreateTransfer:
    """Creating a pending transfer moves nothing."""

    def test_pending_transfer_leaves_stock(self, db_session, branch, make_product):
        notebook = make_product(stock=10)

        transfer = _transfer(branch, (notebook, 4), remarks="For enrollment week")
        db_session.commit()

        assert transfer.status == "pending"
        assert transfer.deduct_from_central is True
        assert transfer.include_in_revenue is True
        assert transfer.created_by == "System"
        assert notebook.stock == 10
        assert db_session.query(BranchStock).count() == 0

    def test_insufficient_central_stock_rejected(self, db_session, branch, make_product):
        notebook = make_product(stock=5)

        with pytest.raises(InsufficientStockError):
            _transfer(branch, (notebook, 3), (notebook, 3))

    def test_no_deduction_skips_stock_check(self, db_session, branch, make_product):
        notebook = make_product(stock=1)
        transfer = _transfer(branch, (notebook, 50), deduct_from_central=False)
        assert transfer.status == "pending"

    def test_inactive_branch_rejected(self, db_session, branch, make_product):
        notebook = make_product(stock=5)
        branch.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError):
            _transfer(branch, (notebook, 1))

    def test_invalid_items(self, db_session, branch, make_product):
        notebook = make_product(stock=5)
        with pytest.raises(ValidationError):
            _transfer(branch)
        with pytest.raises(ValidationError):
            _transfer(branch, (notebook, 0))


class TestCompleteTransfer:
    """Completion deducts, adds branch stock and records a transaction."""

    def test_complete_moves_stock_and_records_transaction(self, db_session, branch, make_product):
        notebook = make_product(name="Notebook", stock=10, price_cents=2500)
        transfer = _transfer(branch, (notebook, 4), remarks="Week 1")
        db_session.commit()

        # Catalog price at completion time is used
        notebook.price_cents = 3000
        db_session.commit()

        transfer_service.complete_transfer(transfer.id)
        db_session.commit()

        assert transfer.status == "completed"
        assert transfer.completed_at is not None
        assert notebook.stock == 6
        assert transfer_service.get_branch_stock(branch.id, notebook.id)["quantity"] == 4

        txn = db.session.get(Transaction, transfer.transaction_id)
        assert txn.transaction_type == "branch_transfer"
        assert txn.payment_method == "transfer"
        assert txn.branch_name == "North Campus"
        assert txn.total_amount_cents == 12000
        assert txn.items[0].price_cents == 3000
        assert txn.remarks == "Stock transfer to North Campus - Week 1"

    def test_complete_twice_rejected(self, db_session, branch, make_product):
        notebook = make_product(stock=10)
        transfer = _transfer(branch, (notebook, 1))
        transfer_service.complete_transfer(transfer.id)
        db_session.commit()

        with pytest.raises(InvalidStateTransitionError):
            transfer_service.complete_transfer(transfer.id)

    def test_complete_revalidates_central_stock(self, db_session, branch, make_product):
        notebook = make_product(stock=5)
        transfer = _transfer(branch, (notebook, 4))
        db_session.commit()

        notebook.stock = 2
        db_session.commit()

        with pytest.raises(InsufficientStockError):
            transfer_service.complete_transfer(transfer.id)
        db_session.rollback()

        assert transfer_service.get_transfer(transfer.id).status == "pending"
        assert db.session.get(type(notebook), notebook.id).stock == 2

    def test_complete_without_deduction(self, db_session, branch, make_product):
        notebook = make_product(stock=3)
        transfer = _transfer(branch, (notebook, 5), deduct_from_central=False, include_in_revenue=False)
        db_session.commit()

        transfer_service.complete_transfer(transfer.id)
        db_session.commit()

        assert notebook.stock == 3
        assert transfer_service.get_branch_stock(branch.id, notebook.id)["quantity"] == 5
        txn = db.session.get(Transaction, transfer.transaction_id)
        assert txn.remarks == "Stock transfer to North Campus (Not included in revenue)"

    def test_branch_stock_accumulates(self, db_session, branch, make_product):
        notebook = make_product(stock=10)
        first = _transfer(branch, (notebook, 2))
        second = _transfer(branch, (notebook, 3))
        transfer_service.complete_transfer(first.id)
        transfer_service.complete_transfer(second.id)
        db_session.commit()

        assert transfer_service.get_branch_stock(branch.id, notebook.id)["quantity"] == 5
        assert notebook.stock == 5

    def test_branch_transaction_is_read_only(self, db_session, branch, make_product):
        notebook = make_product(stock=10)
        transfer = _transfer(branch, (notebook, 1))
        transfer_service.complete_transfer(transfer.id)
        db_session.commit()

        with pytest.raises(InvalidStateTransitionError):
            transaction_service.delete_transaction(transfer.transaction_id)
        with pytest.raises(InvalidStateTransitionError):
            transaction_service.update_transaction(
                transfer.transaction_id,
                items=[{"product_id": notebook.id, "quantity": 1, "price_cents": 0}],
            )


class TestCancelUpdateDelete:
    """Other transitions."""

    def test_cancel_then_complete_rejected(self, db_session, branch, make_product):
        notebook = make_product(stock=10)
        transfer = _transfer(branch, (notebook, 1))
        transfer_service.cancel_transfer(transfer.id)
        db_session.commit()

        assert transfer.status == "cancelled"
        assert transfer.cancelled_at is not None
        with pytest.raises(InvalidStateTransitionError):
            transfer_service.complete_transfer(transfer.id)
        assert notebook.stock == 10

    def test_update_status_completed_runs_completion(self, db_session, branch, make_product):
        notebook = make_product(stock=10)
        transfer = _transfer(branch, (notebook, 2))
        db_session.commit()

        transfer_service.update_transfer(transfer.id, status="completed", is_paid=True)
        db_session.commit()

        assert transfer.status == "completed"
        assert transfer.is_paid is True
        assert transfer.transaction_id is not None
        assert notebook.stock == 8
        assert transfer.transaction.is_paid is True
        assert transfer.transaction.paid_at is not None

    def test_paid_flag_edit_reaches_completed_transaction(self, db_session, branch, make_product):
        notebook = make_product(stock=10)
        transfer = _transfer(branch, (notebook, 2))
        transfer_service.complete_transfer(transfer.id)
        db_session.commit()
        assert transfer.transaction.is_paid is False

        transfer_service.update_transfer(transfer.id, is_paid=True)
        db_session.commit()
        assert transfer.transaction.is_paid is True
        assert transfer.transaction.paid_at is not None

        transfer_service.update_transfer(transfer.id, is_paid=False)
        db_session.commit()
        assert transfer.transaction.is_paid is False
        assert transfer.transaction.paid_at is None

    def test_update_rejects_unknown_status(self, db_session, branch, make_product):
        notebook = make_product(stock=10)
        transfer = _transfer(branch, (notebook, 2))
        with pytest.raises(ValidationError):
            transfer_service.update_transfer(transfer.id, status="shipped")

    def test_delete_only_pending(self, db_session, branch, make_product):
        notebook = make_product(stock=10)
        pending = _transfer(branch, (notebook, 1))
        done = _transfer(branch, (notebook, 1))
        transfer_service.complete_transfer(done.id)
        db_session.commit()

        transfer_service.delete_transfer(pending.id)
        with pytest.raises(InvalidStateTransitionError):
            transfer_service.delete_transfer(done.id)


class TestListTransfers:
    """Listing filters."""

    def test_filters(self, db_session, branch, make_product):
        notebook = make_product(name="Notebook", stock=10)
        pen = make_product(name="Pen", stock=10)
        _transfer(branch, (notebook, 1), transfer_date="2026-03-15T10:00:00Z")
        later = _transfer(branch, (pen, 1), transfer_date="2026-03-20T10:00:00Z")
        transfer_service.complete_transfer(later.id)
        db_session.commit()

        assert len(transfer_service.list_transfers()) == 2
        assert len(transfer_service.list_transfers(product_id=pen.id)) == 1
        assert len(transfer_service.list_transfers(status="completed")) == 1
        assert len(transfer_service.list_transfers(to_branch_id=branch.id)) == 2
        # Date-only end bound includes the whole day
        assert len(transfer_service.list_transfers(end_date="2026-03-15")) == 1
        assert len(transfer_service.list_transfers(start_date="2026-03-16")) == 1

        with pytest.raises(ValidationError):
            transfer_service.list_transfers(start_date="not-a-date")

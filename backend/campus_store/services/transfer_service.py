# backend/campus_store/services/transfer_service.py
"""
Branch stock transfer service.

WHY: Move stock from the central pool to a campus/station with an explicit
completion step, so the central deduction, the branch stock increase and the
bookkeeping Transaction happen together.

LIFECYCLE:
1. pending: transfer created, nothing moved (may be deleted)
2. completed: central stock deducted (if deduct_from_central), branch stock
   increased, branch_transfer Transaction created and linked
3. cancelled: flag flip, no side effects

Transfers move literal product units; set products are never expanded here.
"""
from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import (
    BranchStock,
    Product,
    StockTransfer,
    StockTransferItem,
    Transaction,
    TransactionItem,
    TransferBranch,
)
from ..models.transactions import TRANSACTION_TYPE_BRANCH_TRANSFER, ITEM_STATUS_FULFILLED
from ..validation import (
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
    parse_bool,
    parse_positive_int,
)
from campus_store.time_utils import utcnow, parse_iso_datetime
from .concurrency import lock_for_update, run_with_retry
from .stock_ledger_service import StockChangeAccumulator, StockError, load_product
from .transaction_service import generate_transaction_code


# Transfer status constants
TRANSFER_STATUS_PENDING = "pending"
TRANSFER_STATUS_COMPLETED = "completed"
TRANSFER_STATUS_CANCELLED = "cancelled"
TRANSFER_STATUSES = (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_COMPLETED, TRANSFER_STATUS_CANCELLED)


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------

def _clean(value) -> str:
    return str(value).strip() if value is not None else ""


def _ensure_unique_branch_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(TransferBranch).filter(TransferBranch.name == name)
    if exclude_id is not None:
        query = query.filter(TransferBranch.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("Branch with this name already exists")


def get_branch(branch_id: int) -> TransferBranch:
    branch = db.session.get(TransferBranch, branch_id)
    if branch is None:
        raise NotFoundError("Branch not found")
    return branch


def list_branches(*, active_only: bool = False) -> list[TransferBranch]:
    query = db.session.query(TransferBranch)
    if active_only:
        query = query.filter(TransferBranch.is_active.is_(True))
    return query.order_by(TransferBranch.name.asc()).all()


def create_branch(*, name, location=None, description=None) -> TransferBranch:
    name = _clean(name)
    if not name:
        raise ValidationError("Branch name is required")
    _ensure_unique_branch_name(name)

    branch = TransferBranch(
        name=name,
        location=_clean(location),
        description=_clean(description),
        is_active=True,
    )
    db.session.add(branch)
    db.session.flush()
    return branch


def update_branch(branch_id: int, *, name=None, location=None, description=None, is_active=None) -> TransferBranch:
    branch = get_branch(branch_id)

    if name is not None and _clean(name):
        _ensure_unique_branch_name(_clean(name), exclude_id=branch.id)
        branch.name = _clean(name)
    if location is not None:
        branch.location = _clean(location)
    if description is not None:
        branch.description = _clean(description)
    if is_active is not None:
        branch.is_active = parse_bool(is_active, "is_active")

    db.session.flush()
    return branch


def delete_branch(branch_id: int) -> None:
    """Blocked while any transfer (in any status) targets the branch."""
    branch = get_branch(branch_id)
    transfers_count = db.session.query(StockTransfer).filter_by(to_branch_id=branch.id).count()
    if transfers_count > 0:
        raise ConflictError(f"Cannot delete branch. It is used in {transfers_count} transfer(s).")
    db.session.delete(branch)
    db.session.flush()


def get_branch_stock(branch_id: int, product_id: int) -> dict:
    branch = get_branch(branch_id)
    entry = db.session.query(BranchStock).filter_by(branch_id=branch.id, product_id=product_id).first()
    return {
        "branch": branch.name,
        "product_id": product_id,
        "quantity": entry.quantity if entry else 0,
        "product_name": entry.product.name if entry and entry.product else None,
    }


def get_branch_stock_all(branch_id: int) -> dict:
    branch = get_branch(branch_id)
    return {
        "branch": {"id": branch.id, "name": branch.name, "location": branch.location},
        "stock": [entry.to_dict() for entry in branch.stock],
    }


def _add_branch_stock(branch: TransferBranch, product_id: int, quantity: int) -> None:
    entry = lock_for_update(
        db.session.query(BranchStock).filter_by(branch_id=branch.id, product_id=product_id)
    ).first()
    if entry is None:
        branch.stock.append(BranchStock(product_id=product_id, quantity=quantity))
    else:
        entry.quantity += quantity


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

def _parse_transfer_items(items) -> list[tuple[int, int]]:
    if not items or not isinstance(items, list):
        raise ValidationError("At least one product item is required")

    parsed = []
    for raw in items:
        if not isinstance(raw, dict) or raw.get("product_id") in (None, ""):
            raise ValidationError("All items must have a product ID")
        product_id = parse_positive_int(raw["product_id"], "product_id")
        try:
            quantity = parse_positive_int(raw.get("quantity"), "quantity")
        except ValidationError:
            raise ValidationError(f"Invalid quantity for product {product_id}")
        parsed.append((product_id, quantity))
    return parsed


def _stage_central_deduction(transfer_lines: list[tuple[Product, int]]) -> StockChangeAccumulator:
    acc = StockChangeAccumulator()
    try:
        for product, quantity in transfer_lines:
            acc.stage(product, -quantity)
    except StockError:
        acc.discard()
        raise
    return acc


def create_transfer(
    *,
    items,
    to_branch_id,
    transfer_date=None,
    is_paid=None,
    deduct_from_central=None,
    include_in_revenue=None,
    remarks=None,
    created_by=None,
) -> StockTransfer:
    """
    Create a pending transfer. No stock moves until completion.

    When deduct_from_central is set, central stock must already cover every
    item (summed per product) or InsufficientStockError is raised.
    """
    parsed = _parse_transfer_items(items)
    if to_branch_id in (None, ""):
        raise ValidationError("Destination branch is required")

    deduct = parse_bool(deduct_from_central, "deduct_from_central") if deduct_from_central is not None else True
    include = parse_bool(include_in_revenue, "include_in_revenue") if include_in_revenue is not None else True
    paid = parse_bool(is_paid, "is_paid") if is_paid is not None else False

    parsed_date = None
    if transfer_date:
        try:
            parsed_date = parse_iso_datetime(str(transfer_date))
        except ValueError:
            raise ValidationError("transfer_date must be an ISO-8601 date")

    def _op():
        branch = db.session.get(TransferBranch, parse_positive_int(to_branch_id, "to_branch_id"))
        if branch is None or not branch.is_active:
            raise NotFoundError("Destination branch not found or inactive")

        lines = []
        for product_id, quantity in parsed:
            product = load_product(product_id, lock=deduct)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            lines.append((product, quantity))

        if deduct:
            # Validation only; the accumulator is dropped without writing
            _stage_central_deduction(lines).discard()

        transfer = StockTransfer(
            to_branch_id=branch.id,
            transfer_date=parsed_date or utcnow(),
            is_paid=paid,
            deduct_from_central=deduct,
            include_in_revenue=include,
            remarks=_clean(remarks),
            created_by=_clean(created_by) or "System",
            status=TRANSFER_STATUS_PENDING,
        )
        for product, quantity in lines:
            transfer.items.append(StockTransferItem(product_id=product.id, quantity=quantity))

        db.session.add(transfer)
        db.session.flush()
        return transfer

    return run_with_retry(_op)


def _get_locked_transfer(transfer_id: int) -> StockTransfer:
    transfer = lock_for_update(db.session.query(StockTransfer).filter_by(id=transfer_id)).first()
    if transfer is None:
        raise NotFoundError("Stock transfer not found")
    return transfer


def _require_pending(transfer: StockTransfer) -> None:
    if transfer.status != TRANSFER_STATUS_PENDING:
        raise InvalidStateTransitionError(f"Transfer is already {transfer.status}")


def complete_transfer(transfer_id: int, *, is_paid: bool | None = None, remarks=None) -> StockTransfer:
    """
    pending -> completed.

    Re-validates central stock (it may have moved since creation), deducts
    it when deduct_from_central, adds every item to the branch stock, and
    always records a branch_transfer Transaction priced at current catalog
    prices. include_in_revenue=False only annotates the remarks.
    is_paid and remarks, when given, are set before the Transaction is built.
    """
    def _op():
        transfer = _get_locked_transfer(transfer_id)
        _require_pending(transfer)
        _apply_metadata(transfer, is_paid, remarks)

        branch = transfer.to_branch
        if branch is None:
            raise NotFoundError("Destination branch not found")

        lines = []
        for item in transfer.items:
            product = load_product(item.product_id)
            if product is None:
                raise NotFoundError(f"Product {item.product_id} not found")
            lines.append((product, item.quantity))

        acc = _stage_central_deduction(lines) if transfer.deduct_from_central else None

        now = utcnow()
        transaction = Transaction(
            transaction_code=generate_transaction_code(),
            transaction_type=TRANSACTION_TYPE_BRANCH_TRANSFER,
            branch_id=branch.id,
            branch_name=branch.name,
            branch_location=branch.location or "",
            payment_method="transfer",
            is_paid=transfer.is_paid,
            paid_at=now if transfer.is_paid else None,
            transaction_date=now,
            remarks=_transfer_remarks(branch, transfer),
        )
        for position, (product, quantity) in enumerate(lines):
            transaction.items.append(TransactionItem(
                position=position,
                product_id=product.id,
                name=product.name,
                quantity=quantity,
                price_cents=product.price_cents,
                total_cents=product.price_cents * quantity,
                is_set=False,
                status=ITEM_STATUS_FULFILLED,
            ))
            _add_branch_stock(branch, product.id, quantity)
        transaction.total_amount_cents = sum(item.total_cents for item in transaction.items)

        if acc is not None:
            acc.commit()

        db.session.add(transaction)
        db.session.flush()

        transfer.transaction_id = transaction.id
        transfer.status = TRANSFER_STATUS_COMPLETED
        transfer.completed_at = now
        db.session.flush()

        current_app.logger.info(
            "Completed transfer %s to branch %s (transaction %s)",
            transfer.id, branch.name, transaction.transaction_code,
        )
        return transfer

    return run_with_retry(_op)


def _transfer_remarks(branch: TransferBranch, transfer: StockTransfer) -> str:
    remarks = f"Stock transfer to {branch.name}"
    if transfer.remarks:
        remarks += f" - {transfer.remarks}"
    if not transfer.include_in_revenue:
        remarks += " (Not included in revenue)"
    return remarks


def cancel_transfer(transfer_id: int) -> StockTransfer:
    """pending -> cancelled. Nothing was moved at creation, so nothing is undone."""
    def _op():
        transfer = _get_locked_transfer(transfer_id)
        _require_pending(transfer)
        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_at = utcnow()
        db.session.flush()
        current_app.logger.info("Cancelled transfer %s", transfer.id)
        return transfer

    return run_with_retry(_op)


def update_transfer(transfer_id: int, *, status=None, is_paid=None, remarks=None) -> StockTransfer:
    """
    Status changes go through the state machine: "completed" runs the full
    completion path and "cancelled" runs cancel. is_paid and remarks are
    plain metadata edits.
    """
    if status not in (None, "") and status not in TRANSFER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(TRANSFER_STATUSES)}")

    paid = parse_bool(is_paid, "is_paid") if is_paid is not None else None
    transfer = get_transfer(transfer_id)

    if status == TRANSFER_STATUS_COMPLETED:
        # Completion builds its Transaction from the new metadata
        return complete_transfer(transfer_id, is_paid=paid, remarks=remarks)
    if status == TRANSFER_STATUS_CANCELLED:
        transfer = cancel_transfer(transfer_id)
    elif status == TRANSFER_STATUS_PENDING and transfer.status != TRANSFER_STATUS_PENDING:
        raise InvalidStateTransitionError(f"Transfer is already {transfer.status}")

    _apply_metadata(transfer, paid, remarks)
    if transfer.transaction is not None:
        _mirror_paid_flag(transfer)

    db.session.flush()
    return transfer


def _apply_metadata(transfer: StockTransfer, paid: bool | None, remarks) -> None:
    if paid is not None:
        transfer.is_paid = paid
    if remarks is not None:
        transfer.remarks = _clean(remarks)


def _mirror_paid_flag(transfer: StockTransfer) -> None:
    transaction = transfer.transaction
    if transaction.is_paid == transfer.is_paid:
        return
    transaction.is_paid = transfer.is_paid
    transaction.paid_at = utcnow() if transfer.is_paid else None


def delete_transfer(transfer_id: int) -> None:
    transfer = _get_locked_transfer(transfer_id)
    if transfer.status != TRANSFER_STATUS_PENDING:
        raise InvalidStateTransitionError("Only pending transfers can be deleted")
    db.session.delete(transfer)
    db.session.flush()


def get_transfer(transfer_id: int) -> StockTransfer:
    transfer = db.session.get(StockTransfer, transfer_id)
    if transfer is None:
        raise NotFoundError("Stock transfer not found")
    return transfer


def list_transfers(
    *,
    product_id: int | None = None,
    to_branch_id: int | None = None,
    status: str | None = None,
    is_paid=None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> list[StockTransfer]:
    query = db.session.query(StockTransfer)

    if product_id is not None:
        query = query.filter(StockTransfer.items.any(StockTransferItem.product_id == product_id))
    if to_branch_id is not None:
        query = query.filter(StockTransfer.to_branch_id == to_branch_id)
    if status:
        query = query.filter(StockTransfer.status == status)
    if is_paid not in (None, ""):
        query = query.filter(StockTransfer.is_paid == parse_bool(is_paid, "is_paid"))

    try:
        start = parse_iso_datetime(start_date) if start_date else None
        end = parse_iso_datetime(end_date) if end_date else None
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates")
    if start is not None:
        query = query.filter(StockTransfer.transfer_date >= start)
    if end is not None:
        # Date-only end bound covers the whole day
        if len(end_date.strip()) == 10:
            end = end + timedelta(days=1) - timedelta(microseconds=1)
        query = query.filter(StockTransfer.transfer_date <= end)

    return query.order_by(StockTransfer.transfer_date.desc(), StockTransfer.created_at.desc()).all()

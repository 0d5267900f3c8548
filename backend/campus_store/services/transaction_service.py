# backend/campus_store/services/transaction_service.py
"""
Sales transaction service.

WHY: A sale snapshots item names and client-supplied prices, consumes stock
(expanding set products into their components) and marks the items as
received on the student record.

STOCK FLOW:
- create: every line is staged in one StockChangeAccumulator, validated
  jointly, then committed together with the new Transaction.
- update (items): the old items' restoration and the new items' consumption
  are staged in the SAME accumulator, so a rejected new item list leaves
  stock exactly as it was.
- delete: restoration of every item, then removal.

Branch-transfer transactions are written by transfer_service and are
read-only here.
"""
from __future__ import annotations

import secrets
import string
import time

from flask import current_app

from ..extensions import db
from ..models import (
    Student,
    Transaction,
    TransactionItem,
    TransactionItemComponent,
)
from ..models.transactions import (
    PAYMENT_METHODS,
    TRANSACTION_TYPE_STUDENT,
    TRANSACTION_TYPE_BRANCH_TRANSFER,
    TRANSACTION_TYPES,
    ITEM_STATUS_FULFILLED,
    ITEM_STATUS_PARTIAL,
)
from ..validation import (
    ValidationError,
    NotFoundError,
    InvalidStateTransitionError,
    parse_bool,
    parse_non_negative_int,
    parse_positive_int,
)
from campus_store.time_utils import utcnow
from .concurrency import run_with_retry, lock_for_update
from .stock_ledger_service import StockChangeAccumulator, StockError, load_product
from . import student_service

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_transaction_code() -> str:
    """TXN-<epoch millis>-<random uppercase alphanumerics>"""
    length = current_app.config.get("TXN_CODE_RANDOM_LENGTH", 6)
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))
    return f"TXN-{int(time.time() * 1000)}-{suffix}"


def _parse_items(items) -> list[dict]:
    if not items or not isinstance(items, list):
        raise ValidationError("Student ID and items are required")

    parsed = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must have product_id, quantity, and price_cents")
        if raw.get("product_id") in (None, "") or raw.get("quantity") in (None, "") \
                or raw.get("price_cents") in (None, ""):
            raise ValidationError("Each item must have product_id, quantity, and price_cents")

        not_taken = {}
        for component in raw.get("set_components") or []:
            if not isinstance(component, dict) or component.get("product_id") in (None, ""):
                raise ValidationError("Each set component must have product_id")
            if not parse_bool(component.get("taken", True), "taken"):
                component_id = parse_positive_int(component["product_id"], "product_id")
                not_taken[component_id] = str(component.get("reason") or "").strip()

        parsed.append({
            "product_id": parse_positive_int(raw["product_id"], "product_id"),
            "quantity": parse_positive_int(raw["quantity"], "quantity"),
            "price_cents": parse_non_negative_int(raw["price_cents"], "price_cents"),
            "name": (str(raw["name"]).strip() if raw.get("name") else None),
            "not_taken": not_taken,
        })
    return parsed


def _stage_items(acc: StockChangeAccumulator, parsed_items: list[dict]) -> list[TransactionItem]:
    """
    Resolve products and stage consumption for every line, in order.
    Returns unsaved TransactionItem rows carrying name/price snapshots.
    """
    rows = []
    for position, entry in enumerate(parsed_items):
        product = load_product(entry["product_id"])
        if product is None:
            raise NotFoundError(f"Product not found: {entry['product_id']}")

        quantity = entry["quantity"]
        if entry["not_taken"]:
            _check_not_taken(product, entry["not_taken"])
        requirements = acc.stage_line(product, -quantity, not_taken=entry["not_taken"])

        item = TransactionItem(
            position=position,
            product_id=product.id,
            name=entry["name"] or product.name,
            quantity=quantity,
            price_cents=entry["price_cents"],
            total_cents=quantity * entry["price_cents"],
            is_set=product.is_set,
            status=ITEM_STATUS_FULFILLED,
        )
        for req in requirements:
            item.set_components.append(TransactionItemComponent(
                product_id=req.product.id,
                name=req.product.name,
                quantity=req.quantity,
                taken=req.taken,
                reason=req.reason,
            ))
        if any(not req.taken for req in requirements):
            item.status = ITEM_STATUS_PARTIAL
        rows.append(item)
    return rows


def _check_not_taken(product, not_taken: dict[int, str]) -> None:
    if not product.is_set:
        raise ValidationError(f"{product.name} is not a set; set_components do not apply")
    component_ids = {set_item.component_product_id for set_item in product.set_items}
    unknown = sorted(set(not_taken) - component_ids)
    if unknown:
        raise ValidationError(
            f"Not components of {product.name}: {', '.join(str(pid) for pid in unknown)}"
        )


def _parse_payment_method(value) -> str:
    method = str(value or "cash").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    return method


def create_transaction(
    *,
    student_id,
    items,
    payment_method=None,
    is_paid=None,
    remarks: str | None = None,
) -> Transaction:
    """
    Create a student sale and consume stock for all items jointly.

    Raises:
        ValidationError: missing student/items, malformed item
        NotFoundError: unknown student or product
        InsufficientStockError / InvalidSetConfigurationError: stock check failed
    """
    if student_id in (None, ""):
        raise ValidationError("Student ID and items are required")
    student_id = parse_positive_int(student_id, "student_id")
    parsed_items = _parse_items(items)
    method = _parse_payment_method(payment_method)
    paid = parse_bool(is_paid, "is_paid") if is_paid is not None else False

    def _op():
        student = db.session.get(Student, student_id)
        if student is None:
            raise NotFoundError("Student not found")

        acc = StockChangeAccumulator()
        try:
            rows = _stage_items(acc, parsed_items)
        except (StockError, NotFoundError, ValidationError):
            acc.discard()
            raise

        now = utcnow()
        transaction = Transaction(
            transaction_code=generate_transaction_code(),
            transaction_type=TRANSACTION_TYPE_STUDENT,
            student_id=student.id,
            student_name=student.name,
            student_code=student.student_code,
            student_course=student.course,
            student_year=student.year,
            student_branch=student.branch or "",
            total_amount_cents=sum(row.total_cents for row in rows),
            payment_method=method,
            is_paid=paid,
            paid_at=now if paid else None,
            transaction_date=now,
            remarks=(remarks or "").strip(),
        )
        transaction.items.extend(rows)
        db.session.add(transaction)
        db.session.flush()

        acc.commit()

        student_service.sync_after_sale(student.id, {row.name for row in rows}, is_paid=paid)

        current_app.logger.info(
            "Created transaction %s for student %s (%s items)",
            transaction.transaction_code, student.id, len(rows),
        )
        return transaction

    return run_with_retry(_op)


def _get_locked(transaction_id: int) -> Transaction:
    transaction = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
    if transaction is None:
        raise NotFoundError("Transaction not found")
    return transaction


def update_transaction(
    transaction_id: int,
    *,
    items=None,
    payment_method=None,
    is_paid=None,
    remarks: str | None = None,
) -> Transaction:
    """
    Update items and/or payment fields.

    Items: old items are restored and new items consumed in one accumulator
    commit. Payment: is_paid sets/clears paid_at and is mirrored onto the
    student. Stock is untouched by payment-only edits.
    """
    parsed_items = _parse_items(items) if items else None
    method = _parse_payment_method(payment_method) if payment_method is not None else None
    paid = parse_bool(is_paid, "is_paid") if is_paid is not None else None

    def _op():
        transaction = _get_locked(transaction_id)

        if parsed_items is not None:
            if transaction.transaction_type != TRANSACTION_TYPE_STUDENT:
                raise InvalidStateTransitionError("Items of branch transfer transactions cannot be edited")

            acc = StockChangeAccumulator()
            try:
                for old_item in transaction.items:
                    acc.stage_restoration(old_item)
                rows = _stage_items(acc, parsed_items)
            except (StockError, NotFoundError, ValidationError):
                acc.discard()
                raise

            transaction.items.clear()
            db.session.flush()
            transaction.items.extend(rows)
            transaction.total_amount_cents = sum(row.total_cents for row in rows)
            acc.commit()

            student_service.sync_after_sale(transaction.student_id, {row.name for row in rows}, is_paid=None)

        if method is not None:
            transaction.payment_method = method

        if paid is not None:
            transaction.is_paid = paid
            transaction.paid_at = utcnow() if paid else None
            if transaction.student_id is not None:
                student_service.mirror_paid_flag(transaction.student_id, paid)

        if remarks is not None:
            transaction.remarks = str(remarks).strip()

        db.session.flush()
        return transaction

    return run_with_retry(_op)


def delete_transaction(transaction_id: int) -> None:
    """Restore stock for every item (sets via their component snapshot), then delete."""
    def _op():
        transaction = _get_locked(transaction_id)
        if transaction.transaction_type == TRANSACTION_TYPE_BRANCH_TRANSFER:
            raise InvalidStateTransitionError("Branch transfer transactions cannot be deleted")

        acc = StockChangeAccumulator()
        for item in transaction.items:
            acc.stage_restoration(item)
        acc.commit()

        code = transaction.transaction_code
        db.session.delete(transaction)
        db.session.flush()
        current_app.logger.info("Deleted transaction %s and restored stock", code)

    run_with_retry(_op)


def get_transaction(transaction_id: int) -> Transaction:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError("Transaction not found")
    return transaction


def list_transactions(
    *,
    course: str | None = None,
    student_id: int | None = None,
    payment_method: str | None = None,
    is_paid=None,
    transaction_type: str | None = None,
) -> list[Transaction]:
    query = db.session.query(Transaction)
    if course:
        query = query.filter(Transaction.student_course == course)
    if student_id is not None:
        query = query.filter(Transaction.student_id == student_id)
    if payment_method:
        query = query.filter(Transaction.payment_method == payment_method)
    if is_paid not in (None, ""):
        query = query.filter(Transaction.is_paid == parse_bool(is_paid, "is_paid"))
    if transaction_type:
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(f"transaction_type must be one of: {', '.join(TRANSACTION_TYPES)}")
        query = query.filter(Transaction.transaction_type == transaction_type)
    return query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc()).all()


def list_transactions_for_student(student_id: int) -> list[Transaction]:
    if db.session.get(Student, student_id) is None:
        raise NotFoundError("Student not found")
    return list_transactions(student_id=student_id)

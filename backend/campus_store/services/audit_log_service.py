# backend/campus_store/services/audit_log_service.py
"""
Stock correction approval workflow.

WHY: Physical recounts disagree with the system count. An operator submits
the quantity they believe the product had and the quantity it should have;
a reviewer approves (overwriting Product.stock) or rejects.

LIFECYCLE:
1. pending: submitted
2. approved: Product.stock = after_quantity, absolute set (terminal)
3. rejected: no stock effect, notes appended (terminal)

Approval bypasses the stock ledger's delta model on purpose: it is a
correction, not a consumption. before_quantity is never reconciled against
live stock; the value actually overwritten is kept in stock_at_approval.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AuditLog
from ..validation import (
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
    parse_non_negative_int,
    parse_positive_int,
)
from campus_store.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .stock_ledger_service import load_product


AUDIT_STATUS_PENDING = "pending"
AUDIT_STATUS_APPROVED = "approved"
AUDIT_STATUS_REJECTED = "rejected"
AUDIT_STATUSES = (AUDIT_STATUS_PENDING, AUDIT_STATUS_APPROVED, AUDIT_STATUS_REJECTED)


def create_audit_log(*, product_id, before_quantity, after_quantity, notes=None, created_by=None) -> AuditLog:
    if product_id in (None, ""):
        raise ValidationError("Product ID is required")
    product_id = parse_positive_int(product_id, "product_id")
    before = parse_non_negative_int(before_quantity, "beforeQuantity")
    after = parse_non_negative_int(after_quantity, "afterQuantity")

    product = load_product(product_id, lock=False)
    if product is None:
        raise NotFoundError("Product not found")

    log = AuditLog(
        product_id=product.id,
        before_quantity=before,
        after_quantity=after,
        status=AUDIT_STATUS_PENDING,
        notes=str(notes or ""),
        created_by=str(created_by or "System"),
    )
    db.session.add(log)
    db.session.flush()
    return log


def list_audit_logs(status: str | None = None) -> list[AuditLog]:
    query = db.session.query(AuditLog)
    if status and status != "all":
        if status not in AUDIT_STATUSES:
            raise ValidationError(f"status must be one of: all, {', '.join(AUDIT_STATUSES)}")
        query = query.filter(AuditLog.status == status)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).all()


def _get_pending(audit_id: int, action: str) -> AuditLog:
    log = lock_for_update(db.session.query(AuditLog).filter_by(id=audit_id)).first()
    if log is None:
        raise NotFoundError("Audit log not found")
    if log.status != AUDIT_STATUS_PENDING:
        raise InvalidStateTransitionError(f"Only pending audit logs can be {action}")
    return log


def approve_audit_log(audit_id: int, *, approved_by=None) -> AuditLog:
    """pending -> approved; writes after_quantity straight into Product.stock."""
    def _op():
        log = _get_pending(audit_id, "approved")

        product = load_product(log.product_id)
        if product is None:
            raise NotFoundError("Linked product no longer exists")

        log.stock_at_approval = product.stock
        product.stock = log.after_quantity

        log.status = AUDIT_STATUS_APPROVED
        log.approved_by = str(approved_by or "System")
        log.approved_at = utcnow()
        db.session.flush()

        if log.stock_at_approval != log.before_quantity:
            current_app.logger.info(
                "Audit log %s approved against drifted stock for product %s (claimed %s, actual %s)",
                log.id, product.id, log.before_quantity, log.stock_at_approval,
            )
        return log

    return run_with_retry(_op)


def reject_audit_log(audit_id: int, *, approved_by=None, notes=None) -> AuditLog:
    """pending -> rejected; appends 'Rejected: <notes>' when notes are given."""
    log = _get_pending(audit_id, "rejected")

    log.status = AUDIT_STATUS_REJECTED
    log.approved_by = str(approved_by or "System")
    log.approved_at = utcnow()
    if notes:
        log.notes = f"{log.notes}\nRejected: {notes}" if log.notes else f"Rejected: {notes}"
    db.session.flush()
    return log

from __future__ import annotations

from ..extensions import db
from campus_store.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Manual stock-quantity correction awaiting review.

    LIFECYCLE:
    1. pending: submitted with operator-claimed before/after quantities
    2. approved: Product.stock overwritten with after_quantity (terminal)
    3. rejected: no stock effect, reviewer notes appended (terminal)

    before_quantity is the submitter's claim, not a snapshot; the stock the
    approval actually overwrote is kept in stock_at_approval.
    """
    __tablename__ = "audit_logs"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    before_quantity = db.Column(db.Integer, nullable=False)
    after_quantity = db.Column(db.Integer, nullable=False)
    stock_at_approval = db.Column(db.Integer, nullable=True)

    # pending, approved, rejected
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=False, default="")

    created_by = db.Column(db.String(120), nullable=False, default="System")
    approved_by = db.Column(db.String(120), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": {
                "name": self.product.name,
                "stock": self.product.stock,
                "price_cents": self.product.price_cents,
                "for_course": self.product.for_course,
                "branch": self.product.branch,
            } if self.product else None,
            "before_quantity": self.before_quantity,
            "after_quantity": self.after_quantity,
            "stock_at_approval": self.stock_at_approval,
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

from __future__ import annotations

from ..extensions import db
from campus_store.time_utils import to_utc_z


TRANSACTION_TYPE_STUDENT = "student"
TRANSACTION_TYPE_BRANCH_TRANSFER = "branch_transfer"
TRANSACTION_TYPES = (TRANSACTION_TYPE_STUDENT, TRANSACTION_TYPE_BRANCH_TRANSFER)

PAYMENT_METHODS = ("cash", "online", "transfer")

ITEM_STATUS_FULFILLED = "fulfilled"
ITEM_STATUS_PARTIAL = "partial"


class Transaction(db.Model):
    """
    Sales or branch-transfer record.

    transaction_type selects which snapshot is populated:
    - student: student_id + student_* columns
    - branch_transfer: branch_id + branch_* columns
    The check constraint keeps the two variants mutually exclusive.

    Item name and price are snapshots taken when the transaction is written;
    later catalog edits never change them.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_code", name="uq_transactions_code"),
        db.CheckConstraint(
            "(transaction_type = 'student' AND student_id IS NOT NULL AND branch_id IS NULL) OR "
            "(transaction_type = 'branch_transfer' AND branch_id IS NOT NULL AND student_id IS NULL)",
            name="ck_transactions_variant",
        ),
        db.Index("ix_transactions_student", "student_id"),
        db.Index("ix_transactions_course", "student_course"),
        db.Index("ix_transactions_date", "transaction_date"),
        db.Index("ix_transactions_branch", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable code: TXN-<epoch millis>-<random>
    transaction_code = db.Column(db.String(64), nullable=False)
    transaction_type = db.Column(db.String(32), nullable=False, default=TRANSACTION_TYPE_STUDENT, index=True)

    # Student snapshot (transaction_type == student)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=True)
    student_name = db.Column(db.String(255), nullable=True)
    student_code = db.Column(db.String(64), nullable=True)
    student_course = db.Column(db.String(120), nullable=True)
    student_year = db.Column(db.Integer, nullable=True)
    student_branch = db.Column(db.String(120), nullable=True)

    # Branch snapshot (transaction_type == branch_transfer)
    branch_id = db.Column(db.Integer, db.ForeignKey("transfer_branches.id"), nullable=True)
    branch_name = db.Column(db.String(255), nullable=True)
    branch_location = db.Column(db.String(255), nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    remarks = db.Column(db.Text, nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "TransactionItem",
        order_by="TransactionItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    student = db.relationship("Student", backref=db.backref("transactions", lazy=True))

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} code={self.transaction_code!r} type={self.transaction_type}>"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "transaction_code": self.transaction_code,
            "transaction_type": self.transaction_type,
            "items": [item.to_dict() for item in self.items],
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at),
            "transaction_date": to_utc_z(self.transaction_date),
            "remarks": self.remarks,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "student": None,
            "branch_transfer": None,
        }
        if self.transaction_type == TRANSACTION_TYPE_STUDENT:
            data["student"] = {
                "student_id": self.student_id,
                "name": self.student_name,
                "student_code": self.student_code,
                "course": self.student_course,
                "year": self.student_year,
                "branch": self.student_branch,
            }
        else:
            data["branch_transfer"] = {
                "branch_id": self.branch_id,
                "branch_name": self.branch_name,
                "branch_location": self.branch_location,
            }
        return data


class TransactionItem(db.Model):
    __tablename__ = "transaction_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    # Live reference; nulled out if the product is later deleted
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    is_set = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default=ITEM_STATUS_FULFILLED)

    set_components = db.relationship(
        "TransactionItemComponent",
        order_by="TransactionItemComponent.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "total_cents": self.total_cents,
            "is_set": self.is_set,
            "status": self.status,
            "set_components": [c.to_dict() for c in self.set_components],
        }


class TransactionItemComponent(db.Model):
    """
    Snapshot of one set component handed over (or not) with a set item.

    quantity is the total component units for the whole line
    (line quantity x per-set quantity). Components with taken=False were
    never deducted and are skipped on restoration.
    """
    __tablename__ = "transaction_item_components"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    transaction_item_id = db.Column(db.Integer, db.ForeignKey("transaction_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=True)
    name = db.Column(db.String(255), nullable=False, default="")
    quantity = db.Column(db.Integer, nullable=False, default=0)
    taken = db.Column(db.Boolean, nullable=False, default=True)
    reason = db.Column(db.String(255), nullable=False, default="")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "taken": self.taken,
            "reason": self.reason,
        }

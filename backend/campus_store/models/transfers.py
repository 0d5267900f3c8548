from __future__ import annotations

from ..extensions import db
from campus_store.time_utils import to_utc_z


class TransferBranch(db.Model):
    """
    Campus/station receiving stock from the central pool.

    Branch stock (BranchStock rows) is disjoint from Product.stock; a product
    appears at most once per branch.
    """
    __tablename__ = "transfer_branches"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_transfer_branches_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=False, default="")
    description = db.Column(db.Text, nullable=False, default="")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    stock = db.relationship(
        "BranchStock",
        order_by="BranchStock.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<TransferBranch id={self.id} name={self.name!r} active={self.is_active}>"

    def to_dict(self, with_stock: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if with_stock:
            data["stock"] = [entry.to_dict() for entry in self.stock]
        return data


class BranchStock(db.Model):
    __tablename__ = "branch_stock"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_id", name="uq_branch_stock_branch_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("transfer_branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
        }


class StockTransfer(db.Model):
    """
    Movement of literal product units from the central pool to a branch.

    LIFECYCLE:
    1. pending: created, no stock touched yet (may be deleted)
    2. completed: central stock optionally deducted, branch stock added,
       branch_transfer Transaction recorded (terminal)
    3. cancelled: no side effects (terminal)

    deduct_from_central, include_in_revenue and is_paid are fixed at
    creation and consulted at completion.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.Index("ix_stock_transfers_date", "transfer_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    to_branch_id = db.Column(db.Integer, db.ForeignKey("transfer_branches.id"), nullable=False, index=True)

    # pending, completed, cancelled
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    transfer_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    deduct_from_central = db.Column(db.Boolean, nullable=False, default=True)
    include_in_revenue = db.Column(db.Boolean, nullable=False, default=True)
    remarks = db.Column(db.Text, nullable=False, default="")
    created_by = db.Column(db.String(120), nullable=False, default="System")

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "StockTransferItem",
        order_by="StockTransferItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    to_branch = db.relationship("TransferBranch", backref=db.backref("transfers", lazy=True))
    transaction = db.relationship("Transaction")

    def __repr__(self) -> str:
        return f"<StockTransfer id={self.id} to_branch_id={self.to_branch_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "to_branch": {
                "id": self.to_branch_id,
                "name": self.to_branch.name if self.to_branch else None,
                "location": self.to_branch.location if self.to_branch else None,
            },
            "items": [item.to_dict() for item in self.items],
            "status": self.status,
            "transfer_date": to_utc_z(self.transfer_date),
            "is_paid": self.is_paid,
            "deduct_from_central": self.deduct_from_central,
            "include_in_revenue": self.include_in_revenue,
            "remarks": self.remarks,
            "created_by": self.created_by,
            "transaction_id": self.transaction_id,
            "transaction": {
                "transaction_code": self.transaction.transaction_code,
                "total_amount_cents": self.transaction.total_amount_cents,
                "payment_method": self.transaction.payment_method,
                "is_paid": self.transaction.is_paid,
                "transaction_type": self.transaction.transaction_type,
            } if self.transaction else None,
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockTransferItem(db.Model):
    __tablename__ = "stock_transfer_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    stock_transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
        }

from __future__ import annotations

from ..extensions import db
from campus_store.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog item: a simple product with its own central stock, or a
    "set" composed of other products.

    STOCK:
    Product.stock is the authoritative on-hand count of the central pool.
    Branch-local quantities live in BranchStock and never feed back here.

    SETS:
    A set product (is_set=True) holds no stock of its own (stock stays 0).
    Selling a set consumes its components via ProductSetItem rows; its
    availability is derived from component stock.

    YEARS:
    ProductYear rows are canonical. The legacy scalar `year` is only a view
    emitted by to_dict(): 0 when no year restriction, else the lowest year.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_course", "for_course"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    image_url = db.Column(db.String(512), nullable=True)
    for_course = db.Column(db.String(120), nullable=False, default="")
    branch = db.Column(db.String(120), nullable=False, default="")
    remarks = db.Column(db.Text, nullable=False, default="")

    is_set = db.Column(db.Boolean, nullable=False, default=False)

    last_price_updated = db.Column(db.DateTime(timezone=True), nullable=True)

    # Optimistic concurrency: concurrent stock writes raise StaleDataError
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    set_items = db.relationship(
        "ProductSetItem",
        foreign_keys="ProductSetItem.set_product_id",
        order_by="ProductSetItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    year_rows = db.relationship(
        "ProductYear",
        order_by="ProductYear.year",
        cascade="all, delete-orphan",
        lazy=True,
    )
    price_history = db.relationship(
        "ProductPriceHistory",
        order_by="ProductPriceHistory.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def years(self) -> list[int]:
        return [row.year for row in self.year_rows]

    @property
    def legacy_year(self) -> int:
        years = self.years
        return min(years) if years else 0

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock} is_set={self.is_set}>"

    def to_dict(self) -> dict:
        from ..services.stock_ledger_service import set_availability

        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "available_quantity": set_availability(self) if self.is_set else self.stock,
            "image_url": self.image_url,
            "for_course": self.for_course,
            "branch": self.branch,
            "years": self.years,
            "year": self.legacy_year,
            "remarks": self.remarks,
            "is_set": self.is_set,
            "set_items": [item.to_dict() for item in self.set_items],
            "price_history": [entry.to_dict() for entry in self.price_history],
            "last_price_updated": to_utc_z(self.last_price_updated),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductSetItem(db.Model):
    """
    One component of a set product.

    No relationship back from the component: deleting a component product
    leaves this row dangling, which the stock ledger reports as an invalid
    set configuration at sale time.
    """
    __tablename__ = "product_set_items"
    __table_args__ = (
        db.Index("ix_set_items_set", "set_product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    set_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    component_product_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "product_id": self.component_product_id,
            "quantity": self.quantity,
        }


class ProductYear(db.Model):
    __tablename__ = "product_years"
    __table_args__ = (
        db.UniqueConstraint("product_id", "year", name="uq_product_years_product_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False, index=True)


class ProductPriceHistory(db.Model):
    """Append-only: the price a product had before each price change."""
    __tablename__ = "product_price_history"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    price_cents = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_by = db.Column(db.String(120), nullable=False, default="System")

    def to_dict(self) -> dict:
        return {
            "price_cents": self.price_cents,
            "updated_at": to_utc_z(self.updated_at),
            "updated_by": self.updated_by,
        }

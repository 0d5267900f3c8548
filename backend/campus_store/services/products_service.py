# backend/campus_store/services/products_service.py
"""
Product catalog service.

- Year tags: ProductYear rows are the canonical model; the legacy scalar
  `year` is accepted on input and derived on output only.
- Price changes append the previous price to ProductPriceHistory and
  refresh last_price_updated.
- Set products hold no stock and must list existing non-set components.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import (
    AuditLog,
    BranchStock,
    Product,
    ProductPriceHistory,
    ProductSetItem,
    ProductYear,
    StockTransferItem,
)
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    NotFoundError,
    validate_payload,
    enforce_rules_product,
    normalize_years,
    parse_positive_int,
)
from campus_store.time_utils import utcnow
from .student_service import unset_item_key

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "price_cents", "stock", "image_url",
        "for_course", "branch", "remarks", "is_set",
    },
    required_on_create={"name"},
)

# Non-column inputs handled separately from validate_payload
_EXTRA_FIELDS = ("years", "year", "set_items", "updated_by")


def _split_payload(payload: dict | None) -> tuple[dict, dict]:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    columns = {k: v for k, v in payload.items() if k not in _EXTRA_FIELDS}
    extras = {k: payload[k] for k in _EXTRA_FIELDS if k in payload}
    return columns, extras


def _parse_set_items(raw, *, set_product_id: int | None) -> list[tuple[int, int]]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("Set products require at least one component in set_items")

    parsed = []
    for entry in raw:
        if not isinstance(entry, dict) or entry.get("product_id") in (None, ""):
            raise ValidationError("Each set item must have product_id and quantity")
        component_id = parse_positive_int(entry.get("product_id"), "product_id")
        quantity = parse_positive_int(entry.get("quantity", 1), "quantity")

        if set_product_id is not None and component_id == set_product_id:
            raise ValidationError("A set product cannot contain itself")

        component = db.session.get(Product, component_id)
        if component is None:
            raise NotFoundError(f"Product not found: {component_id}")
        if component.is_set:
            raise ValidationError(f"Set components must be simple products: {component.name}")
        parsed.append((component_id, quantity))
    return parsed


def _ensure_not_a_component(product: Product) -> None:
    """Sets hold only simple products, so a component cannot become a set."""
    parents = (
        db.session.query(Product)
        .join(ProductSetItem, ProductSetItem.set_product_id == Product.id)
        .filter(ProductSetItem.component_product_id == product.id)
        .distinct()
        .order_by(Product.name.asc())
        .all()
    )
    if parents:
        names = ", ".join(parent.name for parent in parents)
        raise ValidationError(f"{product.name} is a component of {names} and cannot become a set")


def _replace_set_items(product: Product, components: list[tuple[int, int]]) -> None:
    product.set_items.clear()
    for position, (component_id, quantity) in enumerate(components):
        product.set_items.append(ProductSetItem(
            component_product_id=component_id,
            quantity=quantity,
            position=position,
        ))


def _replace_years(product: Product, years: list[int]) -> None:
    product.year_rows.clear()
    db.session.flush()
    for year in years:
        product.year_rows.append(ProductYear(year=year))


def list_products(course: str | None = None, year=None) -> list[Product]:
    """
    Filter by course (exact match) and/or year.

    year matches membership in the product's years; year=0 matches products
    without a year restriction (legacy "all years").
    """
    query = db.session.query(Product)
    if course:
        query = query.filter(Product.for_course == course)
    if year not in (None, ""):
        try:
            py = int(year)
        except (TypeError, ValueError):
            py = None
        if py is not None:
            conditions = [Product.year_rows.any(ProductYear.year == py)]
            if py == 0:
                conditions.append(~Product.year_rows.any())
            query = query.filter(or_(*conditions))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def create_product(payload: dict) -> Product:
    """
    Create a product from a raw JSON payload.

    Raises:
        ValidationError: missing name, non-integer or negative numbers
        NotFoundError: unknown set component
    """
    columns, extras = _split_payload(payload)
    patch = validate_payload(model=Product, payload=columns, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = Product(
        name=patch["name"],
        description=patch.get("description") or "",
        price_cents=patch.get("price_cents") or 0,
        stock=patch.get("stock") or 0,
        image_url=patch.get("image_url"),
        for_course=patch.get("for_course") or "",
        branch=patch.get("branch") or "",
        remarks=patch.get("remarks") or "",
        is_set=bool(patch.get("is_set", False)),
        last_price_updated=utcnow(),
    )

    if product.is_set:
        components = _parse_set_items(extras.get("set_items"), set_product_id=None)
        product.stock = 0
        _replace_set_items(product, components)

    db.session.add(product)
    db.session.flush()

    years = normalize_years(extras.get("years"), extras.get("year")) or []
    _replace_years(product, years)
    db.session.flush()

    current_app.logger.info("Created product %s (%s)", product.id, product.name)
    return product


def update_product(product_id: int, payload: dict) -> Product:
    product = get_product(product_id)
    columns, extras = _split_payload(payload)
    patch = validate_payload(model=Product, payload=columns, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    if "name" in patch and not patch["name"]:
        raise ValidationError("name cannot be blank")
    if patch.get("is_set") and not product.is_set:
        _ensure_not_a_component(product)

    new_price = patch.pop("price_cents", None)
    if new_price is not None and new_price != product.price_cents:
        now = utcnow()
        product.price_history.append(ProductPriceHistory(
            price_cents=product.price_cents,
            updated_at=now,
            updated_by=str(extras.get("updated_by") or "System"),
        ))
        product.price_cents = new_price
        product.last_price_updated = now

    for key, value in patch.items():
        if value is None and key != "image_url":
            continue
        setattr(product, key, value)

    if product.is_set:
        if "set_items" in extras:
            product_components = _parse_set_items(extras["set_items"], set_product_id=product.id)
            _replace_set_items(product, product_components)
        elif not product.set_items:
            raise ValidationError("Set products require at least one component in set_items")
        product.stock = 0
    elif product.set_items:
        product.set_items.clear()

    years = normalize_years(extras.get("years"), extras.get("year"))
    if years is not None:
        _replace_years(product, years)

    db.session.flush()
    return product


def delete_product(product_id: int) -> None:
    """
    Delete a product, then best-effort unset its key from student item maps.

    Sets that list this product as a component keep the dangling reference
    and fail with InvalidSetConfigurationError when sold. Audit logs and
    transfer lines keep their rows with product_id cleared; branch stock
    entries for the product are removed.
    """
    product = get_product(product_id)
    name = product.name

    db.session.query(BranchStock).filter(BranchStock.product_id == product.id).delete()
    db.session.query(AuditLog).filter(AuditLog.product_id == product.id).update({AuditLog.product_id: None})
    db.session.query(StockTransferItem).filter(
        StockTransferItem.product_id == product.id
    ).update({StockTransferItem.product_id: None})

    db.session.delete(product)
    db.session.flush()

    updated = unset_item_key(name)
    current_app.logger.info("Deleted product %s (%s); cleared item key on %s students", product_id, name, updated)

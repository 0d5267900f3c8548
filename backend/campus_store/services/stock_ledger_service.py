# backend/campus_store/services/stock_ledger_service.py
"""
Stock ledger: per-operation change accumulator.

WHY: Sales, transfers and restorations touch several products at once, and
set products fan out into their components. Validating each line against
raw persisted stock would let two lines (or a set and a loose item sharing
a component) each pass on their own and jointly oversell. The accumulator
sums every delta destined for a product within one operation and validates
against projected stock.

INVARIANTS:
- projected stock = persisted stock + deltas already staged in this operation
- lines are staged in caller order; the first insufficient product aborts
  the whole operation (InsufficientStockError) and nothing is written
- commit writes max(0, stock + delta) per product, only after every line
  validated
- a set with no components, or a component that no longer resolves, raises
  InvalidSetConfigurationError before any commit
- an accumulator is scoped to one operation and never reused after commit
  or discard
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update


class StockError(Exception):
    """Raised when a stock change cannot be applied."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStockError(StockError):
    def __init__(self, product: Product, required: int, available: int):
        super().__init__(
            f"Insufficient stock for {product.name}. Available: {available}, Requested: {required}",
            details={
                "product_id": product.id,
                "product_name": product.name,
                "required": required,
                "available": available,
            },
        )
        self.product_id = product.id
        self.required = required
        self.available = available


class InvalidSetConfigurationError(StockError):
    pass


@dataclass(frozen=True)
class ComponentRequirement:
    """Units of one component consumed (or restored) by a set line."""
    product: Product
    per_set_quantity: int
    quantity: int
    taken: bool = True
    reason: str = ""


def load_product(product_id: int, *, lock: bool = True) -> Product | None:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def expand_set(product: Product, quantity: int) -> list[ComponentRequirement]:
    """
    Resolve a set product into component requirements for `quantity` sets.

    Raises InvalidSetConfigurationError if the set has no components or a
    component reference does not resolve.
    """
    if not product.set_items:
        raise InvalidSetConfigurationError(
            f"Set product {product.name} has no components configured",
            details={"product_id": product.id},
        )

    requirements = []
    for set_item in product.set_items:
        component = load_product(set_item.component_product_id)
        if component is None:
            raise InvalidSetConfigurationError(
                f"Set product {product.name} references missing component {set_item.component_product_id}",
                details={"product_id": product.id, "component_product_id": set_item.component_product_id},
            )
        requirements.append(ComponentRequirement(
            product=component,
            per_set_quantity=set_item.quantity,
            quantity=quantity * set_item.quantity,
        ))
    return requirements


def set_availability(product: Product) -> int:
    """How many complete sets current component stock can cover (0 if misconfigured)."""
    if not product.set_items:
        return 0
    available = None
    for set_item in product.set_items:
        component = db.session.get(Product, set_item.component_product_id)
        if component is None or set_item.quantity <= 0:
            return 0
        covered = component.stock // set_item.quantity
        available = covered if available is None else min(available, covered)
    return available or 0


class StockChangeAccumulator:
    """
    Short-lived map of product id -> staged delta for one operation.

    Usage:
        acc = StockChangeAccumulator()
        acc.stage_line(product, -2)
        acc.stage(other, -1)
        acc.commit()
    """

    def __init__(self):
        self._deltas: dict[int, int] = {}
        self._products: dict[int, Product] = {}
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Stock accumulator already committed or discarded")

    def projected_stock(self, product: Product) -> int:
        return product.stock + self._deltas.get(product.id, 0)

    def staged_delta(self, product_id: int) -> int:
        return self._deltas.get(product_id, 0)

    @property
    def deltas(self) -> dict[int, int]:
        return dict(self._deltas)

    def _validate(self, changes: list[tuple[Product, int]]) -> None:
        # Sum per product first so a line touching one product twice is checked once, jointly
        combined: dict[int, int] = {}
        products: dict[int, Product] = {}
        for product, delta in changes:
            combined[product.id] = combined.get(product.id, 0) + delta
            products[product.id] = product

        for product_id, delta in combined.items():
            if delta >= 0:
                continue
            product = products[product_id]
            available = self.projected_stock(product)
            if available < -delta:
                raise InsufficientStockError(product, required=-delta, available=available)

    def _accumulate(self, changes: list[tuple[Product, int]]) -> None:
        for product, delta in changes:
            self._products[product.id] = product
            self._deltas[product.id] = self._deltas.get(product.id, 0) + delta

    def stage(self, product: Product, delta: int) -> None:
        """Stage a literal delta against `product` (no set expansion)."""
        self._check_open()
        self._validate([(product, delta)])
        self._accumulate([(product, delta)])

    def stage_line(
        self,
        product: Product,
        delta: int,
        *,
        not_taken: dict[int, str] | None = None,
    ) -> list[ComponentRequirement]:
        """
        Stage one line item, expanding set products into their components.

        `not_taken` maps component product ids to a reason; those components
        are recorded but not deducted. Returns the component requirements
        (empty for simple products) so callers can snapshot them.
        """
        self._check_open()
        if not product.is_set:
            self.stage(product, delta)
            return []

        not_taken = not_taken or {}
        sign = -1 if delta < 0 else 1
        requirements = [
            ComponentRequirement(
                product=req.product,
                per_set_quantity=req.per_set_quantity,
                quantity=req.quantity,
                taken=req.product.id not in not_taken,
                reason=not_taken.get(req.product.id, ""),
            )
            for req in expand_set(product, abs(delta))
        ]
        changes = [(req.product, sign * req.quantity) for req in requirements if req.taken]
        self._validate(changes)
        self._accumulate(changes)
        return requirements

    def stage_restoration(self, item) -> None:
        """
        Stage the reversal of a persisted TransactionItem.

        Set items restore exactly the components recorded as taken; products
        that no longer exist are skipped.
        """
        self._check_open()
        if item.is_set and item.set_components:
            for component in item.set_components:
                if not component.taken or component.product_id is None:
                    continue
                product = self._products.get(component.product_id) or load_product(component.product_id)
                if product is not None:
                    self._accumulate([(product, component.quantity)])
            return

        if item.product_id is None:
            return
        product = self._products.get(item.product_id) or load_product(item.product_id)
        if product is None:
            return
        if item.is_set:
            # Legacy row without a component snapshot: mirror the current set configuration
            self.stage_line(product, item.quantity)
            return
        self._accumulate([(product, item.quantity)])

    def commit(self) -> dict[int, int]:
        """Write staged deltas, clamped at zero. Returns {product_id: new stock}."""
        self._check_open()
        result = {}
        for product_id, delta in self._deltas.items():
            product = self._products[product_id]
            if delta == 0:
                result[product_id] = product.stock
                continue
            product.stock = max(0, product.stock + delta)
            result[product_id] = product.stock
        db.session.flush()
        self._closed = True
        current_app.logger.debug("Committed stock changes: %s", self._deltas)
        return result

    def discard(self) -> None:
        self._deltas.clear()
        self._products.clear()
        self._closed = True


def apply_stock_changes(changes: list[tuple[Product, int]], *, expand_sets: bool = True) -> dict[int, int]:
    """Stage (product, delta) pairs in order, then commit them together."""
    acc = StockChangeAccumulator()
    try:
        for product, delta in changes:
            if expand_sets:
                acc.stage_line(product, delta)
            else:
                acc.stage(product, delta)
    except StockError:
        acc.discard()
        raise
    return acc.commit()

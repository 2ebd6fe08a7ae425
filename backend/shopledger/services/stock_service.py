# Overview: Service-layer operations for product stock; the only writer of products.stock_qty.

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import Product
from ..constants import RECORD_ACTIVE, RECORD_ARCHIVED, DEFAULT_DEPARTMENT, DEFAULT_REORDER_LEVEL
from ..errors import InsufficientStock, InvalidState
from ..validation import coerce_int, require_cents, require_quantity, require_text, optional_text
from .. import repositories
from .audit_service import Actor, SYSTEM_ACTOR, append_audit_event
from .concurrency import atomic
"""
Stock Invariants (authoritative)

- stock_qty >= 0 at all times (checked here before every write, and by a
  table CHECK constraint as a backstop).
- Every change goes through adjust_stock_locked() on a row the caller has
  locked; sales, refunds, allocations, restocks and pocket-money purchases
  all compose it inside their own transaction.
- Products are archived, never deleted.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockChange:
    product_id: int
    previous_qty: int
    new_qty: int
    delta: int
    is_low_stock: bool

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "previous_qty": self.previous_qty,
            "new_qty": self.new_qty,
            "delta": self.delta,
            "is_low_stock": self.is_low_stock,
        }


def adjust_stock_locked(product: Product, delta: int) -> StockChange:
    """
    Apply a signed stock delta to an already-locked product row.

    Raises InsufficientStock (and changes nothing) if the result would be negative.
    """
    if delta == 0:
        raise InvalidState("Stock delta cannot be zero", details={"product_id": product.id})

    previous = product.stock_qty
    new_qty = previous + delta
    if new_qty < 0:
        raise InsufficientStock(
            f"Insufficient stock for {product.name}",
            details={
                "product_id": product.id,
                "sku": product.sku,
                "available": previous,
                "requested": -delta,
            },
        )

    product.stock_qty = new_qty
    db.session.flush()
    return StockChange(
        product_id=product.id,
        previous_qty=previous,
        new_qty=new_qty,
        delta=delta,
        is_low_stock=product.is_low_stock,
    )


def adjust_stock(product_id: int, delta, *, reason: str, actor: Actor = SYSTEM_ACTOR) -> StockChange:
    """Manual stock correction (damage, stock count). Requires a reason."""
    delta = coerce_int(delta, "delta")
    if not reason or not str(reason).strip():
        raise InvalidState("A reason is required for stock adjustments")

    with atomic():
        product = repositories.get_product(product_id, lock=True)
        change = adjust_stock_locked(product, delta)
        append_audit_event(
            actor=actor,
            event_type="stock.adjusted",
            entity_type="product",
            entity_id=product.id,
            payload={**change.to_dict(), "reason": str(reason).strip()},
        )

    logger.info("stock adjusted product=%s delta=%s new_qty=%s", product_id, delta, change.new_qty)
    return change


def create_product(
    *,
    sku: str,
    name: str,
    sell_price_cents,
    buy_price_cents=0,
    department: str = DEFAULT_DEPARTMENT,
    category: str | None = None,
    description: str | None = None,
    reorder_level=DEFAULT_REORDER_LEVEL,
    is_allocatable: bool = False,
    supplier_id: int | None = None,
    initial_stock=0,
    actor: Actor = SYSTEM_ACTOR,
) -> Product:
    sku = require_text(sku, "sku", max_length=64)
    name = require_text(name, "name")
    sell_price_cents = require_cents(sell_price_cents, "sell_price_cents")
    buy_price_cents = require_cents(buy_price_cents, "buy_price_cents")
    reorder_level = coerce_int(reorder_level, "reorder_level")
    initial_stock = coerce_int(initial_stock, "initial_stock")
    if initial_stock < 0:
        raise InvalidState("initial_stock cannot be negative")

    with atomic():
        if repositories.find_product_by_sku(sku) is not None:
            raise InvalidState(f"SKU {sku} already exists", details={"sku": sku})
        if supplier_id is not None:
            repositories.get_supplier(supplier_id)

        product = Product(
            sku=sku,
            name=name,
            description=optional_text(description, "description", max_length=2000),
            department=require_text(department, "department", max_length=64),
            category=optional_text(category, "category", max_length=64),
            sell_price_cents=sell_price_cents,
            buy_price_cents=buy_price_cents,
            reorder_level=reorder_level,
            is_allocatable=bool(is_allocatable),
            supplier_id=supplier_id,
            stock_qty=0,
        )
        db.session.add(product)
        db.session.flush()

        if initial_stock:
            adjust_stock_locked(product, initial_stock)

        append_audit_event(
            actor=actor,
            event_type="product.created",
            entity_type="product",
            entity_id=product.id,
            payload={"sku": sku, "initial_stock": initial_stock},
        )

    return product


def archive_product(product_id: int, *, actor: Actor = SYSTEM_ACTOR) -> Product:
    with atomic():
        product = repositories.get_product(product_id, lock=True)
        product.status = RECORD_ARCHIVED
        append_audit_event(actor=actor, event_type="product.archived", entity_type="product", entity_id=product.id)
    return product


def list_products(*, department: str | None = None, include_archived: bool = False) -> list[Product]:
    q = db.session.query(Product)
    if not include_archived:
        q = q.filter(Product.status == RECORD_ACTIVE)
    if department:
        q = q.filter(Product.department == department)
    return q.order_by(Product.name.asc()).all()


def get_low_stock_products(*, department: str | None = None) -> list[Product]:
    q = db.session.query(Product).filter(
        Product.status == RECORD_ACTIVE,
        Product.stock_qty <= Product.reorder_level,
    )
    if department:
        q = q.filter(Product.department == department)
    return q.order_by(Product.stock_qty.asc(), Product.name.asc()).all()


def restock_quantity_locked(product: Product, quantity) -> StockChange:
    """Positive stock receipt (supplier delivery, refund return)."""
    return adjust_stock_locked(product, require_quantity(quantity))

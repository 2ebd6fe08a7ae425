# Overview: Service-layer operations for checkout; composes stock_service and balance_service in one transaction.

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem
from ..constants import (
    CUSTOMER_TYPE_LEARNER,
    CUSTOMER_TYPE_WALK_IN,
    PAYMENT_MODES,
    SALE_ADD_TO_BALANCE,
    SALE_NORMAL,
    SALE_STATUS_COMPLETED,
    SALE_TRANSACTION_TYPES,
)
from ..errors import InsufficientStock, InvalidState, ValidationError
from ..time_utils import utcnow, normalize_datetime
from ..validation import require_cents, require_choice, require_quantity, require_text, optional_text
from .. import repositories
from .audit_service import Actor, SYSTEM_ACTOR, append_audit_event
from .balance_service import PaymentMeta, apply_balance_delta_locked, charge_customer_locked
from .concurrency import atomic
from .stock_service import adjust_stock_locked
"""
Sale Invariants (authoritative)

- Validation is atomic: every line is resolved (exists, ACTIVE, same
  department, enough stock for the SUMMED quantity per product) before
  anything is written.
- subtotal = SUM(quantity * unit_price); no tax. unit_price defaults to the
  product's sell price at the moment of sale.
- Learner sale, NORMAL:         charge subtotal, then apply amount_paid (if > 0)
                                with a Payment row; any shortfall stays owed.
- Learner sale, ADD_TO_BALANCE: charge subtotal, no payment.
- Walk-in sale: never touches a ledger; must be paid in full, overpayment is
  returned as change.
- Sales and their items are immutable once written.
"""

logger = logging.getLogger(__name__)

_NUMBER_ATTEMPTS = 5


@dataclass(frozen=True)
class SaleItemInput:
    product_id: int
    quantity: int
    unit_price_cents: Optional[int] = None


@dataclass(frozen=True)
class SaleInput:
    department: str
    items: Sequence[SaleItemInput]
    customer_id: Optional[int] = None
    payment_mode: str = "cash"
    amount_paid_cents: int = 0
    transaction_type: str = SALE_NORMAL
    notes: Optional[str] = None


@dataclass(frozen=True)
class ResolvedLine:
    product: Product
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class SaleResult:
    sale_id: int
    sale_number: str
    total_cents: int
    paid_cents: int
    balance_cents: int
    change_cents: int
    items_count: int
    customer_balance_cents: Optional[int] = None
    low_stock_product_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "sale_number": self.sale_number,
            "totals": {
                "total_cents": self.total_cents,
                "paid_cents": self.paid_cents,
                "balance_cents": self.balance_cents,
                "change_cents": self.change_cents,
            },
            "items_count": self.items_count,
            "customer_balance_cents": self.customer_balance_cents,
            "low_stock_product_ids": self.low_stock_product_ids,
        }


def generate_document_number(prefix: str, column, now: datetime) -> str:
    """
    PREFIX-YYYYMMDD-NNNNN with a random 5-digit suffix, unique in ``column``.

    Collisions are re-drawn; after repeated collisions the caller gets InvalidState.
    """
    for _ in range(_NUMBER_ATTEMPTS):
        candidate = f"{prefix}-{now:%Y%m%d}-{secrets.randbelow(90000) + 10000}"
        taken = db.session.query(column).filter(column == candidate).first()
        if not taken:
            return candidate
    raise InvalidState(f"Could not allocate a unique {prefix} number")


def normalize_sale_items(items: Sequence[SaleItemInput]) -> list[SaleItemInput]:
    if not items:
        raise ValidationError("At least one item is required")
    normalized = []
    for item in items:
        if item.product_id is None:
            raise ValidationError("product_id is required for every item")
        normalized.append(SaleItemInput(
            product_id=item.product_id,
            quantity=require_quantity(item.quantity),
            unit_price_cents=(
                None if item.unit_price_cents is None
                else require_cents(item.unit_price_cents, "unit_price_cents")
            ),
        ))
    return normalized


def resolve_sale_lines(department: str, items: Sequence[SaleItemInput], products: dict[int, Product]) -> list[ResolvedLine]:
    """
    Resolve every requested line against locked products, or raise before any write.

    Raises InvalidState on a department mismatch and InsufficientStock when the
    summed quantity per product exceeds stock_qty.
    """
    lines = []
    requested: dict[int, int] = {}
    for item in items:
        product = products[item.product_id]
        if product.department != department:
            raise InvalidState(
                f"Product {product.name} belongs to {product.department} department",
                details={"product_id": product.id, "product_department": product.department, "department": department},
            )
        unit_price = product.sell_price_cents if item.unit_price_cents is None else item.unit_price_cents
        lines.append(ResolvedLine(product=product, quantity=item.quantity, unit_price_cents=unit_price))
        requested[product.id] = requested.get(product.id, 0) + item.quantity

    insufficient = [
        {
            "product_id": pid,
            "sku": products[pid].sku,
            "requested": qty,
            "available": products[pid].stock_qty,
        }
        for pid, qty in requested.items()
        if products[pid].stock_qty < qty
    ]
    if insufficient:
        first = products[insufficient[0]["product_id"]]
        raise InsufficientStock(
            f"Insufficient stock for {first.name}. Available: {first.stock_qty}",
            details={"items": insufficient},
        )
    return lines


def insert_sale_locked(
    *,
    department: str,
    customer: Optional[Customer],
    lines: Sequence[ResolvedLine],
    payment_mode: str,
    transaction_type: str,
    paid_cents: int,
    balance_cents: int,
    change_cents: int = 0,
    original_sale_id: Optional[int] = None,
    notes: Optional[str] = None,
    actor: Actor = SYSTEM_ACTOR,
    now: Optional[datetime] = None,
) -> tuple[Sale, list[int]]:
    """
    Write the sale and its items, decrementing stock for every line.

    Products in ``lines`` must already be locked. Returns the sale and the ids
    of products that dropped to or below their reorder level.
    """
    now = normalize_datetime(now) if now else utcnow()
    total = sum(line.line_total_cents for line in lines)

    sale_number = generate_document_number("SAL", Sale.sale_number, now)
    sale = Sale(
        sale_number=sale_number,
        department=department,
        customer_id=customer.id if customer else None,
        customer_type=CUSTOMER_TYPE_LEARNER if customer else CUSTOMER_TYPE_WALK_IN,
        payment_mode=payment_mode,
        transaction_type=transaction_type,
        status=SALE_STATUS_COMPLETED,
        total_cents=total,
        paid_cents=paid_cents,
        balance_cents=balance_cents,
        change_cents=change_cents,
        original_sale_id=original_sale_id,
        served_by=actor.name,
        notes=notes,
        created_at=now,
    )
    db.session.add(sale)
    try:
        db.session.flush()
    except IntegrityError as e:
        # Another checkout took the same number between the check and the insert
        raise InvalidState(
            f"Sale number {sale_number} is already in use, retry the sale",
            details={"sale_number": sale_number},
        ) from e

    low_stock = []
    for line_number, line in enumerate(lines, start=1):
        change = adjust_stock_locked(line.product, -line.quantity)
        if change.is_low_stock and line.product.id not in low_stock:
            low_stock.append(line.product.id)
        db.session.add(SaleItem(
            sale_id=sale.id,
            line_number=line_number,
            product_id=line.product.id,
            sku=line.product.sku,
            product_name=line.product.name,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            cost_price_cents=line.product.buy_price_cents,
            refunded_quantity=0,
        ))
    db.session.flush()
    return sale, low_stock


def process_sale(sale_input: SaleInput, *, actor: Actor = SYSTEM_ACTOR, now: Optional[datetime] = None) -> SaleResult:
    """
    Checkout: validate, decrement stock, write the sale, post to the ledger.

    One transaction; any failure leaves stock, balances and sales untouched.
    """
    department = require_text(sale_input.department, "department", max_length=64)
    payment_mode = require_choice(sale_input.payment_mode, "payment_mode", PAYMENT_MODES)
    transaction_type = require_choice(sale_input.transaction_type, "transaction_type", SALE_TRANSACTION_TYPES)
    amount_paid = require_cents(sale_input.amount_paid_cents, "amount_paid_cents")
    notes = optional_text(sale_input.notes, "notes")
    items = normalize_sale_items(sale_input.items)

    if transaction_type == SALE_ADD_TO_BALANCE and amount_paid > 0:
        raise ValidationError("amount_paid_cents must be 0 for add-to-balance sales")

    with atomic():
        customer = None
        if sale_input.customer_id is not None:
            customer = repositories.get_customer(sale_input.customer_id, lock=True)
        elif transaction_type == SALE_ADD_TO_BALANCE:
            raise InvalidState("Add-to-balance sales require a customer")

        products = repositories.lock_products(item.product_id for item in items)
        lines = resolve_sale_lines(department, items, products)
        total = sum(line.line_total_cents for line in lines)

        change_cents = 0
        if customer is None:
            if amount_paid < total:
                raise InvalidState(
                    "Walk-in sales must be paid in full",
                    details={"total_cents": total, "amount_paid_cents": amount_paid},
                )
            change_cents = amount_paid - total
            paid_cents = total
        else:
            paid_cents = amount_paid

        sale, low_stock = insert_sale_locked(
            department=department,
            customer=customer,
            lines=lines,
            payment_mode=payment_mode,
            transaction_type=transaction_type,
            paid_cents=paid_cents,
            balance_cents=max(0, total - paid_cents),
            change_cents=change_cents,
            notes=notes,
            actor=actor,
            now=now,
        )

        if customer is not None:
            if total > 0:
                charge_customer_locked(customer, total, actor=actor, sale_id=sale.id)
            if transaction_type == SALE_NORMAL and amount_paid > 0:
                apply_balance_delta_locked(
                    customer,
                    amount_paid,
                    actor=actor,
                    payment=PaymentMeta(
                        method=payment_mode,
                        reference=sale.sale_number,
                        notes=notes or "POS sale payment",
                        sale_id=sale.id,
                    ),
                )

        append_audit_event(
            actor=actor,
            event_type="sale.completed",
            entity_type="sale",
            entity_id=sale.id,
            payload={
                "sale_number": sale.sale_number,
                "department": department,
                "customer_id": sale.customer_id,
                "transaction_type": transaction_type,
                "total_cents": total,
                "paid_cents": paid_cents,
            },
            occurred_at=sale.created_at,
        )

        result = SaleResult(
            sale_id=sale.id,
            sale_number=sale.sale_number,
            total_cents=total,
            paid_cents=paid_cents,
            balance_cents=sale.balance_cents,
            change_cents=change_cents,
            items_count=len(lines),
            customer_balance_cents=customer.balance_cents if customer else None,
            low_stock_product_ids=low_stock,
        )

    logger.info("sale %s completed total_cents=%s department=%s", result.sale_number, total, department)
    if result.low_stock_product_ids:
        logger.warning("low stock after sale %s: products %s", result.sale_number, result.low_stock_product_ids)
    return result


def get_sale(sale_id: int) -> Sale:
    return repositories.get_sale(sale_id)


def list_sales(
    *,
    department: str | None = None,
    customer_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[Sale]:
    q = db.session.query(Sale)
    if department:
        q = q.filter(Sale.department == department)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()

# Overview: Service-layer operations for suppliers; restock credit obligations and FIFO supplier payments.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Restock, RestockLine, Supplier, SupplierCredit, SupplierPayment
from ..constants import (
    CREDIT_PAID,
    CREDIT_UNPAID,
    DEFAULT_DEPARTMENT,
    DEFAULT_REORDER_LEVEL,
    PAYMENT_MODES,
    RECORD_ACTIVE,
    RECORD_ARCHIVED,
    RESTOCK_PAID,
    RESTOCK_PENDING_PAYMENT,
)
from ..errors import InsufficientBalance, InvalidState, ValidationError
from ..time_utils import utcnow, normalize_datetime, to_utc_z
from ..validation import coerce_int, require_cents, require_choice, require_quantity, require_text, optional_text
from .. import repositories
from .audit_service import Actor, SYSTEM_ACTOR, append_audit_event
from .concurrency import atomic, lock_for_update
from .stock_service import restock_quantity_locked
"""
Supplier Credit Invariants (authoritative)

- supplier.balance_cents == SUM(amount_cents) over the supplier's UNPAID credits.
- A restock creates exactly one credit: amount = original_amount = total_cost,
  due SUPPLIER_CREDIT_DAYS (default 30) after delivery.
- total_cost = SUM(quantity * buy_price) + misc_expenses.
- Payments never exceed the outstanding balance and are applied to unpaid
  credits oldest-first (created_at, then id). A credit reaching zero is
  marked paid; a restock whose credits are all paid is marked paid.
- Restocked units enter stock through stock_service only.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestockItemInput:
    quantity: int
    buy_price_cents: int
    sell_price_cents: int
    product_id: Optional[int] = None
    sku: Optional[str] = None
    name: Optional[str] = None
    department: Optional[str] = None
    category: Optional[str] = None
    reorder_level: Optional[int] = None


@dataclass(frozen=True)
class RestockInput:
    supplier_id: int
    items: Sequence[RestockItemInput]
    misc_expenses_cents: int = 0
    notes: Optional[str] = None


@dataclass(frozen=True)
class RestockResult:
    restock: Restock
    credit: SupplierCredit
    supplier: Supplier
    low_stock_product_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "restock": self.restock.to_dict(),
            "credit": self.credit.to_dict(),
            "supplier": self.supplier.to_dict(),
            "low_stock_product_ids": self.low_stock_product_ids,
        }


@dataclass(frozen=True)
class SupplierPaymentInput:
    supplier_id: int
    amount_cents: int
    method: str = "cash"
    reference: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class SupplierPaymentResult:
    payment: SupplierPayment
    previous_balance_cents: int
    new_balance_cents: int
    credits_applied: list[dict]

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict(),
            "previous_balance_cents": self.previous_balance_cents,
            "new_balance_cents": self.new_balance_cents,
            "credits_applied": self.credits_applied,
        }


def _credit_days() -> int:
    return int(current_app.config.get("SUPPLIER_CREDIT_DAYS", 30))


def create_supplier(
    *,
    name: str,
    contact_person: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    actor: Actor = SYSTEM_ACTOR,
) -> Supplier:
    """Create a supplier, or return the active one with the same name (case-insensitive)."""
    name = require_text(name, "name")

    with atomic():
        existing = (
            db.session.query(Supplier)
            .filter(func.lower(Supplier.name) == name.lower(), Supplier.status == RECORD_ACTIVE)
            .first()
        )
        if existing is not None:
            return existing

        supplier = Supplier(
            name=name,
            contact_person=optional_text(contact_person, "contact_person"),
            phone=optional_text(phone, "phone", max_length=32),
            email=optional_text(email, "email"),
            address=optional_text(address, "address", max_length=2000),
            balance_cents=0,
            status=RECORD_ACTIVE,
        )
        db.session.add(supplier)
        db.session.flush()
        append_audit_event(
            actor=actor,
            event_type="supplier.created",
            entity_type="supplier",
            entity_id=supplier.id,
            payload={"name": name},
        )
    return supplier


def archive_supplier(supplier_id: int, *, actor: Actor = SYSTEM_ACTOR) -> Supplier:
    with atomic():
        supplier = repositories.get_supplier(supplier_id, lock=True)
        if supplier.balance_cents > 0:
            raise InvalidState(
                "Cannot archive a supplier with an outstanding balance",
                details={"supplier_id": supplier.id, "balance_cents": supplier.balance_cents},
            )
        supplier.status = RECORD_ARCHIVED
        append_audit_event(actor=actor, event_type="supplier.archived", entity_type="supplier", entity_id=supplier.id)
    return supplier


def list_suppliers(*, include_archived: bool = False) -> list[Supplier]:
    q = db.session.query(Supplier)
    if not include_archived:
        q = q.filter(Supplier.status == RECORD_ACTIVE)
    return q.order_by(Supplier.name.asc()).all()


def normalize_restock_items(items: Sequence[RestockItemInput]) -> list[RestockItemInput]:
    """Validate every line before any product is looked up or created."""
    if not items:
        raise ValidationError("At least one item is required")
    normalized = []
    for item in items:
        normalized.append(RestockItemInput(
            quantity=require_quantity(item.quantity),
            buy_price_cents=require_cents(item.buy_price_cents, "buy_price_cents"),
            sell_price_cents=require_cents(item.sell_price_cents, "sell_price_cents"),
            product_id=None if item.product_id is None else coerce_int(item.product_id, "product_id"),
            sku=optional_text(item.sku, "sku", max_length=64),
            name=optional_text(item.name, "name"),
            department=(
                DEFAULT_DEPARTMENT if item.department is None
                else require_text(item.department, "department", max_length=64)
            ),
            category=optional_text(item.category, "category", max_length=64),
            reorder_level=None if item.reorder_level is None else coerce_int(item.reorder_level, "reorder_level"),
        ))
    return normalized


def _resolve_restock_products(items: Sequence[RestockItemInput]) -> dict[int, Product]:
    """Lock every existing product referenced by id or SKU (ascending id order)."""
    ids = set()
    for item in items:
        if item.product_id is not None:
            ids.add(item.product_id)
        elif item.sku:
            product = repositories.find_product_by_sku(item.sku)
            if product is not None:
                if product.status != RECORD_ACTIVE:
                    raise InvalidState(f"Product {product.sku} is archived", details={"product_id": product.id})
                ids.add(product.id)
    return repositories.lock_products(ids)


def process_restock(
    restock_input: RestockInput,
    *,
    actor: Actor = SYSTEM_ACTOR,
    now: Optional[datetime] = None,
) -> RestockResult:
    """
    Record a supplier delivery: stock in, credit owed.

    Existing products get their prices and supplier updated; unknown SKUs
    create new products (sku and name required).
    """
    items = normalize_restock_items(restock_input.items)
    misc = require_cents(restock_input.misc_expenses_cents, "misc_expenses_cents")
    now = normalize_datetime(now) if now else utcnow()

    with atomic():
        supplier = repositories.get_supplier(restock_input.supplier_id, lock=True)
        products = _resolve_restock_products(items)
        by_sku = {p.sku: p for p in products.values()}

        restock = Restock(
            supplier_id=supplier.id,
            misc_expenses_cents=misc,
            notes=optional_text(restock_input.notes, "notes"),
            received_by=actor.name,
            status=RESTOCK_PENDING_PAYMENT,
            created_at=now,
        )
        db.session.add(restock)
        db.session.flush()

        items_cost = 0
        expected_revenue = 0
        low_stock = []
        for item in items:
            quantity = item.quantity
            buy = item.buy_price_cents
            sell = item.sell_price_cents

            if item.product_id is not None:
                product = products[item.product_id]
            elif item.sku in by_sku:
                product = by_sku[item.sku]
            else:
                product = Product(
                    sku=require_text(item.sku, "sku", max_length=64),
                    name=require_text(item.name, "name"),
                    department=item.department,
                    category=item.category,
                    reorder_level=DEFAULT_REORDER_LEVEL if item.reorder_level is None else item.reorder_level,
                    stock_qty=0,
                    status=RECORD_ACTIVE,
                )
                db.session.add(product)
                db.session.flush()
                by_sku[product.sku] = product

            product.buy_price_cents = buy
            product.sell_price_cents = sell
            product.supplier_id = supplier.id
            change = restock_quantity_locked(product, quantity)
            if change.is_low_stock:
                low_stock.append(product.id)

            line_cost = quantity * buy
            items_cost += line_cost
            expected_revenue += quantity * sell
            db.session.add(RestockLine(
                restock_id=restock.id,
                product_id=product.id,
                quantity=quantity,
                buy_price_cents=buy,
                sell_price_cents=sell,
                line_cost_cents=line_cost,
            ))

        total_cost = items_cost + misc
        restock.total_cost_cents = total_cost
        restock.expected_profit_cents = expected_revenue - total_cost

        credit = SupplierCredit(
            supplier_id=supplier.id,
            restock_id=restock.id,
            amount_cents=total_cost,
            original_amount_cents=total_cost,
            due_date=now + timedelta(days=_credit_days()),
            status=CREDIT_UNPAID,
            created_at=now,
        )
        if total_cost == 0:
            credit.status = CREDIT_PAID
            credit.paid_at = now
            restock.status = RESTOCK_PAID
        db.session.add(credit)

        supplier.balance_cents += total_cost
        db.session.flush()

        append_audit_event(
            actor=actor,
            event_type="supplier.restocked",
            entity_type="supplier",
            entity_id=supplier.id,
            payload={
                "restock_id": restock.id,
                "credit_id": credit.id,
                "total_cost_cents": total_cost,
                "misc_expenses_cents": misc,
                "lines": len(items),
            },
            occurred_at=now,
        )
        result = RestockResult(restock=restock, credit=credit, supplier=supplier, low_stock_product_ids=low_stock)

    logger.info("restock %s from supplier %s total_cents=%s", result.restock.id, restock_input.supplier_id, total_cost)
    return result


def record_supplier_payment(
    payment_input: SupplierPaymentInput,
    *,
    actor: Actor = SYSTEM_ACTOR,
    now: Optional[datetime] = None,
) -> SupplierPaymentResult:
    """
    Pay a supplier; consumes unpaid credits oldest-first.

    Raises InsufficientBalance when nothing is owed or the amount exceeds the balance.
    """
    amount = require_cents(payment_input.amount_cents, "amount_cents", allow_zero=False)
    method = require_choice(payment_input.method, "method", PAYMENT_MODES)
    now = normalize_datetime(now) if now else utcnow()

    with atomic():
        supplier = repositories.get_supplier(payment_input.supplier_id, lock=True)
        previous = supplier.balance_cents
        if previous <= 0:
            raise InsufficientBalance(
                f"No outstanding balance for supplier {supplier.name}",
                details={"supplier_id": supplier.id, "balance_cents": previous},
            )
        if amount > previous:
            raise InsufficientBalance(
                f"Payment exceeds outstanding balance of {previous}",
                details={"supplier_id": supplier.id, "balance_cents": previous, "amount_cents": amount},
            )

        credits = lock_for_update(
            db.session.query(SupplierCredit)
            .filter(SupplierCredit.supplier_id == supplier.id, SupplierCredit.status == CREDIT_UNPAID)
            .order_by(SupplierCredit.created_at.asc(), SupplierCredit.id.asc())
        ).all()

        remaining = amount
        applied = []
        for credit in credits:
            if remaining <= 0:
                break
            take = min(credit.amount_cents, remaining)
            credit.amount_cents -= take
            remaining -= take
            if credit.amount_cents == 0:
                credit.status = CREDIT_PAID
                credit.paid_at = now
            applied.append({
                "credit_id": credit.id,
                "applied_cents": take,
                "remaining_cents": credit.amount_cents,
                "status": credit.status,
            })
        db.session.flush()

        # Restocks whose credits are now all settled
        settled_restock_ids = {c.restock_id for c in credits if c.status == CREDIT_PAID and c.restock_id}
        for restock_id in settled_restock_ids:
            open_credits = (
                db.session.query(func.count(SupplierCredit.id))
                .filter(SupplierCredit.restock_id == restock_id, SupplierCredit.status == CREDIT_UNPAID)
                .scalar()
            )
            if not open_credits:
                restock = db.session.get(Restock, restock_id)
                restock.status = RESTOCK_PAID

        supplier.balance_cents = previous - amount

        payment = SupplierPayment(
            supplier_id=supplier.id,
            amount_cents=amount,
            method=method,
            reference=optional_text(payment_input.reference, "reference", max_length=64),
            notes=optional_text(payment_input.notes, "notes"),
            paid_by=actor.name,
            created_at=now,
        )
        db.session.add(payment)
        db.session.flush()

        append_audit_event(
            actor=actor,
            event_type="supplier.payment_recorded",
            entity_type="supplier",
            entity_id=supplier.id,
            payload={
                "payment_id": payment.id,
                "amount_cents": amount,
                "previous_balance_cents": previous,
                "new_balance_cents": supplier.balance_cents,
                "credits_applied": applied,
            },
            occurred_at=now,
        )
        result = SupplierPaymentResult(
            payment=payment,
            previous_balance_cents=previous,
            new_balance_cents=supplier.balance_cents,
            credits_applied=applied,
        )

    logger.info("supplier %s paid %s, balance %s -> %s", payment_input.supplier_id, amount, previous, result.new_balance_cents)
    return result


def get_supplier_summary(supplier_id: int, *, now: Optional[datetime] = None) -> dict:
    """Balance, unpaid credits (with overdue totals) and payment history."""
    now = normalize_datetime(now) if now else utcnow()
    supplier = repositories.get_supplier(supplier_id, include_archived=True)

    unpaid = (
        db.session.query(SupplierCredit)
        .filter(SupplierCredit.supplier_id == supplier.id, SupplierCredit.status == CREDIT_UNPAID)
        .order_by(SupplierCredit.created_at.asc(), SupplierCredit.id.asc())
        .all()
    )
    payments = (
        db.session.query(SupplierPayment)
        .filter(SupplierPayment.supplier_id == supplier.id)
        .order_by(SupplierPayment.created_at.desc(), SupplierPayment.id.desc())
        .all()
    )
    overdue = [c for c in unpaid if normalize_datetime(c.due_date) < now]
    total_overdue = sum(c.amount_cents for c in overdue)

    return {
        "supplier": supplier.to_dict(),
        "credit_summary": {
            "total_credit_cents": sum(c.amount_cents for c in unpaid),
            "total_paid_cents": sum(p.amount_cents for p in payments),
            "current_balance_cents": supplier.balance_cents,
            "unpaid_credits_count": len(unpaid),
            "overdue_credits_count": len(overdue),
            "total_overdue_cents": total_overdue,
            "has_overdue": total_overdue > 0,
        },
        "credits": [c.to_dict() for c in unpaid],
        "payments": [p.to_dict() for p in payments],
    }


def get_due_credits(*, now: Optional[datetime] = None) -> list[dict]:
    """Unpaid credits past their due date across active suppliers, oldest due first."""
    now = normalize_datetime(now) if now else utcnow()
    rows = (
        db.session.query(SupplierCredit, Supplier)
        .join(Supplier, SupplierCredit.supplier_id == Supplier.id)
        .filter(
            SupplierCredit.status == CREDIT_UNPAID,
            SupplierCredit.due_date < now,
            Supplier.status == RECORD_ACTIVE,
        )
        .order_by(SupplierCredit.due_date.asc(), SupplierCredit.id.asc())
        .all()
    )
    return [
        {
            **credit.to_dict(),
            "supplier_name": supplier.name,
            "supplier_phone": supplier.phone,
            "supplier_email": supplier.email,
            "days_overdue": (now.date() - normalize_datetime(credit.due_date).date()).days,
            "as_of": to_utc_z(now),
        }
        for credit, supplier in rows
    ]


def get_supplier_restocks(supplier_id: int) -> list[Restock]:
    supplier = repositories.get_supplier(supplier_id, include_archived=True)
    return (
        db.session.query(Restock)
        .filter(Restock.supplier_id == supplier.id)
        .order_by(Restock.created_at.desc(), Restock.id.desc())
        .all()
    )

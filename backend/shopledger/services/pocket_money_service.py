# Overview: Service-layer operations for the boarders' pocket-money subledger; purchases, top-ups and deductions.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Customer, PocketMoneyTransaction
from ..constants import (
    PAYMENT_POCKET_MONEY,
    POCKET_DEDUCT,
    POCKET_PURCHASE,
    POCKET_TOP_UP,
    SALE_NORMAL,
)
from ..errors import InsufficientBalance, InvalidState
from ..time_utils import utcnow, normalize_datetime
from ..validation import require_cents, require_text
from .. import repositories
from .audit_service import Actor, SYSTEM_ACTOR, append_audit_event
from .concurrency import atomic
from .sales_service import SaleItemInput, SaleResult, insert_sale_locked, normalize_sale_items, resolve_sale_lines
"""
Pocket-Money Invariants (authoritative)

- pocket_money_balance_cents >= 0 at all times; it is separate from the
  account ledger and never affects customers.balance_cents.
- Only boarders with pocket money enabled may spend it, and only in the
  departments listed in POCKET_MONEY_DEPARTMENTS.
- A purchase is a Sale (payment_mode pocket_money, fully paid) plus a
  PURCHASE transaction; stock and balance move in one transaction.
- Deductions require a reason and floor the balance at zero.
- Every movement appends a PocketMoneyTransaction with the balance after it.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PocketMoneyPurchaseInput:
    customer_id: int
    department: str
    items: Sequence[SaleItemInput]


def allowed_departments() -> tuple[str, ...]:
    return tuple(current_app.config.get("POCKET_MONEY_DEPARTMENTS", ()))


def _require_reason(reason: Optional[str], action: str) -> str:
    if not reason or not str(reason).strip():
        raise InvalidState(f"A reason is required to {action}")
    return str(reason).strip()


def _log_transaction(
    customer: Customer,
    transaction_type: str,
    amount_cents: int,
    *,
    actor: Actor,
    reason: Optional[str] = None,
    sale_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PocketMoneyTransaction:
    txn = PocketMoneyTransaction(
        customer_id=customer.id,
        sale_id=sale_id,
        transaction_type=transaction_type,
        amount_cents=amount_cents,
        balance_after_cents=customer.pocket_money_balance_cents,
        reason=reason,
        recorded_by=actor.name,
        created_at=now or utcnow(),
    )
    db.session.add(txn)
    db.session.flush()
    append_audit_event(
        actor=actor,
        event_type=f"pocket_money.{transaction_type.lower()}",
        entity_type="customer",
        entity_id=customer.id,
        payload={
            "transaction_id": txn.id,
            "amount_cents": amount_cents,
            "balance_after_cents": txn.balance_after_cents,
            "sale_id": sale_id,
            "reason": reason,
        },
        occurred_at=txn.created_at,
    )
    return txn


def _require_spender(customer: Customer) -> None:
    if not customer.is_boarder:
        raise InvalidState(
            "Pocket money is only available to boarding learners",
            details={"customer_id": customer.id, "boarding_status": customer.boarding_status},
        )
    if not customer.pocket_money_enabled:
        raise InvalidState(
            "Pocket money is not enabled for this learner",
            details={"customer_id": customer.id},
        )


def purchase(
    purchase_input: PocketMoneyPurchaseInput,
    *,
    actor: Actor = SYSTEM_ACTOR,
    now: Optional[datetime] = None,
) -> SaleResult:
    """
    Spend pocket money on goods.

    Raises InvalidState (department, eligibility), InsufficientBalance and
    InsufficientStock; nothing is written on failure.
    """
    department = require_text(purchase_input.department, "department", max_length=64)
    departments = allowed_departments()
    if department not in departments:
        raise InvalidState(
            f"Pocket money can only be used in: {', '.join(departments)}",
            details={"department": department, "allowed_departments": list(departments)},
        )
    items = normalize_sale_items(purchase_input.items)
    now = normalize_datetime(now) if now else utcnow()

    with atomic():
        customer = repositories.get_customer(purchase_input.customer_id, lock=True)
        _require_spender(customer)

        products = repositories.lock_products(item.product_id for item in items)
        lines = resolve_sale_lines(department, items, products)
        total = sum(line.line_total_cents for line in lines)

        if customer.pocket_money_balance_cents < total:
            raise InsufficientBalance(
                "Insufficient pocket money balance",
                details={
                    "customer_id": customer.id,
                    "balance_cents": customer.pocket_money_balance_cents,
                    "required_cents": total,
                },
            )

        sale, low_stock = insert_sale_locked(
            department=department,
            customer=customer,
            lines=lines,
            payment_mode=PAYMENT_POCKET_MONEY,
            transaction_type=SALE_NORMAL,
            paid_cents=total,
            balance_cents=0,
            notes="Pocket money purchase",
            actor=actor,
            now=now,
        )

        customer.pocket_money_balance_cents -= total
        _log_transaction(
            customer,
            POCKET_PURCHASE,
            -total,
            actor=actor,
            reason=f"Purchase {sale.sale_number}",
            sale_id=sale.id,
            now=now,
        )

        result = SaleResult(
            sale_id=sale.id,
            sale_number=sale.sale_number,
            total_cents=total,
            paid_cents=total,
            balance_cents=0,
            change_cents=0,
            items_count=len(lines),
            customer_balance_cents=customer.balance_cents,
            low_stock_product_ids=low_stock,
        )

    logger.info("pocket money purchase %s customer=%s total_cents=%s", result.sale_number, purchase_input.customer_id, total)
    return result


def top_up(customer_id: int, amount_cents, *, reason: Optional[str] = None, actor: Actor = SYSTEM_ACTOR) -> PocketMoneyTransaction:
    amount = require_cents(amount_cents, "amount_cents", allow_zero=False)

    with atomic():
        customer = repositories.get_customer(customer_id, lock=True)
        _require_spender(customer)
        customer.pocket_money_balance_cents += amount
        txn = _log_transaction(customer, POCKET_TOP_UP, amount, actor=actor, reason=reason or "Top-up")

    logger.info("pocket money top-up customer=%s amount_cents=%s", customer_id, amount)
    return txn


def deduct(customer_id: int, amount_cents, *, reason: str, actor: Actor = SYSTEM_ACTOR) -> PocketMoneyTransaction:
    """Manual deduction. The balance is floored at zero; the logged amount is what was actually taken."""
    amount = require_cents(amount_cents, "amount_cents", allow_zero=False)
    reason = _require_reason(reason, "deduct pocket money")

    with atomic():
        customer = repositories.get_customer(customer_id, lock=True)
        previous = customer.pocket_money_balance_cents
        customer.pocket_money_balance_cents = max(0, previous - amount)
        taken = previous - customer.pocket_money_balance_cents
        txn = _log_transaction(customer, POCKET_DEDUCT, -taken, actor=actor, reason=reason)

    if taken < amount:
        logger.warning("pocket money deduction for customer %s floored at zero (requested %s)", customer_id, amount)
    return txn


def enable(customer_id: int, *, actor: Actor = SYSTEM_ACTOR) -> Customer:
    with atomic():
        customer = repositories.get_customer(customer_id, lock=True)
        if not customer.is_boarder:
            raise InvalidState(
                "Pocket money is only available to boarding learners",
                details={"customer_id": customer.id, "boarding_status": customer.boarding_status},
            )
        customer.pocket_money_enabled = True
        append_audit_event(actor=actor, event_type="pocket_money.enabled", entity_type="customer", entity_id=customer.id)
    return customer


def disable(customer_id: int, *, reason: str, actor: Actor = SYSTEM_ACTOR) -> Customer:
    reason = _require_reason(reason, "disable pocket money")
    with atomic():
        customer = repositories.get_customer(customer_id, lock=True)
        customer.pocket_money_enabled = False
        append_audit_event(
            actor=actor,
            event_type="pocket_money.disabled",
            entity_type="customer",
            entity_id=customer.id,
            payload={"reason": reason, "balance_cents": customer.pocket_money_balance_cents},
        )
    return customer


def status(customer_id: int, *, amount_cents: int = 0) -> dict:
    """Eligibility snapshot; ``amount_cents`` is the prospective spend checked against the balance."""
    customer = repositories.get_customer(customer_id)
    return {
        "customer_id": customer.id,
        "is_boarder": customer.is_boarder,
        "has_pocket_money": customer.is_boarder and customer.pocket_money_enabled,
        "has_sufficient_balance": customer.pocket_money_balance_cents >= amount_cents,
        "balance_cents": customer.pocket_money_balance_cents,
        "allowed_departments": list(allowed_departments()),
    }


def history(customer_id: int, *, limit: int = 100) -> list[PocketMoneyTransaction]:
    customer = repositories.get_customer(customer_id)
    return (
        db.session.query(PocketMoneyTransaction)
        .filter(PocketMoneyTransaction.customer_id == customer.id)
        .order_by(PocketMoneyTransaction.created_at.desc(), PocketMoneyTransaction.id.desc())
        .limit(limit)
        .all()
    )

# Overview: Service-layer operations for the customer account ledger; the only writer of customers.balance_cents.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..extensions import db
from ..models import Customer, Payment
from ..constants import PAYMENT_MODES, PAYMENT_REFUND, PAYMENT_STATUS_COMPLETED
from ..validation import require_cents, require_choice, require_signed_cents, optional_text
from .. import repositories
from .audit_service import Actor, SYSTEM_ACTOR, append_audit_event
from .concurrency import atomic
"""
Customer Ledger Invariants (authoritative)

Stored per customer (all cents):
- total_items_cost: everything ever charged to the account
- amount_paid:      everything ever paid against it (net of refunds)
- balance:          max(0, total_items_cost - amount_paid), recomputed after
                    EVERY write; never written any other way

Primitives (all require the customer row to be locked by the caller):
- apply_balance_delta_locked: amount_paid += |amount| (payment received)
- charge_customer_locked:     total_items_cost += amount (goods on account)
- reduce_charge_locked:       total_items_cost -= amount, floored at 0 (goods returned)
- reverse_payment_locked:     amount_paid -= amount, floored at 0 (cash handed back)

Payments:
- Payment rows are append-only; a refund reversal is a NEGATIVE payment.
- Every primitive appends an AuditEvent in the same transaction.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentMeta:
    """How money reached the ledger. Present => a Payment row is written."""
    method: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    sale_id: Optional[int] = None
    is_installment: bool = False


@dataclass(frozen=True)
class BalanceChange:
    customer_id: int
    previous_balance_cents: int
    new_balance_cents: int
    payment: Optional[Payment] = None

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "previous_balance_cents": self.previous_balance_cents,
            "new_balance_cents": self.new_balance_cents,
            "payment": self.payment.to_dict() if self.payment else None,
        }


def _recompute_balance(customer: Customer) -> None:
    customer.balance_cents = max(0, customer.total_items_cost_cents - customer.amount_paid_cents)


def _insert_payment(customer: Customer, amount_cents: int, meta: PaymentMeta, actor: Actor) -> Payment:
    payment = Payment(
        customer_id=customer.id,
        sale_id=meta.sale_id,
        amount_cents=amount_cents,
        method=meta.method,
        reference=meta.reference,
        notes=meta.notes,
        is_installment=meta.is_installment,
        status=PAYMENT_STATUS_COMPLETED,
        recorded_by=actor.name,
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def apply_balance_delta_locked(
    customer: Customer,
    amount_cents: int,
    *,
    actor: Actor = SYSTEM_ACTOR,
    payment: Optional[PaymentMeta] = None,
) -> BalanceChange:
    """Register money received on an already-locked customer row."""
    amount = abs(require_signed_cents(amount_cents, "amount_cents"))
    previous = customer.balance_cents

    customer.amount_paid_cents += amount
    _recompute_balance(customer)

    payment_row = _insert_payment(customer, amount, payment, actor) if payment else None
    db.session.flush()

    append_audit_event(
        actor=actor,
        event_type="ledger.payment_applied",
        entity_type="customer",
        entity_id=customer.id,
        payload={
            "amount_cents": amount,
            "previous_balance_cents": previous,
            "new_balance_cents": customer.balance_cents,
            "payment_id": payment_row.id if payment_row else None,
        },
    )
    return BalanceChange(customer.id, previous, customer.balance_cents, payment_row)


def apply_balance_delta(
    customer_id: int,
    amount_cents: int,
    *,
    actor: Actor = SYSTEM_ACTOR,
    payment: Optional[PaymentMeta] = None,
) -> BalanceChange:
    """
    Apply a payment to a customer's account in its own transaction.

    Raises NotFound if the customer does not exist.
    """
    with atomic():
        customer = repositories.get_customer(customer_id, lock=True)
        change = apply_balance_delta_locked(customer, amount_cents, actor=actor, payment=payment)

    logger.info(
        "balance delta applied customer=%s balance %s -> %s",
        customer_id, change.previous_balance_cents, change.new_balance_cents,
    )
    return change


def charge_customer_locked(
    customer: Customer,
    amount_cents: int,
    *,
    actor: Actor = SYSTEM_ACTOR,
    sale_id: Optional[int] = None,
) -> BalanceChange:
    """Add goods taken on account to the customer's debt."""
    amount = require_cents(amount_cents, "amount_cents", allow_zero=False)
    previous = customer.balance_cents

    customer.total_items_cost_cents += amount
    _recompute_balance(customer)
    db.session.flush()

    append_audit_event(
        actor=actor,
        event_type="ledger.charged",
        entity_type="customer",
        entity_id=customer.id,
        payload={
            "amount_cents": amount,
            "sale_id": sale_id,
            "previous_balance_cents": previous,
            "new_balance_cents": customer.balance_cents,
        },
    )
    return BalanceChange(customer.id, previous, customer.balance_cents)


def charge_customer(customer_id: int, amount_cents: int, *, actor: Actor = SYSTEM_ACTOR) -> BalanceChange:
    with atomic():
        customer = repositories.get_customer(customer_id, lock=True)
        return charge_customer_locked(customer, amount_cents, actor=actor)


def reduce_charge_locked(
    customer: Customer,
    amount_cents: int,
    *,
    actor: Actor = SYSTEM_ACTOR,
    sale_id: Optional[int] = None,
) -> BalanceChange:
    """Take returned goods off the customer's debt (floored at zero)."""
    amount = require_cents(amount_cents, "amount_cents", allow_zero=False)
    previous = customer.balance_cents

    customer.total_items_cost_cents = max(0, customer.total_items_cost_cents - amount)
    _recompute_balance(customer)
    db.session.flush()

    append_audit_event(
        actor=actor,
        event_type="ledger.charge_reduced",
        entity_type="customer",
        entity_id=customer.id,
        payload={
            "amount_cents": amount,
            "sale_id": sale_id,
            "previous_balance_cents": previous,
            "new_balance_cents": customer.balance_cents,
        },
    )
    return BalanceChange(customer.id, previous, customer.balance_cents)


def reverse_payment_locked(
    customer: Customer,
    amount_cents: int,
    *,
    actor: Actor = SYSTEM_ACTOR,
    sale_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> BalanceChange:
    """
    Hand money back: amount_paid -= amount (floored at zero) and append a
    NEGATIVE payment row.
    """
    amount = require_cents(amount_cents, "amount_cents", allow_zero=False)
    previous = customer.balance_cents

    customer.amount_paid_cents = max(0, customer.amount_paid_cents - amount)
    _recompute_balance(customer)

    payment_row = _insert_payment(
        customer,
        -amount,
        PaymentMeta(method=PAYMENT_REFUND, sale_id=sale_id, notes=notes),
        actor,
    )

    append_audit_event(
        actor=actor,
        event_type="ledger.payment_reversed",
        entity_type="customer",
        entity_id=customer.id,
        payload={
            "amount_cents": amount,
            "sale_id": sale_id,
            "payment_id": payment_row.id,
            "previous_balance_cents": previous,
            "new_balance_cents": customer.balance_cents,
        },
    )
    return BalanceChange(customer.id, previous, customer.balance_cents, payment_row)


def reverse_payment(
    customer_id: int,
    amount_cents: int,
    *,
    actor: Actor = SYSTEM_ACTOR,
    sale_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> BalanceChange:
    with atomic():
        customer = repositories.get_customer(customer_id, lock=True)
        return reverse_payment_locked(customer, amount_cents, actor=actor, sale_id=sale_id, notes=notes)


def record_installment_payment(
    customer_id: int,
    amount_cents,
    *,
    method: str,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    actor: Actor = SYSTEM_ACTOR,
) -> BalanceChange:
    """Guardian pays down the account outside of a sale."""
    amount = require_cents(amount_cents, "amount_cents", allow_zero=False)
    meta = PaymentMeta(
        method=require_choice(method, "payment method", PAYMENT_MODES),
        reference=optional_text(reference, "reference", max_length=64),
        notes=optional_text(notes, "notes"),
        is_installment=True,
    )
    return apply_balance_delta(customer_id, amount, actor=actor, payment=meta)

# Overview: Service-layer operations for customer enrollment and account statements.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Customer, Payment, Refund, Sale
from ..constants import BOARDING_STATUSES, BOARDING_DAY, PROGRAM_MEMBERSHIPS, PROGRAM_NONE, PAYMENT_POCKET_MONEY
from ..errors import InvalidState
from ..validation import require_text, optional_text, require_choice
from ..time_utils import to_utc_z
from .. import repositories
from .audit_service import Actor, SYSTEM_ACTOR, append_audit_event
from .concurrency import atomic

logger = logging.getLogger(__name__)

# Only identity/enrollment fields; ledger columns are owned by balance_service
_UPDATABLE_FIELDS = ("name", "class_name", "guardian_name", "guardian_phone", "boarding_status", "program_membership")


def create_customer(
    *,
    name: str,
    class_name: str | None = None,
    admission_number: str | None = None,
    boarding_status: str = BOARDING_DAY,
    program_membership: str = PROGRAM_NONE,
    guardian_name: str | None = None,
    guardian_phone: str | None = None,
    actor: Actor = SYSTEM_ACTOR,
) -> Customer:
    customer = Customer(
        name=require_text(name, "name"),
        class_name=optional_text(class_name, "class_name", max_length=64),
        admission_number=optional_text(admission_number, "admission_number", max_length=32),
        boarding_status=require_choice(boarding_status, "boarding_status", BOARDING_STATUSES),
        program_membership=require_choice(program_membership, "program_membership", PROGRAM_MEMBERSHIPS),
        guardian_name=optional_text(guardian_name, "guardian_name"),
        guardian_phone=optional_text(guardian_phone, "guardian_phone", max_length=32),
        total_items_cost_cents=0,
        amount_paid_cents=0,
        balance_cents=0,
        pocket_money_balance_cents=0,
        pocket_money_enabled=False,
    )

    with atomic():
        if customer.admission_number:
            exists = db.session.query(Customer.id).filter(
                Customer.admission_number == customer.admission_number
            ).first()
            if exists:
                raise InvalidState(
                    f"Admission number {customer.admission_number} already exists",
                    details={"admission_number": customer.admission_number},
                )
        db.session.add(customer)
        db.session.flush()
        append_audit_event(
            actor=actor,
            event_type="customer.created",
            entity_type="customer",
            entity_id=customer.id,
            payload={"name": customer.name, "class_name": customer.class_name},
        )

    logger.info("customer enrolled id=%s", customer.id)
    return customer


def update_customer(customer_id: int, updates: dict, *, actor: Actor = SYSTEM_ACTOR) -> Customer:
    """Edit enrollment details. Balance fields cannot be changed here."""
    unknown = sorted(set(updates) - set(_UPDATABLE_FIELDS))
    if unknown:
        raise InvalidState("Fields cannot be updated directly", details={"fields": unknown})

    with atomic():
        customer = repositories.get_customer(customer_id, lock=True)
        for field, value in updates.items():
            if field == "name":
                value = require_text(value, "name")
            elif field == "boarding_status":
                value = require_choice(value, "boarding_status", BOARDING_STATUSES)
            elif field == "program_membership":
                value = require_choice(value, "program_membership", PROGRAM_MEMBERSHIPS)
            else:
                value = optional_text(value, field)
            setattr(customer, field, value)

        append_audit_event(
            actor=actor,
            event_type="customer.updated",
            entity_type="customer",
            entity_id=customer.id,
            payload={"fields": sorted(updates)},
        )
    return customer


def list_customers(*, class_name: str | None = None, search: str | None = None) -> list[Customer]:
    q = db.session.query(Customer)
    if class_name:
        q = q.filter(Customer.class_name == class_name)
    if search:
        q = q.filter(Customer.name.ilike(f"%{search}%"))
    return q.order_by(Customer.class_name.asc(), Customer.name.asc()).all()


def get_customer_statement(customer_id: int) -> dict:
    """
    Read-only account statement merged into one chronological list, plus the
    current ledger figures.

    Debits: account sales, cash handed back on refunds.
    Credits: payments, installments, returned goods.
    Pocket-money sales are settled from the pocket-money balance and are
    listed under "sales" only.
    """
    customer = repositories.get_customer(customer_id)

    sales = (
        db.session.query(Sale)
        .filter(Sale.customer_id == customer.id)
        .order_by(Sale.created_at.asc(), Sale.id.asc())
        .all()
    )
    payments = (
        db.session.query(Payment)
        .filter(Payment.customer_id == customer.id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )
    refunds = (
        db.session.query(Refund)
        .join(Sale, Refund.sale_id == Sale.id)
        .filter(Refund.customer_id == customer.id, Sale.payment_mode != PAYMENT_POCKET_MONEY)
        .order_by(Refund.created_at.asc(), Refund.id.asc())
        .all()
    )

    entries = []
    for refund in refunds:
        entries.append({
            "type": "returned_goods",
            "occurred_at": refund.created_at,
            "reference": refund.refund_number,
            "description": f"Returned goods ({refund.reason})",
            "debit_cents": 0,
            "credit_cents": refund.amount_cents,
        })
    for sale in sales:
        if sale.payment_mode == PAYMENT_POCKET_MONEY:
            continue
        entries.append({
            "type": "sale",
            "occurred_at": sale.created_at,
            "reference": sale.sale_number,
            "description": f"{sale.transaction_type.replace('_', ' ').title()} sale ({sale.department})",
            "debit_cents": sale.total_cents,
            "credit_cents": 0,
        })
    for payment in payments:
        if payment.amount_cents < 0:
            kind, description = "refund", "Cash refunded"
        elif payment.is_installment:
            kind, description = "installment", f"Installment via {payment.method}"
        else:
            kind, description = "payment", f"Payment via {payment.method}"
        entries.append({
            "type": kind,
            "occurred_at": payment.created_at,
            "reference": payment.reference,
            "description": description,
            "debit_cents": max(0, -payment.amount_cents),
            "credit_cents": max(0, payment.amount_cents),
        })

    entries.sort(key=lambda e: e["occurred_at"])
    for entry in entries:
        entry["occurred_at"] = to_utc_z(entry["occurred_at"])

    return {
        "customer": customer.to_dict(),
        "total_items_cost_cents": customer.total_items_cost_cents,
        "amount_paid_cents": customer.amount_paid_cents,
        "balance_cents": customer.balance_cents,
        "sales": [s.to_dict() for s in sales],
        "payments": [p.to_dict() for p in payments],
        "entries": entries,
    }

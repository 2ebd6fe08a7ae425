# Overview: Service-layer operations for recurring allocations; due checks and fulfillment via stock_service.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence, Union

from ..extensions import db
from ..models import Allocation, AllocationHistory
from ..constants import (
    ALLOCATION_ALLOCATED,
    ALLOCATION_CANCELLED,
    ALLOCATION_FREQUENCIES,
    ALLOCATION_PROGRAMS,
    FREQ_SPECIFIC_DAYS,
    PROGRAM_NONE,
)
from ..errors import InvalidState, ValidationError
from ..scheduling import (
    allocation_due_status,
    calculate_next_due_date,
    format_specific_days,
    parse_specific_days,
    DueStatus,
)
from ..time_utils import utcnow, normalize_datetime
from ..validation import require_quantity, require_choice, optional_text
from .. import repositories
from .audit_service import Actor, SYSTEM_ACTOR, append_audit_event
from .concurrency import atomic
from .stock_service import adjust_stock_locked
"""
Allocation Invariants (authoritative)

- An allocation is a free, recurring grant: it never touches the customer ledger.
- Only products flagged is_allocatable can be allocated.
- program_type is A or B and must match the customer's program membership.
- Only ALLOCATED allocations can be fulfilled; CANCELLED is terminal.
- Fulfillment locks allocation then product, decrements stock (InsufficientStock
  if short), stamps last_given_at = now, recomputes next_due_date from now and
  appends one AllocationHistory row, all in one transaction.
- A never-given allocation is due immediately (next_due_date = creation time).
- Due-date arithmetic lives in shopledger.scheduling and is pure.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationInput:
    customer_id: int
    product_id: int
    frequency: str
    quantity: int = 1
    specific_days: Union[str, Sequence[str], None] = None
    program_type: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class FulfillmentResult:
    allocation: Allocation
    history: AllocationHistory
    due_status: DueStatus
    is_low_stock: bool

    def to_dict(self) -> dict:
        return {
            "allocation": self.allocation.to_dict(),
            "history": self.history.to_dict(),
            "was_due": self.due_status.is_due,
            "due_state": self.due_status.state,
            "is_low_stock": self.is_low_stock,
        }


def create_allocation(
    allocation_input: AllocationInput,
    *,
    actor: Actor = SYSTEM_ACTOR,
    now: Optional[datetime] = None,
) -> Allocation:
    """
    Define a recurring allocation for a customer.

    Raises NotFound (customer/product), ValidationError (frequency, weekday
    names, quantity) and InvalidState (product not allocatable, program
    type or membership).
    """
    quantity = require_quantity(allocation_input.quantity)
    frequency = require_choice(allocation_input.frequency, "frequency", ALLOCATION_FREQUENCIES)

    specific_days = None
    if frequency == FREQ_SPECIFIC_DAYS:
        days = parse_specific_days(allocation_input.specific_days)
        if not days:
            raise ValidationError("specific_days requires at least one weekday")
        specific_days = format_specific_days(days)

    now = normalize_datetime(now) if now else utcnow()

    with atomic():
        customer = repositories.get_customer(allocation_input.customer_id)
        product = repositories.get_product(allocation_input.product_id)
        if not product.is_allocatable:
            raise InvalidState(
                f"Product {product.name} is not marked as allocatable",
                details={"product_id": product.id},
            )

        program_type = allocation_input.program_type or customer.program_membership
        if program_type not in ALLOCATION_PROGRAMS:
            raise InvalidState(
                f"Invalid program type: {program_type!r}. Must be one of: {', '.join(ALLOCATION_PROGRAMS)}",
                details={"program_type": program_type},
            )
        if customer.program_membership == PROGRAM_NONE or customer.program_membership != program_type:
            raise InvalidState(
                f"Customer is not enrolled in program {program_type}",
                details={"customer_id": customer.id, "program_membership": customer.program_membership},
            )

        allocation = Allocation(
            customer_id=customer.id,
            product_id=product.id,
            quantity=quantity,
            frequency=frequency,
            specific_days=specific_days,
            program_type=program_type,
            status=ALLOCATION_ALLOCATED,
            last_given_at=None,
            next_due_date=now,
            notes=optional_text(allocation_input.notes, "notes"),
            created_by=actor.name,
            created_at=now,
        )
        db.session.add(allocation)
        db.session.flush()

        append_audit_event(
            actor=actor,
            event_type="allocation.created",
            entity_type="allocation",
            entity_id=allocation.id,
            payload={
                "customer_id": customer.id,
                "product_id": product.id,
                "frequency": frequency,
                "specific_days": specific_days,
                "program_type": program_type,
                "quantity": quantity,
            },
            occurred_at=now,
        )

    logger.info("allocation %s created for customer %s (%s)", allocation.id, allocation.customer_id, frequency)
    return allocation


def fulfill_allocation(
    allocation_id: int,
    *,
    actor: Actor = SYSTEM_ACTOR,
    now: Optional[datetime] = None,
) -> FulfillmentResult:
    """
    Hand out an allocation.

    Raises NotFound, InvalidState (cancelled) or InsufficientStock.
    """
    now = normalize_datetime(now) if now else utcnow()

    with atomic():
        allocation = repositories.get_allocation(allocation_id, lock=True)
        if allocation.status != ALLOCATION_ALLOCATED:
            raise InvalidState(
                f"Allocation {allocation.id} is {allocation.status.lower()}",
                details={"allocation_id": allocation.id, "status": allocation.status},
            )

        status_before = allocation_due_status(allocation, now)
        product = repositories.get_product(allocation.product_id, lock=True)
        change = adjust_stock_locked(product, -allocation.quantity)

        allocation.last_given_at = now
        allocation.next_due_date = calculate_next_due_date(allocation.frequency, allocation.specific_days, now)

        history = AllocationHistory(
            allocation_id=allocation.id,
            customer_id=allocation.customer_id,
            product_id=allocation.product_id,
            quantity=allocation.quantity,
            program_type=allocation.program_type,
            frequency=allocation.frequency,
            given_by=actor.name,
            given_at=now,
        )
        db.session.add(history)
        db.session.flush()

        append_audit_event(
            actor=actor,
            event_type="allocation.fulfilled",
            entity_type="allocation",
            entity_id=allocation.id,
            payload={
                "history_id": history.id,
                "quantity": allocation.quantity,
                "due_state": status_before.state,
                "next_due_date": allocation.next_due_date.isoformat(),
                "stock_after": change.new_qty,
            },
            occurred_at=now,
        )

        result = FulfillmentResult(
            allocation=allocation,
            history=history,
            due_status=status_before,
            is_low_stock=change.is_low_stock,
        )

    if not status_before.is_due:
        logger.warning("allocation %s fulfilled before it was due", allocation_id)
    logger.info("allocation %s fulfilled, next due %s", allocation_id, result.allocation.next_due_date)
    return result


def cancel_allocation(allocation_id: int, *, reason: str, actor: Actor = SYSTEM_ACTOR) -> Allocation:
    if not reason or not str(reason).strip():
        raise InvalidState("A reason is required to cancel an allocation")

    with atomic():
        allocation = repositories.get_allocation(allocation_id, lock=True)
        if allocation.status == ALLOCATION_CANCELLED:
            raise InvalidState(f"Allocation {allocation.id} is already cancelled")
        allocation.status = ALLOCATION_CANCELLED
        append_audit_event(
            actor=actor,
            event_type="allocation.cancelled",
            entity_type="allocation",
            entity_id=allocation.id,
            payload={"reason": str(reason).strip()},
        )
    return allocation


def get_customer_allocations(customer_id: int, *, now: Optional[datetime] = None) -> dict:
    """All active allocations for a customer plus the ones due now."""
    now = normalize_datetime(now) if now else utcnow()
    customer = repositories.get_customer(customer_id)

    allocations = (
        db.session.query(Allocation)
        .filter(Allocation.customer_id == customer.id, Allocation.status == ALLOCATION_ALLOCATED)
        .order_by(Allocation.created_at.desc(), Allocation.id.desc())
        .all()
    )

    pending = []
    for allocation in allocations:
        status = allocation_due_status(allocation, now)
        if status.is_due:
            pending.append({
                "allocation_id": allocation.id,
                "product_id": allocation.product_id,
                "product_name": allocation.product.name,
                "quantity": allocation.quantity,
                "frequency": allocation.frequency,
                "specific_days": allocation.specific_days,
                "last_given_at": allocation.to_dict()["last_given_at"],
                "is_first_allocation": allocation.last_given_at is None,
                **status.to_dict(),
            })

    return {
        "customer_id": customer.id,
        "allocations": [a.to_dict() for a in allocations],
        "pending_items": pending,
        "total_allocations": len(allocations),
        "pending_count": len(pending),
    }


def get_due_allocations(*, now: Optional[datetime] = None, program_type: Optional[str] = None) -> list[tuple[Allocation, DueStatus]]:
    """Every active allocation that is due at ``now`` (used by the CLI)."""
    now = normalize_datetime(now) if now else utcnow()
    q = db.session.query(Allocation).filter(Allocation.status == ALLOCATION_ALLOCATED)
    if program_type:
        q = q.filter(Allocation.program_type == require_choice(program_type, "program_type", ALLOCATION_PROGRAMS))
    due = []
    for allocation in q.order_by(Allocation.customer_id, Allocation.id).all():
        status = allocation_due_status(allocation, now)
        if status.is_due:
            due.append((allocation, status))
    return due


def get_allocation_history(allocation_id: int) -> list[AllocationHistory]:
    allocation = repositories.get_allocation(allocation_id)
    return (
        db.session.query(AllocationHistory)
        .filter(AllocationHistory.allocation_id == allocation.id)
        .order_by(AllocationHistory.given_at.desc(), AllocationHistory.id.desc())
        .all()
    )

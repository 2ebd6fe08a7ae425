# Overview: Service-layer operations for refunds and exchanges; reverses a sale's stock and ledger effects.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Payment, PocketMoneyTransaction, Refund, Sale, SaleItem
from ..constants import (
    PAYMENT_EXCHANGE_CREDIT,
    PAYMENT_MODES,
    PAYMENT_POCKET_MONEY,
    POCKET_REFUND,
    REFUND_EXCHANGE,
    REFUND_FULL,
    REFUND_TYPES,
    SALE_EXCHANGE,
)
from ..errors import InvalidState, NotFound, ValidationError
from ..time_utils import utcnow, normalize_datetime
from ..validation import require_cents, require_choice, require_quantity, require_text
from .. import repositories
from .audit_service import Actor, SYSTEM_ACTOR, append_audit_event
from .balance_service import (
    PaymentMeta,
    apply_balance_delta_locked,
    charge_customer_locked,
    reduce_charge_locked,
    reverse_payment_locked,
)
from .concurrency import atomic, lock_for_update
from .sales_service import SaleItemInput, generate_document_number, insert_sale_locked, resolve_sale_lines, normalize_sale_items
from .stock_service import adjust_stock_locked
"""
Refund Invariants (authoritative)

- Refund value is ALWAYS the original unit price on the sale line.
- SaleItem.refunded_quantity <= SaleItem.quantity; a line can never be
  refunded twice beyond what was sold.
- Every refunded unit goes back into stock.
- A reason is mandatory.

Ledger effect for a learner sale (refund value R):
- the part of R still owed on the sale reduces the debt,
- the rest is handed back (up to what was actually paid for the sale),
  recorded as a NEGATIVE payment.
  => total_items_cost -= R, amount_paid -= cash_back, balance recomputed.
  A refund of every item therefore restores the balance from before the sale.

Pocket-money sales are credited back to the pocket-money balance.
Walk-in sales never touch a ledger; the cash-back figure is informational.

Exchange: the replacement goods are sold through the sale processor's
internal path as a linked EXCHANGE sale, paid first from the refund credit.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundItemInput:
    quantity: int
    sale_item_id: Optional[int] = None
    product_id: Optional[int] = None


@dataclass(frozen=True)
class RefundInput:
    sale_id: int
    refund_type: str
    reason: str
    items: Sequence[RefundItemInput] = ()
    exchange_items: Sequence[SaleItemInput] = ()
    exchange_amount_paid_cents: int = 0
    exchange_payment_mode: str = "cash"


@dataclass(frozen=True)
class RefundResult:
    refund_number: str
    sale_id: int
    refund_total_cents: int
    cash_back_cents: int
    processed_items: list[dict]
    customer_balance_cents: Optional[int] = None
    pocket_money_balance_cents: Optional[int] = None
    exchange_sale_id: Optional[int] = None
    exchange_sale_number: Optional[str] = None
    exchange_total_cents: int = 0
    low_stock_product_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "refund_number": self.refund_number,
            "sale_id": self.sale_id,
            "refund_total_cents": self.refund_total_cents,
            "cash_back_cents": self.cash_back_cents,
            "processed_items": self.processed_items,
            "customer_balance_cents": self.customer_balance_cents,
            "pocket_money_balance_cents": self.pocket_money_balance_cents,
            "exchange_sale_id": self.exchange_sale_id,
            "exchange_sale_number": self.exchange_sale_number,
            "exchange_total_cents": self.exchange_total_cents,
            "low_stock_product_ids": self.low_stock_product_ids,
        }


def _match_sale_item(sale: Sale, sale_items: dict[int, SaleItem], item: RefundItemInput) -> SaleItem:
    if item.sale_item_id is not None:
        line = sale_items.get(item.sale_item_id)
        if line is None:
            raise NotFound(
                f"Item {item.sale_item_id} is not part of sale {sale.sale_number}",
                details={"sale_item_id": item.sale_item_id},
            )
        return line
    if item.product_id is not None:
        # First line for that product with quantity left to refund
        candidates = [l for l in sale_items.values() if l.product_id == item.product_id]
        if not candidates:
            raise NotFound(
                f"Product {item.product_id} is not part of sale {sale.sale_number}",
                details={"product_id": item.product_id},
            )
        for line in candidates:
            if line.refundable_quantity > 0:
                return line
        return candidates[0]
    raise ValidationError("Each refund item needs sale_item_id or product_id")


def _requested_lines(sale: Sale, sale_items: dict[int, SaleItem], refund_type: str, items) -> list[tuple[SaleItem, int]]:
    if not items:
        if refund_type != REFUND_FULL:
            raise ValidationError("At least one item is required")
        requested = [(line, line.refundable_quantity) for line in sale_items.values() if line.refundable_quantity > 0]
        if not requested:
            raise InvalidState(f"Sale {sale.sale_number} has already been fully refunded")
        return requested

    totals: dict[int, int] = {}
    order: list[SaleItem] = []
    for item in items:
        line = _match_sale_item(sale, sale_items, item)
        qty = require_quantity(item.quantity)
        if line.id not in totals:
            order.append(line)
        totals[line.id] = totals.get(line.id, 0) + qty

    for line in order:
        if totals[line.id] > line.refundable_quantity:
            raise InvalidState(
                f"Cannot refund {totals[line.id]} of {line.product_name}; only {line.refundable_quantity} left to refund",
                details={
                    "sale_item_id": line.id,
                    "quantity": line.quantity,
                    "refunded_quantity": line.refunded_quantity,
                    "requested": totals[line.id],
                },
            )
    return [(line, totals[line.id]) for line in order]


def _prior_refund_figures(sale: Sale) -> tuple[int, int]:
    """(value already refunded on this sale, cash already handed back for it)."""
    prior_refunds = (
        db.session.query(func.coalesce(func.sum(Refund.amount_cents), 0))
        .filter(Refund.sale_id == sale.id)
        .scalar()
    )
    prior_cash_back = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.sale_id == sale.id, Payment.amount_cents < 0)
        .scalar()
    )
    return int(prior_refunds), -int(prior_cash_back)


def split_refund(sale: Sale, refund_cents: int, prior_refunds: int, prior_cash_back: int) -> tuple[int, int]:
    """
    Split a refund into (debt reduction, cash back) for one sale.

    Debt still outstanding on the sale is cleared first; only money actually
    paid for the sale is ever handed back.
    """
    prior_debt_cleared = prior_refunds - prior_cash_back
    debt_part = min(refund_cents, max(0, sale.balance_cents - prior_debt_cleared))
    cash_back = min(refund_cents - debt_part, max(0, min(sale.paid_cents, sale.total_cents) - prior_cash_back))
    return debt_part, cash_back


def process_refund(refund_input: RefundInput, *, actor: Actor = SYSTEM_ACTOR, now: Optional[datetime] = None) -> RefundResult:
    """
    Return goods from a prior sale (and optionally exchange them).

    One transaction: any failing line aborts the whole refund.
    """
    refund_type = require_choice(refund_input.refund_type, "refund_type", REFUND_TYPES)
    if not refund_input.reason or not str(refund_input.reason).strip():
        raise InvalidState("A reason is required for refunds")
    reason = require_text(refund_input.reason, "reason")

    exchange_items: list[SaleItemInput] = []
    exchange_paid = 0
    exchange_mode = None
    if refund_type == REFUND_EXCHANGE:
        exchange_items = normalize_sale_items(refund_input.exchange_items)
        exchange_paid = require_cents(refund_input.exchange_amount_paid_cents, "exchange_amount_paid_cents")
        exchange_mode = require_choice(refund_input.exchange_payment_mode, "exchange_payment_mode", PAYMENT_MODES)
    elif refund_input.exchange_items:
        raise ValidationError("exchange_items are only allowed for exchange refunds")

    now = normalize_datetime(now) if now else utcnow()

    with atomic():
        sale = repositories.get_sale(refund_input.sale_id)
        is_pocket_sale = sale.payment_mode == PAYMENT_POCKET_MONEY
        if is_pocket_sale and refund_type == REFUND_EXCHANGE:
            raise InvalidState("Pocket-money sales cannot be exchanged; refund them instead")

        customer: Optional[Customer] = None
        if sale.customer_id is not None:
            customer = repositories.get_customer(sale.customer_id, lock=True)

        sale_items = {
            line.id: line
            for line in lock_for_update(
                db.session.query(SaleItem).filter(SaleItem.sale_id == sale.id).order_by(SaleItem.id)
            ).all()
        }
        requested = _requested_lines(sale, sale_items, refund_type, refund_input.items)
        prior_refunds, prior_cash_back = _prior_refund_figures(sale)

        product_ids = {line.product_id for line, _ in requested} | {item.product_id for item in exchange_items}
        products = repositories.lock_products(product_ids, include_archived=True)

        refund_number = generate_document_number("REF", Refund.refund_number, now)
        refund_total = 0
        processed = []
        for line, qty in requested:
            amount = qty * line.unit_price_cents
            adjust_stock_locked(products[line.product_id], qty)
            line.refunded_quantity += qty
            refund = Refund(
                refund_number=refund_number,
                sale_id=sale.id,
                sale_item_id=line.id,
                customer_id=sale.customer_id,
                product_id=line.product_id,
                quantity=qty,
                unit_price_cents=line.unit_price_cents,
                amount_cents=amount,
                refund_type=refund_type,
                reason=reason,
                processed_by=actor.name,
                created_at=now,
            )
            db.session.add(refund)
            refund_total += amount
            processed.append({
                "sale_item_id": line.id,
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": qty,
                "unit_price_cents": line.unit_price_cents,
                "amount_cents": amount,
            })
        db.session.flush()

        _, cash_back = split_refund(sale, refund_total, prior_refunds, prior_cash_back)

        if customer is not None and is_pocket_sale:
            customer.pocket_money_balance_cents += refund_total
            db.session.add(PocketMoneyTransaction(
                customer_id=customer.id,
                sale_id=sale.id,
                transaction_type=POCKET_REFUND,
                amount_cents=refund_total,
                balance_after_cents=customer.pocket_money_balance_cents,
                reason=reason,
                recorded_by=actor.name,
                created_at=now,
            ))
            cash_back = 0
        elif customer is not None and refund_total > 0:
            reduce_charge_locked(customer, refund_total, actor=actor, sale_id=sale.id)
            if cash_back > 0:
                reverse_payment_locked(
                    customer,
                    cash_back,
                    actor=actor,
                    sale_id=sale.id,
                    notes=f"Refund {refund_number}: {reason}",
                )

        exchange_sale = None
        exchange_total = 0
        low_stock: list[int] = []
        if refund_type == REFUND_EXCHANGE:
            for item in exchange_items:
                if not products[item.product_id].is_active:
                    raise NotFound(f"Product {item.product_id} not found", details={"product_id": item.product_id})
            lines = resolve_sale_lines(sale.department, exchange_items, products)
            exchange_total = sum(l.line_total_cents for l in lines)
            credit_applied = min(exchange_total, cash_back)

            if customer is None:
                covered = credit_applied + exchange_paid
                if covered < exchange_total:
                    raise InvalidState(
                        "Walk-in exchanges must be paid in full",
                        details={"exchange_total_cents": exchange_total, "covered_cents": covered},
                    )
                paid, change = exchange_total, covered - exchange_total
            else:
                paid, change = credit_applied + exchange_paid, 0

            exchange_sale, low_stock = insert_sale_locked(
                department=sale.department,
                customer=customer,
                lines=lines,
                payment_mode=exchange_mode,
                transaction_type=SALE_EXCHANGE,
                paid_cents=paid,
                balance_cents=max(0, exchange_total - paid),
                change_cents=change,
                original_sale_id=sale.id,
                notes=f"Exchange for {sale.sale_number} ({refund_number})",
                actor=actor,
                now=now,
            )

            if customer is not None:
                if exchange_total > 0:
                    charge_customer_locked(customer, exchange_total, actor=actor, sale_id=exchange_sale.id)
                if credit_applied > 0:
                    apply_balance_delta_locked(
                        customer,
                        credit_applied,
                        actor=actor,
                        payment=PaymentMeta(
                            method=PAYMENT_EXCHANGE_CREDIT,
                            reference=refund_number,
                            sale_id=exchange_sale.id,
                            notes=f"Credit from {sale.sale_number}",
                        ),
                    )
                if exchange_paid > 0:
                    apply_balance_delta_locked(
                        customer,
                        exchange_paid,
                        actor=actor,
                        payment=PaymentMeta(
                            method=exchange_mode,
                            reference=exchange_sale.sale_number,
                            sale_id=exchange_sale.id,
                        ),
                    )
            cash_back -= credit_applied

        append_audit_event(
            actor=actor,
            event_type="refund.processed",
            entity_type="sale",
            entity_id=sale.id,
            payload={
                "refund_number": refund_number,
                "refund_type": refund_type,
                "refund_total_cents": refund_total,
                "cash_back_cents": cash_back,
                "exchange_sale_id": exchange_sale.id if exchange_sale else None,
                "reason": reason,
            },
            occurred_at=now,
        )

        result = RefundResult(
            refund_number=refund_number,
            sale_id=sale.id,
            refund_total_cents=refund_total,
            cash_back_cents=cash_back,
            processed_items=processed,
            customer_balance_cents=customer.balance_cents if customer else None,
            pocket_money_balance_cents=customer.pocket_money_balance_cents if (customer and is_pocket_sale) else None,
            exchange_sale_id=exchange_sale.id if exchange_sale else None,
            exchange_sale_number=exchange_sale.sale_number if exchange_sale else None,
            exchange_total_cents=exchange_total,
            low_stock_product_ids=low_stock,
        )

    logger.info(
        "refund %s on sale %s total_cents=%s type=%s",
        result.refund_number, sale.sale_number, result.refund_total_cents, refund_type,
    )
    return result


def list_refunds(sale_id: int) -> list[Refund]:
    repositories.get_sale(sale_id)
    return (
        db.session.query(Refund)
        .filter(Refund.sale_id == sale_id)
        .order_by(Refund.created_at.asc(), Refund.id.asc())
        .all()
    )

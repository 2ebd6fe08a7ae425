# Overview: Flask API routes for refunds and exchanges against completed sales.

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError, ValidationError
from ..decorators import json_body, ledger_error_response, require_actor
from ..services import refund_service
from ..services.refund_service import RefundInput, RefundItemInput
from ..validation import coerce_int
from .sales import parse_sale_items


refunds_bp = Blueprint("refunds", __name__, url_prefix="/api/refunds")


def _parse_refund_items(raw) -> list[RefundItemInput]:
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")
    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be an object")
        sale_item_id = entry.get("sale_item_id")
        product_id = entry.get("product_id")
        items.append(RefundItemInput(
            quantity=entry.get("quantity"),
            sale_item_id=coerce_int(sale_item_id, "sale_item_id") if sale_item_id is not None else None,
            product_id=coerce_int(product_id, "product_id") if product_id is not None else None,
        ))
    return items


@refunds_bp.post("")
@require_actor
def create_refund_route():
    """
    Refund (and optionally exchange) goods from a sale.

    Request body:
    {
        "sale_id": 42,
        "refund_type": "partial",                  (full | partial | exchange)
        "reason": "Wrong size",
        "items": [{"sale_item_id": 7, "quantity": 1}],   (omit for full refund)
        "exchange_items": [{"product_id": 3, "quantity": 1}],   (exchange only)
        "exchange_amount_paid_cents": 0,
        "exchange_payment_mode": "cash"
    }

    Returns:
        201: Refund processed
        404: Sale or sale item not found
        409: Over-refund, missing reason, insufficient stock for exchange
    """
    try:
        data = json_body()
        result = refund_service.process_refund(
            RefundInput(
                sale_id=coerce_int(data.get("sale_id"), "sale_id"),
                refund_type=data.get("refund_type", "partial"),
                reason=data.get("reason"),
                items=_parse_refund_items(data.get("items", [])),
                exchange_items=parse_sale_items(data.get("exchange_items", [])),
                exchange_amount_paid_cents=data.get("exchange_amount_paid_cents", 0),
                exchange_payment_mode=data.get("exchange_payment_mode", "cash"),
            ),
            actor=g.actor,
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.get("")
def list_refunds_route():
    """Query params: sale_id (required)."""
    try:
        refunds = refund_service.list_refunds(coerce_int(request.args.get("sale_id"), "sale_id"))
        return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list refunds")
        return jsonify({"error": "Internal server error"}), 500

# Overview: Flask API routes for the boarders' pocket-money subledger.

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError
from ..decorators import json_body, ledger_error_response, require_actor
from ..services import pocket_money_service
from ..services.pocket_money_service import PocketMoneyPurchaseInput
from ..validation import coerce_int
from .sales import parse_sale_items


pocket_money_bp = Blueprint("pocket_money", __name__, url_prefix="/api/pocket-money")


@pocket_money_bp.post("/purchases")
@require_actor
def purchase_route():
    """
    Request body:
    {
        "customer_id": 12,
        "department": "Stationery",
        "items": [{"product_id": 1, "quantity": 2}]
    }
    """
    try:
        data = json_body()
        result = pocket_money_service.purchase(
            PocketMoneyPurchaseInput(
                customer_id=coerce_int(data.get("customer_id"), "customer_id"),
                department=data.get("department"),
                items=parse_sale_items(data.get("items", [])),
            ),
            actor=g.actor,
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process pocket money purchase")
        return jsonify({"error": "Internal server error"}), 500


@pocket_money_bp.post("/<int:customer_id>/top-up")
@require_actor
def top_up_route(customer_id: int):
    """Request body: {"amount_cents": 100000, "reason": "Term 2 allowance"}"""
    try:
        data = json_body()
        txn = pocket_money_service.top_up(
            customer_id, data.get("amount_cents"), reason=data.get("reason"), actor=g.actor,
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to top up pocket money")
        return jsonify({"error": "Internal server error"}), 500


@pocket_money_bp.post("/<int:customer_id>/deduct")
@require_actor
def deduct_route(customer_id: int):
    """Request body: {"amount_cents": 5000, "reason": "..."} (reason required)"""
    try:
        data = json_body()
        txn = pocket_money_service.deduct(
            customer_id, data.get("amount_cents"), reason=data.get("reason"), actor=g.actor,
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deduct pocket money")
        return jsonify({"error": "Internal server error"}), 500


@pocket_money_bp.post("/<int:customer_id>/enable")
@require_actor
def enable_route(customer_id: int):
    try:
        customer = pocket_money_service.enable(customer_id, actor=g.actor)
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to enable pocket money")
        return jsonify({"error": "Internal server error"}), 500


@pocket_money_bp.post("/<int:customer_id>/disable")
@require_actor
def disable_route(customer_id: int):
    try:
        data = json_body()
        customer = pocket_money_service.disable(customer_id, reason=data.get("reason"), actor=g.actor)
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to disable pocket money")
        return jsonify({"error": "Internal server error"}), 500


@pocket_money_bp.get("/<int:customer_id>/status")
def status_route(customer_id: int):
    """Query params: amount_cents (prospective spend, default 0)."""
    try:
        amount = coerce_int(request.args.get("amount_cents", "0"), "amount_cents")
        return jsonify(pocket_money_service.status(customer_id, amount_cents=amount)), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get pocket money status")
        return jsonify({"error": "Internal server error"}), 500


@pocket_money_bp.get("/<int:customer_id>/history")
def history_route(customer_id: int):
    try:
        transactions = pocket_money_service.history(customer_id)
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get pocket money history")
        return jsonify({"error": "Internal server error"}), 500

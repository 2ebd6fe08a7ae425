# Overview: Flask API routes for checkout and sale lookups; parses input and returns JSON responses.

"""
Sales API Routes

DESIGN:
- POST /api/sales runs the whole checkout in one transaction
  (validation, stock decrement, sale rows, ledger posting).
- Sales are immutable; corrections go through /api/refunds.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError, ValidationError
from ..decorators import json_body, ledger_error_response, require_actor
from ..services import sales_service
from ..services.sales_service import SaleInput, SaleItemInput
from ..time_utils import parse_iso_datetime
from ..validation import coerce_int
from .. import repositories


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def parse_sale_items(raw) -> list[SaleItemInput]:
    """[{"product_id": 1, "quantity": 2, "unit_price_cents": 8000?}, ...]"""
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")
    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be an object")
        items.append(SaleItemInput(
            product_id=coerce_int(entry.get("product_id"), "product_id"),
            quantity=entry.get("quantity"),
            unit_price_cents=entry.get("unit_price_cents"),
        ))
    return items


@sales_bp.post("")
@require_actor
def create_sale_route():
    """
    Complete a sale.

    Request body:
    {
        "department": "Stationery",
        "customer_id": 12,                     (omit for walk-in)
        "items": [{"product_id": 1, "quantity": 2}],
        "payment_mode": "cash",                (cash | mpesa | bank | cheque)
        "amount_paid_cents": 10000,
        "transaction_type": "NORMAL",          (NORMAL | ADD_TO_BALANCE)
        "notes": "..."
    }

    Returns:
        201: Sale completed
        400: Invalid input
        404: Customer or product not found
        409: Insufficient stock, wrong department, walk-in underpayment
    """
    try:
        data = json_body()
        customer_id = data.get("customer_id")
        result = sales_service.process_sale(
            SaleInput(
                department=data.get("department"),
                items=parse_sale_items(data.get("items", [])),
                customer_id=coerce_int(customer_id, "customer_id") if customer_id is not None else None,
                payment_mode=data.get("payment_mode", "cash"),
                amount_paid_cents=data.get("amount_paid_cents", 0),
                transaction_type=data.get("transaction_type", "NORMAL"),
                notes=data.get("notes"),
            ),
            actor=g.actor,
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    """
    Query params: department, customer_id, start, end (ISO-8601), limit.
    """
    try:
        customer_id = request.args.get("customer_id")
        sales = sales_service.list_sales(
            department=request.args.get("department"),
            customer_id=coerce_int(customer_id, "customer_id") if customer_id is not None else None,
            start=parse_iso_datetime(request.args.get("start")),
            end=parse_iso_datetime(request.args.get("end")),
            limit=coerce_int(request.args.get("limit", "100"), "limit"),
        )
        return jsonify({"sales": [s.to_dict() for s in sales]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 datetimes"}), 400
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/number/<sale_number>")
def get_sale_by_number_route(sale_number: str):
    try:
        return jsonify({"sale": repositories.get_sale_by_number(sale_number).to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500

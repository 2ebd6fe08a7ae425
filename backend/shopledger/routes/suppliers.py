# Overview: Flask API routes for suppliers; restocks on credit and supplier payments.

"""
Supplier API Routes

DESIGN:
- A restock records the delivery, brings stock in and opens one credit
  due SUPPLIER_CREDIT_DAYS later.
- Payments settle the oldest unpaid credits first.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError, ValidationError
from ..decorators import as_of_arg, json_body, ledger_error_response, require_actor
from ..services import supplier_service
from ..services.supplier_service import RestockInput, RestockItemInput, SupplierPaymentInput
from ..validation import coerce_int


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


def _parse_restock_items(raw) -> list[RestockItemInput]:
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")
    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be an object")
        product_id = entry.get("product_id")
        items.append(RestockItemInput(
            quantity=entry.get("quantity"),
            buy_price_cents=entry.get("buy_price_cents"),
            sell_price_cents=entry.get("sell_price_cents"),
            product_id=coerce_int(product_id, "product_id") if product_id is not None else None,
            sku=entry.get("sku"),
            name=entry.get("name"),
            department=entry.get("department"),
            category=entry.get("category"),
            reorder_level=entry.get("reorder_level"),
        ))
    return items


@suppliers_bp.post("")
@require_actor
def create_supplier_route():
    try:
        data = json_body()
        supplier = supplier_service.create_supplier(
            name=data.get("name"),
            contact_person=data.get("contact_person"),
            phone=data.get("phone"),
            email=data.get("email"),
            address=data.get("address"),
            actor=g.actor,
        )
        return jsonify({"supplier": supplier.to_dict()}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("")
def list_suppliers_route():
    try:
        suppliers = supplier_service.list_suppliers(
            include_archived=request.args.get("include_archived", "false").lower() == "true",
        )
        return jsonify({"suppliers": [s.to_dict() for s in suppliers]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list suppliers")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/due-credits")
def due_credits_route():
    """Unpaid credits past due across active suppliers. Optional ?as_of=ISO-8601."""
    try:
        credits = supplier_service.get_due_credits(now=as_of_arg())
        return jsonify({
            "credits": credits,
            "count": len(credits),
            "total_overdue_cents": sum(c["amount_cents"] for c in credits),
        }), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build due credits report")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.post("/<int:supplier_id>/archive")
@require_actor
def archive_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.archive_supplier(supplier_id, actor=g.actor)
        return jsonify({"supplier": supplier.to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to archive supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.post("/<int:supplier_id>/restocks")
@require_actor
def create_restock_route(supplier_id: int):
    """
    Request body:
    {
        "items": [
            {"product_id": 3, "quantity": 10, "buy_price_cents": 5000, "sell_price_cents": 8000},
            {"sku": "NEW-1", "name": "Geometry Set", "department": "Stationery",
             "quantity": 5, "buy_price_cents": 20000, "sell_price_cents": 30000}
        ],
        "misc_expenses_cents": 1500,
        "notes": "Delivery note 8812"
    }
    """
    try:
        data = json_body()
        result = supplier_service.process_restock(
            RestockInput(
                supplier_id=supplier_id,
                items=_parse_restock_items(data.get("items", [])),
                misc_expenses_cents=data.get("misc_expenses_cents", 0),
                notes=data.get("notes"),
            ),
            actor=g.actor,
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process restock")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>/restocks")
def list_restocks_route(supplier_id: int):
    try:
        restocks = supplier_service.get_supplier_restocks(supplier_id)
        return jsonify({"restocks": [r.to_dict() for r in restocks]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list restocks")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.post("/<int:supplier_id>/payments")
@require_actor
def record_supplier_payment_route(supplier_id: int):
    """Request body: {"amount_cents": 12000, "method": "bank", "reference": "...", "notes": "..."}"""
    try:
        data = json_body()
        result = supplier_service.record_supplier_payment(
            SupplierPaymentInput(
                supplier_id=supplier_id,
                amount_cents=data.get("amount_cents"),
                method=data.get("method", "cash"),
                reference=data.get("reference"),
                notes=data.get("notes"),
            ),
            actor=g.actor,
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record supplier payment")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>/summary")
def supplier_summary_route(supplier_id: int):
    try:
        return jsonify(supplier_service.get_supplier_summary(supplier_id, now=as_of_arg())), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build supplier summary")
        return jsonify({"error": "Internal server error"}), 500

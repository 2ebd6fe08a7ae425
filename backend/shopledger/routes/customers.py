# Overview: Flask API routes for customer accounts; enrollment, statements and installment payments.

"""
Customer Account API Routes

Balance columns are read-only here: every change to them goes through
balance_service (payments) or the sale/refund processors.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError
from ..decorators import as_of_arg, json_body, ledger_error_response, require_actor
from ..services import allocation_service, balance_service, customer_service
from .. import repositories


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
@require_actor
def create_customer_route():
    """
    Request body:
    {
        "name": "Jane Wanjiku",
        "class_name": "Form 2",
        "admission_number": "ADM-0042",   (optional)
        "boarding_status": "BOARDING",    (DAY | BOARDING)
        "program_membership": "A",        (NONE | A | B)
        "guardian_name": "...", "guardian_phone": "..."
    }
    """
    try:
        data = json_body()
        customer = customer_service.create_customer(
            name=data.get("name"),
            class_name=data.get("class_name"),
            admission_number=data.get("admission_number"),
            boarding_status=data.get("boarding_status", "DAY"),
            program_membership=data.get("program_membership", "NONE"),
            guardian_name=data.get("guardian_name"),
            guardian_phone=data.get("guardian_phone"),
            actor=g.actor,
        )
        return jsonify({"customer": customer.to_dict()}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("")
def list_customers_route():
    try:
        customers = customer_service.list_customers(
            class_name=request.args.get("class_name"),
            search=request.args.get("search"),
        )
        return jsonify({"customers": [c.to_dict() for c in customers]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        customer = repositories.get_customer(customer_id)
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.patch("/<int:customer_id>")
@require_actor
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(customer_id, json_body(), actor=g.actor)
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/statement")
def customer_statement_route(customer_id: int):
    try:
        return jsonify(customer_service.get_customer_statement(customer_id)), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build customer statement")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/payments")
@require_actor
def record_installment_route(customer_id: int):
    """
    Guardian installment against the account balance.

    Request body:
    {
        "amount_cents": 50000,
        "method": "mpesa",          (cash | mpesa | bank | cheque)
        "reference": "QK12ABC",     (optional)
        "notes": "..."              (optional)
    }
    """
    try:
        data = json_body()
        change = balance_service.record_installment_payment(
            customer_id,
            data.get("amount_cents"),
            method=data.get("method", "cash"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            actor=g.actor,
        )
        return jsonify(change.to_dict()), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record installment")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/allocations")
def customer_allocations_route(customer_id: int):
    """Active allocations plus the pending (due) items. Optional ?as_of=ISO-8601."""
    try:
        return jsonify(allocation_service.get_customer_allocations(customer_id, now=as_of_arg())), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get customer allocations")
        return jsonify({"error": "Internal server error"}), 500

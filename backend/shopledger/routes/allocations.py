# Overview: Flask API routes for recurring allocations; creation, fulfillment and due lists.

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError
from ..decorators import as_of_arg, json_body, ledger_error_response, require_actor
from ..services import allocation_service
from ..services.allocation_service import AllocationInput
from ..validation import coerce_int


allocations_bp = Blueprint("allocations", __name__, url_prefix="/api/allocations")


@allocations_bp.post("")
@require_actor
def create_allocation_route():
    """
    Request body:
    {
        "customer_id": 12,
        "product_id": 3,
        "quantity": 2,
        "frequency": "specific_days",   (yearly | termly | monthly | weekly | specific_days | once_per_term)
        "specific_days": ["monday", "thursday"],
        "program_type": "A",            (defaults to the customer's membership)
        "notes": "..."
    }
    """
    try:
        data = json_body()
        allocation = allocation_service.create_allocation(
            AllocationInput(
                customer_id=coerce_int(data.get("customer_id"), "customer_id"),
                product_id=coerce_int(data.get("product_id"), "product_id"),
                frequency=data.get("frequency"),
                quantity=data.get("quantity", 1),
                specific_days=data.get("specific_days"),
                program_type=data.get("program_type"),
                notes=data.get("notes"),
            ),
            actor=g.actor,
        )
        return jsonify({"allocation": allocation.to_dict()}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create allocation")
        return jsonify({"error": "Internal server error"}), 500


@allocations_bp.post("/<int:allocation_id>/fulfill")
@require_actor
def fulfill_allocation_route(allocation_id: int):
    try:
        result = allocation_service.fulfill_allocation(allocation_id, actor=g.actor)
        return jsonify(result.to_dict()), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fulfill allocation")
        return jsonify({"error": "Internal server error"}), 500


@allocations_bp.post("/<int:allocation_id>/cancel")
@require_actor
def cancel_allocation_route(allocation_id: int):
    """Request body: {"reason": "Left the program"}"""
    try:
        data = json_body()
        allocation = allocation_service.cancel_allocation(allocation_id, reason=data.get("reason"), actor=g.actor)
        return jsonify({"allocation": allocation.to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel allocation")
        return jsonify({"error": "Internal server error"}), 500


@allocations_bp.get("/due")
def due_allocations_route():
    """Query params: program_type (A | B), as_of (ISO-8601)."""
    try:
        due = allocation_service.get_due_allocations(
            now=as_of_arg(),
            program_type=request.args.get("program_type"),
        )
        return jsonify({
            "allocations": [{**allocation.to_dict(), **status.to_dict()} for allocation, status in due],
            "count": len(due),
        }), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list due allocations")
        return jsonify({"error": "Internal server error"}), 500


@allocations_bp.get("/<int:allocation_id>/history")
def allocation_history_route(allocation_id: int):
    try:
        history = allocation_service.get_allocation_history(allocation_id)
        return jsonify({"history": [h.to_dict() for h in history]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get allocation history")
        return jsonify({"error": "Internal server error"}), 500

# Overview: Flask API routes for health checks and the audit trail.

"""
System health and audit endpoints.
"""

import time

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import text

from ..extensions import db
from ..errors import LedgerError
from ..decorators import ledger_error_response
from ..services.audit_service import list_audit_events
from ..time_utils import utcnow, to_utc_z
from ..validation import coerce_int

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a trivial round trip.

    Returns dict with status and latency.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503


@system_bp.get("/api/audit-events")
def list_audit_events_route():
    """
    Query params:
    - entity_type: customer, product, sale, allocation, supplier
    - entity_id
    - limit (default 200)
    """
    try:
        entity_id = request.args.get("entity_id")
        events = list_audit_events(
            entity_type=request.args.get("entity_type"),
            entity_id=coerce_int(entity_id, "entity_id") if entity_id is not None else None,
            limit=coerce_int(request.args.get("limit", "200"), "limit"),
        )
        return jsonify({"events": [e.to_dict() for e in events]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list audit events")
        return jsonify({"error": "Internal server error"}), 500

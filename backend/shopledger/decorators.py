# Overview: Request helpers for API routes; actor identity, JSON bodies and error responses.

from __future__ import annotations

from functools import wraps

from flask import request, jsonify, g

from .errors import LedgerError, ValidationError
from .services.audit_service import Actor
from .time_utils import parse_iso_datetime


def require_actor(f):
    """
    Establish who is performing the request.

    Sets g.actor from the X-Actor-Name / X-Actor-Role headers. Authorization
    is the caller's concern; this only records identity for the audit trail.

    Returns 401 if X-Actor-Name is missing.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        name = (request.headers.get("X-Actor-Name") or "").strip()
        if not name:
            return jsonify({"error": "Actor identity required (X-Actor-Name header)"}), 401

        role = (request.headers.get("X-Actor-Role") or "staff").strip() or "staff"
        g.actor = Actor(name=name[:128], role=role[:64])
        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request body as a dict; anything else is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def as_of_arg(name: str = "as_of"):
    """Optional ISO-8601 query parameter used to evaluate due dates at a given instant."""
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def ledger_error_response(e: LedgerError):
    return jsonify(e.to_dict()), e.status_code

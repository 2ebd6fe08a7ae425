"""
Typed failures raised by the ledger services.

Every error carries a machine-readable ``kind``, a human message and an
optional ``details`` dict. Services raise them from inside ``atomic()`` so the
surrounding transaction is rolled back before the caller sees the error.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all business-rule failures."""

    kind = "LedgerError"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class NotFound(LedgerError):
    kind = "NotFound"
    status_code = 404


class InsufficientStock(LedgerError):
    kind = "InsufficientStock"
    status_code = 409


class InsufficientBalance(LedgerError):
    kind = "InsufficientBalance"
    status_code = 409


class InvalidState(LedgerError):
    """Bad department, missing reason, wrong program, ineligible customer."""

    kind = "InvalidState"
    status_code = 409


class ValidationError(LedgerError, ValueError):
    """400-level input problem (malformed number, missing required field)."""

    kind = "ValidationError"
    status_code = 400

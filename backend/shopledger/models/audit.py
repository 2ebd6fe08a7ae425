from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit trail.

    One row per business mutation, inserted in the SAME transaction as the
    mutation itself so a rolled-back operation leaves no audit row behind.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., sale.completed, ledger.payment_applied

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    # Who did it (trusted from the caller, never authenticated here)
    actor_name = db.Column(db.String(128), nullable=False)
    actor_role = db.Column(db.String(64), nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    # JSON-encoded; keep small
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_name": self.actor_name,
            "actor_role": self.actor_role,
            "occurred_at": to_utc_z(self.occurred_at),
            "payload": json.loads(self.payload) if self.payload else None,
        }

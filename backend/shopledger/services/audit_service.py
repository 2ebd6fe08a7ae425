# Overview: Service-layer operations for the audit trail; append-only, written inside the caller's transaction.

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
"""
Audit Trail Invariants (authoritative)

- Append-only: no updates or deletes of existing events.
- Events are flushed inside the same DB transaction as the mutation they
  record; this module never commits.
- Actor identity is trusted from the caller (authorization happens upstream).
"""


@dataclass(frozen=True)
class Actor:
    name: str
    role: str

    def to_dict(self) -> dict:
        return {"name": self.name, "role": self.role}


SYSTEM_ACTOR = Actor(name="System", role="system")


def append_audit_event(
    *,
    actor: Actor,
    event_type: str,
    entity_type: str,
    entity_id: int,
    payload: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_name=actor.name,
        actor_role=actor.role,
        occurred_at=occurred_at,  # if None, db default applies
        payload=json.dumps(payload, sort_keys=True, default=str) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_audit_events(*, entity_type: str | None = None, entity_id: int | None = None, limit: int = 200) -> list[AuditEvent]:
    q = db.session.query(AuditEvent)
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditEvent.entity_id == entity_id)
    return q.order_by(AuditEvent.id.desc()).limit(limit).all()

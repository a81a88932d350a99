# Overview: Service-layer operations for the audit trail.

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import AuditEvent
from ordering.time_utils import utcnow

"""
Audit trail invariants

- Append-only. No updates or deletes of existing events.
- Events are written inside the same DB transaction as the change they record.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_audit_event(
    *,
    event_type: str,
    entity_type: str,
    entity_ref: str,
    actor_id: str | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_ref=entity_ref,
        actor_id=actor_id,
        occurred_at=occurred_at or utcnow(),
        note=note,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(
    *,
    entity_type: str | None = None,
    entity_ref: str | None = None,
    limit: int = 200,
) -> list[AuditEvent]:
    q = AuditEvent.query
    if entity_type:
        q = q.filter_by(entity_type=entity_type)
    if entity_ref:
        q = q.filter_by(entity_ref=entity_ref)
    return q.order_by(AuditEvent.occurred_at.asc(), AuditEvent.id.asc()).limit(limit).all()

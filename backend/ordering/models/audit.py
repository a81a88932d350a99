from __future__ import annotations

from ..extensions import db
from ordering.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit trail for state changes in the purchasing core.

    - Written inside the same DB transaction as the change it records.
    - occurred_at is business time; created_at is system time (DB default).
    - actor_id is the opaque identity supplied by the caller.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_ref"),
        db.Index("ix_audit_events_occurred_at", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_ref = db.Column(db.String(64), nullable=False)
    actor_id = db.Column(db.String(128), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    note = db.Column(db.Text, nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<AuditEvent {self.event_type} {self.entity_type}:{self.entity_ref}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_ref": self.entity_ref,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from ordering.time_utils import to_utc_z


class CutoffCycle(db.Model):
    """
    One daily intake cycle.

    The newest row is the current cutoff window. Rows are never deleted, so
    the history of when intake opened and closed stays available for replaying
    order phases.

    INVARIANTS:
    - closed_at is NULL iff status = 'open'
    - closed_at >= opened_at once closed
    - at most one row is 'open' (partial unique index)
    """
    __tablename__ = "cutoff_cycles"
    __table_args__ = (
        db.CheckConstraint("status IN ('open', 'closed')", name="ck_cutoff_cycles_status"),
        db.CheckConstraint(
            "(status = 'open' AND closed_at IS NULL) OR (status = 'closed' AND closed_at IS NOT NULL)",
            name="ck_cutoff_cycles_closed_at",
        ),
        db.Index(
            "uq_cutoff_cycles_single_open",
            "status",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        db.Index("ix_cutoff_cycles_opened_at", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default="open")
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False)
    opened_by = db.Column(db.String(128), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.String(128), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<CutoffCycle id={self.id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "opened_by": self.opened_by,
            "closed_at": to_utc_z(self.closed_at),
            "closed_by": self.closed_by,
            "version_id": self.version_id,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-day document sequences.

    WHY: Prevent race conditions when generating document numbers
    (sale orders, purchase orders, purchase ledgers). The counter restarts
    at 1 for every (document_type, sequence_date).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "sequence_date", name="uq_doc_sequences_type_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    sequence_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "sequence_date": self.sequence_date.isoformat(),
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }

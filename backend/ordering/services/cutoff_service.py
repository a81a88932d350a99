# Overview: Service-layer operations for the daily cutoff window and order phase classification.

"""
Cutoff Window Manager

The current window is the newest CutoffCycle row. Every sale order reads it
once at creation to stamp its phase; aggregation reads it for the default
reset point.

FALLBACK: before any cycle has been opened the window is synthesized by
CutoffWindow.fallback(): closed, opened at the start of the current business
day, never closed. Orders classified against it are phase 'none'.

CONCURRENCY:
- open: the partial unique index on status='open' admits one open row.
- close: conditional UPDATE ... WHERE status='open'. The loser of a close race
  matches zero rows and fails with InvalidStateError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InvalidStateError, ValidationError
from ..models import CutoffCycle
from .audit_service import append_audit_event
from .lifecycle_service import OrderPhase
from ordering.time_utils import start_of_business_day, to_utc_z, utcnow


WINDOW_OPEN = "open"
WINDOW_CLOSED = "closed"


@dataclass(frozen=True)
class CutoffWindow:
    status: str
    opened_at: datetime
    closed_at: datetime | None = None
    closed_by: str | None = None
    opened_by: str | None = None
    cycle_id: int | None = None

    def __post_init__(self):
        if self.status not in (WINDOW_OPEN, WINDOW_CLOSED):
            raise ValidationError(f"Invalid cutoff status '{self.status}'")
        if self.status == WINDOW_OPEN and self.closed_at is not None:
            raise ValidationError("An open cutoff window cannot have closed_at")
        if self.closed_at is not None and self.closed_at < self.opened_at:
            raise ValidationError("closed_at must not precede opened_at")

    @property
    def is_open(self) -> bool:
        return self.status == WINDOW_OPEN

    @property
    def is_fallback(self) -> bool:
        return self.cycle_id is None

    @classmethod
    def from_record(cls, cycle: CutoffCycle) -> "CutoffWindow":
        return cls(
            status=cycle.status,
            opened_at=cycle.opened_at,
            closed_at=cycle.closed_at,
            closed_by=cycle.closed_by,
            opened_by=cycle.opened_by,
            cycle_id=cycle.id,
        )

    @classmethod
    def fallback(cls, now: datetime, tz_name: str = "UTC") -> "CutoffWindow":
        """Window used when no cycle exists yet: closed, opened at local midnight, no closed_at."""
        return cls(status=WINDOW_CLOSED, opened_at=start_of_business_day(now, tz_name))

    def to_dict(self) -> dict:
        return {
            "cycle_id": self.cycle_id,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "opened_by": self.opened_by,
            "closed_at": to_utc_z(self.closed_at),
            "closed_by": self.closed_by,
            "is_fallback": self.is_fallback,
        }


def classify_phase(submitted_at: datetime, window: CutoffWindow) -> OrderPhase:
    """
    Pure phase classification.

    regular:    submitted_at >= opened_at and (open or submitted_at < closed_at)
    additional: closed_at is set and submitted_at >= closed_at
    none:       anything else (before the window opened, or the fallback window)
    """
    if submitted_at >= window.opened_at and (
        window.is_open or (window.closed_at is not None and submitted_at < window.closed_at)
    ):
        return OrderPhase.REGULAR
    if window.closed_at is not None and submitted_at >= window.closed_at:
        return OrderPhase.ADDITIONAL
    return OrderPhase.NONE


def _latest_cycle() -> CutoffCycle | None:
    return (
        db.session.query(CutoffCycle)
        .order_by(CutoffCycle.opened_at.desc(), CutoffCycle.id.desc())
        .first()
    )


def current_window(now: datetime | None = None) -> CutoffWindow:
    cycle = _latest_cycle()
    if cycle is None:
        return CutoffWindow.fallback(now or utcnow(), current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
    return CutoffWindow.from_record(cycle)


def is_accepting_regular_orders() -> bool:
    return current_window().is_open


def open_window(*, actor: str | None = None, at: datetime | None = None) -> CutoffWindow:
    """
    Start a new intake cycle.

    Raises:
        InvalidStateError: the current window is already open
    """
    now = at or utcnow()
    latest = _latest_cycle()
    if latest is not None and latest.status == WINDOW_OPEN:
        raise InvalidStateError(
            f"Cutoff window is already open (since {to_utc_z(latest.opened_at)})"
        )

    cycle = CutoffCycle(status=WINDOW_OPEN, opened_at=now, opened_by=actor)
    db.session.add(cycle)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise InvalidStateError("Cutoff window is already open") from exc

    append_audit_event(
        event_type="cutoff.opened",
        entity_type="cutoff_cycle",
        entity_ref=str(cycle.id),
        actor_id=actor,
        occurred_at=now,
    )
    db.session.commit()
    current_app.logger.info("Cutoff window %s opened by %s", cycle.id, actor)
    return CutoffWindow.from_record(cycle)


def close_window(*, actor: str | None = None, at: datetime | None = None) -> CutoffWindow:
    """
    Cut off regular intake for the open cycle.

    Raises:
        InvalidStateError: no open window, or another operator closed it first
        ValidationError: `at` precedes the window's opened_at
    """
    now = at or utcnow()
    latest = _latest_cycle()
    if latest is None or latest.status != WINDOW_OPEN:
        raise InvalidStateError("Cutoff window is already closed")
    if now < latest.opened_at:
        raise ValidationError("Cannot close a cutoff window before it opened")

    stmt = (
        update(CutoffCycle)
        .where(CutoffCycle.id == latest.id, CutoffCycle.status == WINDOW_OPEN)
        .values(
            status=WINDOW_CLOSED,
            closed_at=now,
            closed_by=actor,
            version_id=CutoffCycle.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStateError("Cutoff window is already closed")

    append_audit_event(
        event_type="cutoff.closed",
        entity_type="cutoff_cycle",
        entity_ref=str(latest.id),
        actor_id=actor,
        occurred_at=now,
    )
    db.session.commit()
    db.session.refresh(latest)
    current_app.logger.info("Cutoff window %s closed by %s", latest.id, actor)
    return CutoffWindow.from_record(latest)


def list_cycles(*, limit: int = 30) -> list[CutoffCycle]:
    return (
        db.session.query(CutoffCycle)
        .order_by(CutoffCycle.opened_at.desc(), CutoffCycle.id.desc())
        .limit(limit)
        .all()
    )

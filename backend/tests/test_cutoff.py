# Overview: Pytest coverage for the cutoff window manager and phase classifier.

from datetime import datetime, timedelta

import pytest

from ordering.errors import InvalidStateError, ValidationError
from ordering.models import AuditEvent, CutoffCycle
from ordering.services import cutoff_service
from ordering.services.cutoff_service import CutoffWindow, classify_phase
from ordering.services.lifecycle_service import OrderPhase
from ordering.time_utils import business_date, start_of_business_day, utcnow

from conftest import ACTOR


NINE = datetime(2025, 10, 20, 9, 0)
TWO_PM = datetime(2025, 10, 20, 14, 0)


class TestClassifyPhase:
    """Pure classification against a window value."""

    def test_open_window(self):
        window = CutoffWindow(status="open", opened_at=NINE)
        assert classify_phase(NINE, window) is OrderPhase.REGULAR
        assert classify_phase(NINE + timedelta(hours=5), window) is OrderPhase.REGULAR
        assert classify_phase(NINE - timedelta(minutes=1), window) is OrderPhase.NONE

    def test_closed_window(self):
        window = CutoffWindow(status="closed", opened_at=NINE, closed_at=TWO_PM)
        assert classify_phase(datetime(2025, 10, 20, 10), window) is OrderPhase.REGULAR
        assert classify_phase(TWO_PM, window) is OrderPhase.ADDITIONAL
        assert classify_phase(datetime(2025, 10, 20, 15), window) is OrderPhase.ADDITIONAL
        assert classify_phase(datetime(2025, 10, 20, 8), window) is OrderPhase.NONE

    def test_fallback_window_classifies_none(self):
        window = CutoffWindow.fallback(datetime(2025, 10, 20, 12), "UTC")
        assert window.is_fallback
        assert not window.is_open
        assert window.closed_at is None
        assert window.opened_at == datetime(2025, 10, 20, 0, 0)
        assert classify_phase(datetime(2025, 10, 20, 12), window) is OrderPhase.NONE

    def test_classification_is_stable_after_close(self):
        """A moment classified against w1 keeps its phase when w1 is re-read as closed later."""
        w1 = CutoffWindow(status="open", opened_at=NINE)
        w2 = CutoffWindow(status="closed", opened_at=NINE, closed_at=TWO_PM)
        at = datetime(2025, 10, 20, 10)
        assert classify_phase(at, w1) == classify_phase(at, w1)
        assert classify_phase(at, w1) == classify_phase(at, w2)


class TestWindowValue:
    def test_open_window_cannot_carry_closed_at(self):
        with pytest.raises(ValidationError):
            CutoffWindow(status="open", opened_at=NINE, closed_at=TWO_PM)

    def test_closed_at_must_follow_opened_at(self):
        with pytest.raises(ValidationError):
            CutoffWindow(status="closed", opened_at=TWO_PM, closed_at=NINE)

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            CutoffWindow(status="paused", opened_at=NINE)

    def test_business_day_in_seoul(self):
        # 2025-10-20 16:00 UTC is already 2025-10-21 in Seoul
        moment = datetime(2025, 10, 20, 16, 0)
        assert business_date(moment, "Asia/Seoul").isoformat() == "2025-10-21"
        assert start_of_business_day(moment, "Asia/Seoul") == datetime(2025, 10, 20, 15, 0)


class TestWindowPersistence:
    def test_current_window_falls_back_without_cycles(self, db_session):
        window = cutoff_service.current_window()
        assert window.is_fallback
        assert window.status == "closed"
        assert not cutoff_service.is_accepting_regular_orders()

    def test_open_then_close(self, db_session, day_start):
        opened = cutoff_service.open_window(actor=ACTOR, at=day_start)
        assert opened.is_open
        assert opened.opened_by == ACTOR
        assert cutoff_service.is_accepting_regular_orders()

        closed = cutoff_service.close_window(actor="ops-park", at=day_start + timedelta(hours=5))
        assert closed.status == "closed"
        assert closed.closed_at == day_start + timedelta(hours=5)
        assert closed.closed_by == "ops-park"
        assert closed.cycle_id == opened.cycle_id

        events = db_session.query(AuditEvent).order_by(AuditEvent.id).all()
        assert [e.event_type for e in events] == ["cutoff.opened", "cutoff.closed"]

    def test_close_bumps_version(self, db_session, open_window):
        before = db_session.get(CutoffCycle, open_window.cycle_id).version_id
        cutoff_service.close_window(actor=ACTOR)
        assert db_session.get(CutoffCycle, open_window.cycle_id).version_id == before + 1

    def test_open_twice_fails(self, db_session, open_window):
        with pytest.raises(InvalidStateError):
            cutoff_service.open_window(actor=ACTOR)
        assert db_session.query(CutoffCycle).count() == 1

    def test_close_twice_fails(self, db_session, open_window):
        cutoff_service.close_window(actor=ACTOR)
        with pytest.raises(InvalidStateError):
            cutoff_service.close_window(actor="ops-park")
        cycle = db_session.get(CutoffCycle, open_window.cycle_id)
        assert cycle.closed_by == ACTOR

    def test_close_without_cycle_fails(self, db_session):
        with pytest.raises(InvalidStateError):
            cutoff_service.close_window(actor=ACTOR)

    def test_close_before_open_time_rejected(self, db_session, open_window, day_start):
        with pytest.raises(ValidationError):
            cutoff_service.close_window(actor=ACTOR, at=day_start - timedelta(minutes=1))
        assert cutoff_service.current_window().is_open

    def test_new_cycle_after_close(self, db_session, open_window, day_start):
        cutoff_service.close_window(actor=ACTOR, at=day_start + timedelta(hours=5))
        reopened = cutoff_service.open_window(actor=ACTOR, at=day_start + timedelta(hours=20))
        assert reopened.cycle_id != open_window.cycle_id
        assert cutoff_service.current_window().cycle_id == reopened.cycle_id
        assert [c.id for c in cutoff_service.list_cycles()] == [reopened.cycle_id, open_window.cycle_id]

    def test_only_one_open_row_is_possible(self, db_session, open_window):
        """The partial unique index rejects a second open row even when the check is bypassed."""
        from sqlalchemy.exc import IntegrityError

        db_session.add(CutoffCycle(status="open", opened_at=utcnow()))
        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

# Overview: Bulk supplier notification for purchase orders with per-order outcomes.

"""
Notification Dispatch Coordinator

FLOW (per batch):
1. Load every requested order on the calling thread. Orders that already
   succeeded, or are no longer 'placed', are skipped and never sent.
2. Build each message, then run the sends on a bounded thread pool
   (DISPATCH_MAX_WORKERS). Each send has a deadline of
   NOTIFICATION_TIMEOUT_SECONDS from the moment a worker starts it; a timeout
   or an exception is a TransportFailure for that order only.
3. Record outcomes back on the calling thread, one commit per order:
   success -> sms_success=True, last_sms_sent_at=now, placed -> confirmed
   failure -> sms_success=False, last_sms_error, status unchanged

Worker threads never touch the DB session. A failure on one order never rolls
back another order's success.

COUNTS (attempted == succeeded + failed):
- attempted: orders handed to the sender (or failed for lack of recipients)
- succeeded / failed: outcomes of the attempted ones
- skipped: already notified or not 'placed'
- not_found: unknown order numbers
"""

from __future__ import annotations

import concurrent.futures
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..errors import OrderingError, TransportFailure
from ..models import PurchaseOrder
from .audit_service import append_audit_event
from .concurrency import commit_or_conflict
from .lifecycle_service import PurchaseOrderStatus, apply_purchase_order_transition
from .notification_service import NotificationSender, SendResult, build_purchase_order_message, get_sender
from ordering.time_utils import utcnow


OUTCOME_SENT = "sent"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_NOT_FOUND = "not_found"


@dataclass
class DispatchResult:
    order_number: str
    outcome: str
    error: str | None = None
    provider_message_id: str | None = None
    recipient_count: int = 0

    @property
    def success(self) -> bool:
        return self.outcome == OUTCOME_SENT

    def to_dict(self) -> dict:
        return {
            "order_number": self.order_number,
            "outcome": self.outcome,
            "success": self.success,
            "error": self.error,
            "provider_message_id": self.provider_message_id,
            "recipient_count": self.recipient_count,
        }


@dataclass
class DispatchSummary:
    results: list[DispatchResult] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return sum(1 for r in self.results if r.outcome in (OUTCOME_SENT, OUTCOME_FAILED))

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.outcome == OUTCOME_SENT)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.outcome == OUTCOME_FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome == OUTCOME_SKIPPED)

    @property
    def not_found(self) -> int:
        return sum(1 for r in self.results if r.outcome == OUTCOME_NOT_FOUND)

    def result_for(self, order_number: str) -> DispatchResult | None:
        for r in self.results:
            if r.order_number == order_number:
                return r
        return None

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "not_found": self.not_found,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class _Job:
    order_number: str
    recipients: tuple[dict, ...]
    message: str


def _unique(numbers: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for n in numbers:
        if n and n not in seen:
            seen[n] = None
    return list(seen)


def _skip_reason(order: PurchaseOrder) -> str | None:
    if order.sms_success is True:
        return "Already notified"
    if order.status != PurchaseOrderStatus.PLACED.value:
        return f"Status is '{order.status}'"
    return None


class _Attempt:
    """One send on the pool. started_at is set by the worker when the call begins."""

    def __init__(self, job: _Job):
        self.job = job
        self.started = threading.Event()
        self.started_at: float | None = None
        self.future: concurrent.futures.Future | None = None


def _timed_send(sender: NotificationSender, attempt: _Attempt, timeout: float) -> SendResult:
    attempt.started_at = time.monotonic()
    attempt.started.set()
    return sender.send(list(attempt.job.recipients), attempt.job.message, timeout=timeout)


def _failure(message: str) -> SendResult:
    return SendResult(success=False, error=TransportFailure(message).message)


def _run_sends(
    sender: NotificationSender,
    jobs: list[_Job],
    *,
    timeout: float,
    max_workers: int,
) -> dict[str, SendResult]:
    """
    Run the sends on a bounded pool and collect one SendResult per job.

    Each call gets `timeout` seconds measured from when a worker starts it.
    Time spent queued behind other calls is bounded separately: with n jobs
    on w workers every honest call starts within ceil(n / w) * timeout of the
    batch start. A job still queued after that (workers held by hung calls)
    is cancelled before it reaches the sender.
    """
    outcomes: dict[str, SendResult] = {}
    if not jobs:
        return outcomes

    workers = max(1, min(max_workers, len(jobs)))
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dispatch")
    try:
        attempts = []
        for job in jobs:
            attempt = _Attempt(job)
            attempt.future = executor.submit(_timed_send, sender, attempt, timeout)
            attempts.append(attempt)

        queue_deadline = time.monotonic() + math.ceil(len(jobs) / workers) * timeout
        for attempt in attempts:
            started = attempt.started.wait(max(0.0, queue_deadline - time.monotonic()))
            if not started and attempt.future.cancel():
                outcomes[attempt.job.order_number] = _failure(
                    "Notification not started: every dispatch worker is held by a timed-out call"
                )
                continue
            # started, or cancel() lost the race to a worker that is starting it
            attempt.started.wait()
            remaining = attempt.started_at + timeout - time.monotonic()
            try:
                result = attempt.future.result(timeout=max(0.0, remaining))
            except concurrent.futures.TimeoutError:
                result = _failure(f"Notification timed out after {timeout}s")
            except Exception as exc:
                result = _failure(f"Notification failed: {exc}")
            if not isinstance(result, SendResult):
                result = SendResult(success=False, error="Sender returned no result")
            outcomes[attempt.job.order_number] = result
    finally:
        # a hung sender must not block the batch past its deadline
        executor.shutdown(wait=False, cancel_futures=True)
    return outcomes


def _record(order_number: str, result: SendResult, *, actor: str | None) -> DispatchResult:
    order = db.session.query(PurchaseOrder).filter_by(order_number=order_number).first()
    recipients = len(order.recipients or []) if order is not None else 0
    if order is None:
        return DispatchResult(order_number, OUTCOME_NOT_FOUND, error="Purchase order not found")

    now = utcnow()
    try:
        if result.success:
            reason = _skip_reason(order)
            if reason is not None:
                return DispatchResult(
                    order_number,
                    OUTCOME_FAILED,
                    error=f"Order changed during dispatch: {reason}",
                    provider_message_id=result.provider_message_id,
                    recipient_count=recipients,
                )
            order.sms_success = True
            order.last_sms_sent_at = now
            order.last_sms_error = None
            apply_purchase_order_transition(order, PurchaseOrderStatus.CONFIRMED, actor=actor, at=now)
        else:
            order.sms_success = False
            order.last_sms_error = result.error or "Notification failed"

        append_audit_event(
            event_type="purchase_order.notified" if result.success else "purchase_order.notify_failed",
            entity_type="purchase_order",
            entity_ref=order_number,
            actor_id=actor,
            occurred_at=now,
            note=result.error,
            payload={"provider_message_id": result.provider_message_id, "recipients": recipients},
        )
        commit_or_conflict(f"Purchase order {order_number}")
    except OrderingError as exc:
        db.session.rollback()
        return DispatchResult(
            order_number,
            OUTCOME_FAILED,
            error=exc.message,
            provider_message_id=result.provider_message_id,
            recipient_count=recipients,
        )

    return DispatchResult(
        order_number,
        OUTCOME_SENT if result.success else OUTCOME_FAILED,
        error=None if result.success else order.last_sms_error,
        provider_message_id=result.provider_message_id,
        recipient_count=recipients,
    )


def dispatch_batch(
    order_numbers: Iterable[str],
    *,
    sender: NotificationSender | None = None,
    actor: str | None = None,
) -> DispatchSummary:
    """
    Notify suppliers for the given purchase orders.

    Never raises for a per-order problem; every order gets a DispatchResult.
    """
    config = current_app.config
    sender = sender or get_sender(current_app)
    signature = config.get("NOTIFICATION_SIGNATURE", "")

    summary = DispatchSummary()
    jobs: list[_Job] = []
    slots: list[tuple[str, DispatchResult | None]] = []

    for number in _unique(order_numbers):
        order = db.session.query(PurchaseOrder).filter_by(order_number=number).first()
        if order is None:
            slots.append((number, DispatchResult(number, OUTCOME_NOT_FOUND, error="Purchase order not found")))
            continue
        reason = _skip_reason(order)
        if reason is not None:
            slots.append((number, DispatchResult(number, OUTCOME_SKIPPED, error=reason)))
            continue
        jobs.append(_Job(
            order_number=number,
            recipients=tuple(dict(r) for r in (order.recipients or [])),
            message=build_purchase_order_message(order, signature),
        ))
        slots.append((number, None))

    no_recipients = {job.order_number for job in jobs if not job.recipients}
    outcomes = _run_sends(
        sender,
        [job for job in jobs if job.order_number not in no_recipients],
        timeout=float(config.get("NOTIFICATION_TIMEOUT_SECONDS", 10.0)),
        max_workers=int(config.get("DISPATCH_MAX_WORKERS", 4)),
    )
    for number in no_recipients:
        outcomes[number] = SendResult(success=False, error="No notification recipients")

    for number, ready in slots:
        summary.results.append(ready if ready is not None else _record(number, outcomes[number], actor=actor))

    current_app.logger.info(
        "Dispatch batch: attempted=%d succeeded=%d failed=%d skipped=%d not_found=%d",
        summary.attempted, summary.succeeded, summary.failed, summary.skipped, summary.not_found,
    )
    return summary


def resend_failed(
    *,
    category: str | None = None,
    sender: NotificationSender | None = None,
    actor: str | None = None,
) -> DispatchSummary:
    """Retry only orders still 'placed' whose last notification failed."""
    q = db.session.query(PurchaseOrder.order_number).filter(
        PurchaseOrder.status == PurchaseOrderStatus.PLACED.value,
        PurchaseOrder.sms_success.is_(False),
    )
    if category:
        q = q.filter(PurchaseOrder.category == category)
    numbers = [row[0] for row in q.order_by(PurchaseOrder.placed_at.asc(), PurchaseOrder.id.asc()).all()]
    return dispatch_batch(numbers, sender=sender, actor=actor)

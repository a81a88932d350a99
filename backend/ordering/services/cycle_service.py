# Overview: Operator "close the day" action across cutoff, aggregation, generation and dispatch.

"""
Cycle close

1. Close the open cutoff window (a window that is already closed is reused,
   so an interrupted close can be re-run).
2. Aggregate confirmed demand since the window opened.
3. Generate one purchase order per supplier bucket of each cutoff-bound
   category (CUTOFF_CATEGORIES, or every aggregated category when unset).
   Buckets that already have an order are reported, not re-ordered.
4. Dispatch the newly created orders.

Every step reports into one summary; a failing supplier or notification
never aborts the rest.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import InvalidStateError
from .aggregation_service import AggregationResult, aggregate
from .cutoff_service import CutoffWindow, close_window, current_window
from .dispatch_service import DispatchSummary, dispatch_batch
from .notification_service import NotificationSender
from .purchase_order_service import GenerationSummary, generate_for_category
from ordering.time_utils import business_date


@dataclass
class CycleCloseSummary:
    window: CutoffWindow
    aggregation: AggregationResult
    generation: list[GenerationSummary] = field(default_factory=list)
    dispatch: DispatchSummary | None = None

    @property
    def created_orders(self) -> list[str]:
        return [number for g in self.generation for number in g.created]

    def to_dict(self) -> dict:
        return {
            "window": self.window.to_dict(),
            "totals": self.aggregation.totals.to_dict(),
            "generation": [g.to_dict() for g in self.generation],
            "created_orders": self.created_orders,
            "dispatch": self.dispatch.to_dict() if self.dispatch else None,
        }


def close_cycle(
    *,
    actor: str | None = None,
    categories: list[str] | None = None,
    dispatch: bool = True,
    sender: NotificationSender | None = None,
) -> CycleCloseSummary:
    window = current_window()
    if window.is_fallback:
        raise InvalidStateError("No cutoff cycle has been opened yet")
    if window.is_open:
        window = close_window(actor=actor)

    result = aggregate(since=window.opened_at, annotate=False)
    if not categories:
        categories = list(current_app.config.get("CUTOFF_CATEGORIES") or []) or [
            c.category for c in result.categories
        ]

    tz_name = current_app.config.get("BUSINESS_TIMEZONE", "UTC")
    cycle_date = business_date(window.opened_at, tz_name)
    summary = CycleCloseSummary(window=window, aggregation=result)
    for category in categories:
        summary.generation.append(
            generate_for_category(result, category, actor=actor, cycle_date=cycle_date)
        )

    if dispatch and summary.created_orders:
        summary.dispatch = dispatch_batch(summary.created_orders, sender=sender, actor=actor)

    current_app.logger.info(
        "Cycle %s closed by %s: %d purchase orders created",
        window.cycle_id, actor, len(summary.created_orders),
    )
    return summary

# Overview: Service-layer operations for lifecycle; status enums and transition tables.

"""
Order Lifecycle State Machine

================================================================================
PURPOSE: One closed status model per entity, one transition table per entity.
================================================================================

SALE ORDER:
    placed    -> confirmed | pended | rejected | cancelled
    pended    -> confirmed | rejected
    confirmed -> completed | cancelled
    rejected, cancelled, completed: terminal

PURCHASE ORDER:
    placed    -> confirmed | pended | cancelled
    pended    -> confirmed | cancelled
    confirmed -> completed      (inbound reconciliation only)
    cancelled, completed: terminal

RULES:
1. Any pair not in the table raises InvalidTransitionError(source, target).
2. Same-state "transitions" are not transitions; they are rejected too.
3. apply_* helpers stamp the matching *_at timestamp and processed_by.
   They never commit; the caller owns the unit of work.

================================================================================
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from ..errors import InvalidTransitionError, ValidationError
from ..models import PurchaseOrder, SaleOrder
from ordering.time_utils import utcnow


class SaleOrderStatus(str, Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    PENDED = "pended"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PurchaseOrderStatus(str, Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    PENDED = "pended"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class OrderPhase(str, Enum):
    REGULAR = "regular"
    ADDITIONAL = "additional"
    NONE = "none"


SALE_ORDER_TRANSITIONS: dict[SaleOrderStatus, frozenset[SaleOrderStatus]] = {
    SaleOrderStatus.PLACED: frozenset({
        SaleOrderStatus.CONFIRMED,
        SaleOrderStatus.PENDED,
        SaleOrderStatus.REJECTED,
        SaleOrderStatus.CANCELLED,
    }),
    SaleOrderStatus.PENDED: frozenset({SaleOrderStatus.CONFIRMED, SaleOrderStatus.REJECTED}),
    SaleOrderStatus.CONFIRMED: frozenset({SaleOrderStatus.COMPLETED, SaleOrderStatus.CANCELLED}),
    SaleOrderStatus.REJECTED: frozenset(),
    SaleOrderStatus.CANCELLED: frozenset(),
    SaleOrderStatus.COMPLETED: frozenset(),
}

PURCHASE_ORDER_TRANSITIONS: dict[PurchaseOrderStatus, frozenset[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.PLACED: frozenset({
        PurchaseOrderStatus.CONFIRMED,
        PurchaseOrderStatus.PENDED,
        PurchaseOrderStatus.CANCELLED,
    }),
    PurchaseOrderStatus.PENDED: frozenset({PurchaseOrderStatus.CONFIRMED, PurchaseOrderStatus.CANCELLED}),
    PurchaseOrderStatus.CONFIRMED: frozenset({PurchaseOrderStatus.COMPLETED}),
    PurchaseOrderStatus.CANCELLED: frozenset(),
    PurchaseOrderStatus.COMPLETED: frozenset(),
}

_TABLES = {
    "sale_order": (SaleOrderStatus, SALE_ORDER_TRANSITIONS),
    "purchase_order": (PurchaseOrderStatus, PURCHASE_ORDER_TRANSITIONS),
}


def parse_status(entity: str, value: str) -> Enum:
    """
    Map a raw status string onto the entity's enum.

    Raises:
        ValidationError: unknown entity or status value
    """
    if entity not in _TABLES:
        raise ValidationError(f"Unknown lifecycle entity '{entity}'")
    enum_cls, _ = _TABLES[entity]
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValidationError(f"Invalid {entity} status '{value}'. Must be one of: {allowed}")


def can_transition(entity: str, source: str, target: str) -> bool:
    enum_cls, table = _TABLES[entity]
    try:
        src = enum_cls(source)
        dst = enum_cls(target)
    except ValueError:
        return False
    return dst in table[src]


def require_transition(entity: str, source: str, target: str) -> None:
    if not can_transition(entity, source, target):
        raise InvalidTransitionError(entity, str(source), str(target))


def is_terminal(entity: str, status: str) -> bool:
    enum_cls, table = _TABLES[entity]
    return not table[enum_cls(status)]


def apply_sale_order_transition(
    order: SaleOrder,
    target: SaleOrderStatus,
    *,
    actor: str | None = None,
    reason: str | None = None,
    at: datetime | None = None,
) -> SaleOrder:
    """
    Move a sale order to `target`, stamping the matching timestamp.

    `reason` is stored for pended / rejected orders.
    """
    target = SaleOrderStatus(target)
    require_transition("sale_order", order.status, target.value)

    now = at or utcnow()
    order.status = target.value
    order.processed_by = actor or order.processed_by

    if target is SaleOrderStatus.CONFIRMED:
        order.confirmed_at = now
    elif target is SaleOrderStatus.PENDED:
        order.pended_at = now
        order.pended_reason = reason
    elif target is SaleOrderStatus.REJECTED:
        order.rejected_at = now
        order.rejected_reason = reason
    elif target is SaleOrderStatus.CANCELLED:
        order.cancelled_at = now
    elif target is SaleOrderStatus.COMPLETED:
        order.completed_at = now
    return order


def apply_purchase_order_transition(
    order: PurchaseOrder,
    target: PurchaseOrderStatus,
    *,
    actor: str | None = None,
    at: datetime | None = None,
) -> PurchaseOrder:
    target = PurchaseOrderStatus(target)
    require_transition("purchase_order", order.status, target.value)

    now = at or utcnow()
    order.status = target.value
    order.processed_by = actor or order.processed_by

    if target is PurchaseOrderStatus.CONFIRMED:
        order.confirmed_at = now
    elif target is PurchaseOrderStatus.PENDED:
        order.pended_at = now
    elif target is PurchaseOrderStatus.CANCELLED:
        order.cancelled_at = now
    elif target is PurchaseOrderStatus.COMPLETED:
        order.completed_at = now
    return order

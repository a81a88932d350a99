# Overview: Service-layer operations for inbound reconciliation; confirmed purchase order -> immutable purchase ledger.

"""
Inbound Reconciliation Engine

WHY: The purchase order records what was asked for; the purchase ledger
records what actually arrived and what it cost. Received quantities and
prices may diverge arbitrarily from the order.

PRECONDITIONS (checked before any write):
- at least one item, no product listed twice
- received_quantity: integer >= 0
- actual_unit_price: integer > 0 (missing or zero is rejected)
- purchase order status 'confirmed' ('completed' -> AlreadyCompletedError)

ONE TRANSACTION:
1. ledger number PL-YYMMDD-NNN
2. ledger items, category from the catalog (UNCATEGORIZED_LABEL if unknown),
   line_total = received_quantity x actual_unit_price
3. catalog purchase_price := actual_unit_price for known products
4. purchase order -> completed, completed_at, purchase_ledger_number
5. audit event

CONCURRENCY: two operators reconciling the same order race on the order's
version and on the unique purchase_order_number of the ledger. The loser is
rolled back and sees AlreadyCompletedError (or ConcurrencyConflictError when
the order changed some other way). Exactly one ledger exists per order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import (
    AlreadyCompletedError,
    ConcurrencyConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..models import Product, PurchaseLedger, PurchaseLedgerItem, PurchaseOrder
from .audit_service import append_audit_event
from .concurrency import lock_for_update
from .cutoff_service import current_window
from .document_service import PURCHASE_LEDGER, next_document_number
from .lifecycle_service import PurchaseOrderStatus, apply_purchase_order_transition
from ordering.time_utils import business_date, utcnow


@dataclass(frozen=True)
class ReceivedItem:
    product_id: str
    received_quantity: int
    actual_unit_price: int
    name: str | None = None
    spec: str | None = None


def _int_field(raw: dict, key: str, idx: int) -> int:
    value = raw.get(key)
    if value is None:
        raise ValidationError(f"items[{idx}].{key} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"items[{idx}].{key} must be an integer")
    return value


def parse_received_items(raw_items: Any) -> list[ReceivedItem]:
    """
    Validate receipt lines. Accepts ReceivedItem values or dicts.

    Raises:
        ValidationError: on the first invalid line
    """
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError("At least one received item is required")

    items: list[ReceivedItem] = []
    seen: set[str] = set()
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, ReceivedItem):
            raw = {
                "product_id": raw.product_id,
                "received_quantity": raw.received_quantity,
                "actual_unit_price": raw.actual_unit_price,
                "name": raw.name,
                "spec": raw.spec,
            }
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")

        product_id = str(raw.get("product_id") or "").strip()
        if not product_id:
            raise ValidationError(f"items[{idx}].product_id is required")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} is listed more than once")
        seen.add(product_id)

        quantity = _int_field(raw, "received_quantity", idx)
        if quantity < 0:
            raise ValidationError(f"items[{idx}].received_quantity must be >= 0")
        unit_price = _int_field(raw, "actual_unit_price", idx)
        if unit_price <= 0:
            raise ValidationError(
                f"items[{idx}].actual_unit_price must be > 0",
                payload={"field": f"items[{idx}].actual_unit_price"},
            )

        items.append(ReceivedItem(
            product_id=product_id,
            received_quantity=quantity,
            actual_unit_price=unit_price,
            name=raw.get("name"),
            spec=raw.get("spec"),
        ))
    return items


def _check_reconcilable(order: PurchaseOrder) -> None:
    if order.status == PurchaseOrderStatus.COMPLETED.value:
        raise AlreadyCompletedError(
            f"Purchase order {order.order_number} was already received "
            f"(ledger {order.purchase_ledger_number})",
            payload={"purchase_ledger_number": order.purchase_ledger_number},
        )
    if order.status != PurchaseOrderStatus.CONFIRMED.value:
        raise InvalidStateError(
            f"Purchase order {order.order_number} is '{order.status}'; only confirmed orders can be received"
        )


def reconcile(
    order_number: str,
    items: Iterable[ReceivedItem | dict],
    *,
    received_by: str,
    notes: str | None = None,
    received_at: datetime | None = None,
) -> PurchaseLedger:
    """
    Record the physical receipt of a confirmed purchase order.

    Returns:
        The new PurchaseLedger

    Raises:
        ValidationError, NotFoundError, AlreadyCompletedError,
        InvalidStateError, ConcurrencyConflictError
    """
    if not received_by or not str(received_by).strip():
        raise ValidationError("received_by is required")
    received = parse_received_items(list(items) if items is not None else None)

    order = lock_for_update(
        db.session.query(PurchaseOrder).filter_by(order_number=order_number)
    ).first()
    if order is None:
        raise NotFoundError(f"Purchase order {order_number} not found")
    _check_reconcilable(order)

    now = received_at or utcnow()
    tz_name = current_app.config.get("BUSINESS_TIMEZONE", "UTC")
    uncategorized = current_app.config.get("UNCATEGORIZED_LABEL", "uncategorized")

    products = {
        p.product_id: p
        for p in db.session.query(Product).filter(
            Product.product_id.in_([r.product_id for r in received])
        ).all()
    }
    ordered = {item.product_id: item for item in order.items}

    try:
        ledger = PurchaseLedger(
            ledger_number=next_document_number(document_type=PURCHASE_LEDGER, on_date=business_date(now, tz_name)),
            purchase_order_number=order.order_number,
            supplier_id=order.supplier_id,
            supplier_name=order.supplier_name,
            category=order.category,
            received_at=now,
            received_by=str(received_by).strip(),
            notes=notes,
        )
        total = 0
        for position, r in enumerate(received, start=1):
            product = products.get(r.product_id)
            line = ordered.get(r.product_id)
            name = r.name or (line.name if line else None) or (product.name if product else r.product_id)
            spec = r.spec if r.spec is not None else (line.spec if line else (product.spec if product else None))
            line_total = r.received_quantity * r.actual_unit_price
            total += line_total
            ledger.items.append(PurchaseLedgerItem(
                position=position,
                product_id=r.product_id,
                name=name,
                spec=spec,
                category=(product.category if product and product.category else uncategorized),
                ordered_quantity=line.quantity if line else 0,
                quantity=r.received_quantity,
                unit_price=r.actual_unit_price,
                line_total=line_total,
            ))
            if product is not None:
                product.purchase_price = r.actual_unit_price
        ledger.total_amount = total
        ledger.item_count = len(received)
        db.session.add(ledger)

        apply_purchase_order_transition(order, PurchaseOrderStatus.COMPLETED, actor=received_by, at=now)
        order.purchase_ledger_number = ledger.ledger_number

        append_audit_event(
            event_type="purchase_order.received",
            entity_type="purchase_order",
            entity_ref=order.order_number,
            actor_id=received_by,
            occurred_at=now,
            note=notes,
            payload={"ledger_number": ledger.ledger_number, "total_amount": total},
        )
        db.session.commit()
    except (IntegrityError, StaleDataError) as exc:
        db.session.rollback()
        fresh = db.session.query(PurchaseOrder).filter_by(order_number=order_number).first()
        if fresh is not None and fresh.status == PurchaseOrderStatus.COMPLETED.value:
            raise AlreadyCompletedError(
                f"Purchase order {order_number} was received concurrently",
                payload={"purchase_ledger_number": fresh.purchase_ledger_number},
            ) from exc
        if isinstance(exc, StaleDataError):
            raise ConcurrencyConflictError(
                f"Purchase order {order_number} was modified concurrently; reload and retry"
            ) from exc
        raise

    current_app.logger.info(
        "Received %s into ledger %s (total %d)", order_number, ledger.ledger_number, ledger.total_amount
    )
    return ledger


def list_awaiting_receipt(*, since: datetime | None = None, include_completed: bool = False) -> list[PurchaseOrder]:
    """Confirmed purchase orders placed since the reset point (default: current window opened_at)."""
    if since is None:
        since = current_window().opened_at
    statuses = [PurchaseOrderStatus.CONFIRMED.value]
    if include_completed:
        statuses.append(PurchaseOrderStatus.COMPLETED.value)
    return (
        db.session.query(PurchaseOrder)
        .filter(PurchaseOrder.status.in_(statuses), PurchaseOrder.placed_at >= since)
        .order_by(PurchaseOrder.placed_at.desc(), PurchaseOrder.id.desc())
        .all()
    )


def get_ledger(ledger_number: str) -> PurchaseLedger:
    ledger = db.session.query(PurchaseLedger).filter_by(ledger_number=ledger_number).first()
    if ledger is None:
        raise NotFoundError(f"Purchase ledger {ledger_number} not found")
    return ledger


def get_ledger_for_order(order_number: str) -> PurchaseLedger | None:
    return db.session.query(PurchaseLedger).filter_by(purchase_order_number=order_number).first()


def list_ledgers(
    *,
    supplier_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 200,
) -> list[PurchaseLedger]:
    q = db.session.query(PurchaseLedger)
    if supplier_id:
        q = q.filter(PurchaseLedger.supplier_id == supplier_id)
    if since is not None:
        q = q.filter(PurchaseLedger.received_at >= since)
    if until is not None:
        q = q.filter(PurchaseLedger.received_at < until)
    return q.order_by(PurchaseLedger.received_at.desc(), PurchaseLedger.id.desc()).limit(limit).all()

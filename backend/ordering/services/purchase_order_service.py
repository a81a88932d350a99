# Overview: Service-layer operations for purchase orders; generation from aggregation and operator transitions.

"""
Purchase Order Generator

GENERATION:
- One purchase order per supplier bucket, per category, per cycle date.
- Items carry the aggregated total_quantity only. Unit cost is captured later
  by inbound reconciliation against the actual invoice.
- The recipient list is snapshotted from the company directory at generation.
- Numbering: PO-YYMMDD-NNN, counter scoped to the cycle date.

IDEMPOTENCY:
- A non-cancelled order for the same supplier + category + cycle_date makes
  generate() fail with DuplicateOrderError. The check runs first; the partial
  unique index on purchase_orders enforces it for concurrent callers.

EDITING:
- Item quantities may be corrected only while the order is 'placed'
  (before the supplier was notified).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import flag_modified

from ..extensions import db
from ..errors import (
    DuplicateOrderError,
    EmptyAggregationError,
    InvalidStateError,
    NotFoundError,
    OrderingError,
    ValidationError,
)
from ..models import PurchaseOrder, PurchaseOrderItem
from .aggregation_service import AggregationResult, SupplierAggregation
from .audit_service import append_audit_event
from .catalog_service import get_company
from .concurrency import commit_or_conflict
from .cutoff_service import current_window
from .document_service import PURCHASE_ORDER, next_document_number
from .lifecycle_service import PurchaseOrderStatus, apply_purchase_order_transition, parse_status
from ordering.time_utils import business_date, utcnow


def current_cycle_date() -> date:
    tz_name = current_app.config.get("BUSINESS_TIMEZONE", "UTC")
    return business_date(current_window().opened_at, tz_name)


def _find_active(supplier_id: str, category: str, cycle_date: date) -> PurchaseOrder | None:
    return (
        db.session.query(PurchaseOrder)
        .filter(
            PurchaseOrder.supplier_id == supplier_id,
            PurchaseOrder.category == category,
            PurchaseOrder.cycle_date == cycle_date,
            PurchaseOrder.status != PurchaseOrderStatus.CANCELLED.value,
        )
        .first()
    )


def _duplicate(existing: PurchaseOrder) -> DuplicateOrderError:
    return DuplicateOrderError(
        f"Purchase order {existing.order_number} already exists for supplier "
        f"{existing.supplier_id} / {existing.category} / {existing.cycle_date.isoformat()}",
        payload={"purchase_order_number": existing.order_number},
    )


def generate_purchase_order(
    supplier: SupplierAggregation,
    category: str,
    *,
    actor: str | None = None,
    cycle_date: date | None = None,
) -> PurchaseOrder:
    """
    Turn one supplier bucket into a 'placed' purchase order.

    Raises:
        EmptyAggregationError: the bucket's total_quantity is not positive
        DuplicateOrderError: a non-cancelled order exists for supplier + category + cycle
        NotFoundError: the supplier is not in the directory
    """
    if not category or not category.strip():
        raise ValidationError("category is required")
    if supplier.total_quantity <= 0:
        raise EmptyAggregationError(
            f"Supplier {supplier.supplier_id} has no demand in {category}"
        )

    cycle_date = cycle_date or current_cycle_date()
    existing = _find_active(supplier.supplier_id, category, cycle_date)
    if existing is not None:
        raise _duplicate(existing)

    company = get_company(supplier.supplier_id)
    now = utcnow()

    order = PurchaseOrder(
        order_number=next_document_number(document_type=PURCHASE_ORDER, on_date=cycle_date),
        supplier_id=supplier.supplier_id,
        supplier_name=company.name,
        recipients=company.recipients_as_dicts(),
        category=category,
        cycle_date=cycle_date,
        status=PurchaseOrderStatus.PLACED.value,
        placed_at=now,
        created_by=actor,
    )
    position = 0
    for product in supplier.products:
        if product.total_quantity <= 0:
            continue
        position += 1
        order.items.append(PurchaseOrderItem(
            position=position,
            product_id=product.product_id,
            name=product.name,
            spec=product.spec,
            quantity=product.total_quantity,
        ))
    order.item_count = position

    db.session.add(order)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        existing = _find_active(supplier.supplier_id, category, cycle_date)
        if existing is not None:
            raise _duplicate(existing)
        raise

    append_audit_event(
        event_type="purchase_order.generated",
        entity_type="purchase_order",
        entity_ref=order.order_number,
        actor_id=actor,
        occurred_at=now,
        payload={
            "supplier_id": order.supplier_id,
            "category": category,
            "cycle_date": cycle_date.isoformat(),
            "total_quantity": supplier.total_quantity,
        },
    )
    db.session.commit()
    current_app.logger.info(
        "Generated %s for supplier %s (%s, %d items)",
        order.order_number, order.supplier_id, category, order.item_count,
    )
    return order


@dataclass
class SupplierOutcome:
    supplier_id: str
    supplier_name: str
    success: bool
    purchase_order_number: str | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "success": self.success,
            "purchase_order_number": self.purchase_order_number,
            "error": self.error,
            "error_code": self.error_code,
        }


@dataclass
class GenerationSummary:
    category: str
    cycle_date: date
    outcomes: list[SupplierOutcome] = field(default_factory=list)

    @property
    def created(self) -> list[str]:
        return [o.purchase_order_number for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[SupplierOutcome]:
        return [o for o in self.outcomes if not o.success]

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "cycle_date": self.cycle_date.isoformat(),
            "attempted": len(self.outcomes),
            "created": self.created,
            "failed": len(self.failed),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


def generate_for_category(
    result: AggregationResult,
    category: str,
    *,
    actor: str | None = None,
    cycle_date: date | None = None,
    supplier_ids: Iterable[str] | None = None,
) -> GenerationSummary:
    """
    Generate one order per supplier bucket of `category`.

    Each supplier is committed independently; a duplicate or missing supplier
    is recorded in the summary and does not stop the others. `supplier_ids`
    restricts generation to those buckets; a requested supplier with no
    demand is reported as empty.
    """
    cycle_date = cycle_date or current_cycle_date()
    summary = GenerationSummary(category=category, cycle_date=cycle_date)
    bucket = result.category(category)
    suppliers = list(bucket.suppliers) if bucket else []

    if supplier_ids is not None:
        wanted = list(dict.fromkeys(supplier_ids))
        by_id = {s.supplier_id: s for s in suppliers}
        suppliers = [by_id[sid] for sid in wanted if sid in by_id]
        for sid in wanted:
            if sid not in by_id:
                summary.outcomes.append(SupplierOutcome(
                    supplier_id=sid,
                    supplier_name="",
                    success=False,
                    error=f"Supplier {sid} has no demand in {category}",
                    error_code=EmptyAggregationError.default_code,
                ))

    for supplier in suppliers:
        try:
            order = generate_purchase_order(supplier, category, actor=actor, cycle_date=cycle_date)
        except OrderingError as exc:
            db.session.rollback()
            summary.outcomes.append(SupplierOutcome(
                supplier_id=supplier.supplier_id,
                supplier_name=supplier.supplier_name,
                success=False,
                purchase_order_number=exc.payload.get("purchase_order_number"),
                error=exc.message,
                error_code=exc.code,
            ))
            continue
        summary.outcomes.append(SupplierOutcome(
            supplier_id=supplier.supplier_id,
            supplier_name=order.supplier_name,
            success=True,
            purchase_order_number=order.order_number,
        ))
    return summary


def get_purchase_order(order_number: str) -> PurchaseOrder:
    order = db.session.query(PurchaseOrder).filter_by(order_number=order_number).first()
    if order is None:
        raise NotFoundError(f"Purchase order {order_number} not found")
    return order


def update_item_quantity(
    order_number: str,
    product_id: str,
    quantity: int,
    *,
    actor: str | None = None,
) -> PurchaseOrder:
    """Correct one line's quantity before the supplier has been notified."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("quantity must be an integer >= 1")

    order = get_purchase_order(order_number)
    if order.status != PurchaseOrderStatus.PLACED.value:
        raise InvalidStateError(
            f"Purchase order {order_number} is '{order.status}'; quantities can only change while 'placed'"
        )

    item = next((i for i in order.items if i.product_id == product_id), None)
    if item is None:
        raise NotFoundError(f"Product {product_id} is not on purchase order {order_number}")

    previous = item.quantity
    item.quantity = quantity
    order.processed_by = actor or order.processed_by
    # bump the header version so concurrent item edits conflict
    flag_modified(order, "processed_by")
    append_audit_event(
        event_type="purchase_order.item_quantity_changed",
        entity_type="purchase_order",
        entity_ref=order.order_number,
        actor_id=actor,
        payload={"product_id": product_id, "from": previous, "to": quantity},
    )
    commit_or_conflict(f"Purchase order {order_number}")
    return order


def _transition(order_number: str, target: PurchaseOrderStatus, *, actor: str | None) -> PurchaseOrder:
    order = get_purchase_order(order_number)
    source = order.status
    apply_purchase_order_transition(order, target, actor=actor)
    append_audit_event(
        event_type=f"purchase_order.{target.value}",
        entity_type="purchase_order",
        entity_ref=order.order_number,
        actor_id=actor,
        payload={"source": source, "target": target.value},
    )
    commit_or_conflict(f"Purchase order {order_number}")
    return order


def confirm_purchase_order(order_number: str, *, actor: str | None = None) -> PurchaseOrder:
    """Manual confirmation (e.g. supplier confirmed by phone)."""
    return _transition(order_number, PurchaseOrderStatus.CONFIRMED, actor=actor)


def pend_purchase_order(order_number: str, *, actor: str | None = None) -> PurchaseOrder:
    return _transition(order_number, PurchaseOrderStatus.PENDED, actor=actor)


def cancel_purchase_order(order_number: str, *, actor: str | None = None) -> PurchaseOrder:
    return _transition(order_number, PurchaseOrderStatus.CANCELLED, actor=actor)


def resume_purchase_order(order_number: str, *, actor: str | None = None) -> PurchaseOrder:
    """pended -> confirmed."""
    order = get_purchase_order(order_number)
    if order.status != PurchaseOrderStatus.PENDED.value:
        raise InvalidStateError(f"Purchase order {order_number} is not pended")
    return _transition(order_number, PurchaseOrderStatus.CONFIRMED, actor=actor)


def list_purchase_orders(
    *,
    status: str | None = None,
    category: str | None = None,
    supplier_id: str | None = None,
    cycle_date: date | None = None,
    sms_success: bool | None = None,
    limit: int = 200,
) -> list[PurchaseOrder]:
    q = db.session.query(PurchaseOrder)
    if status:
        q = q.filter(PurchaseOrder.status == parse_status("purchase_order", status).value)
    if category:
        q = q.filter(PurchaseOrder.category == category)
    if supplier_id:
        q = q.filter(PurchaseOrder.supplier_id == supplier_id)
    if cycle_date is not None:
        q = q.filter(PurchaseOrder.cycle_date == cycle_date)
    if sms_success is not None:
        q = q.filter(PurchaseOrder.sms_success.is_(sms_success))
    return q.order_by(PurchaseOrder.placed_at.desc(), PurchaseOrder.id.desc()).limit(limit).all()

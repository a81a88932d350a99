# Overview: Service-layer operations for sale orders; intake, validation and status transitions.

"""
Sale Order Service

INTAKE:
1. Items are validated strictly; a supplied line_total that disagrees with
   unit_price x quantity is rejected, never recomputed.
2. The phase is classified once against the current cutoff window and stored.
3. The order is stored as 'placed'. With AUTO_CONFIRM_SALE_ORDERS the intake
   checks below decide placed -> confirmed or placed -> pended immediately.

INTAKE CHECKS (errors pend the order, warnings are only recorded):
- PRODUCT_NOT_FOUND   error
- PRODUCT_INACTIVE    error
- STOCK_SHORTAGE      warning
- BELOW_SAFETY_STOCK  warning
- UNUSUAL_QUANTITY    warning (quantity > UNUSUAL_QUANTITY_THRESHOLD)
- PRICE_MISMATCH      warning (unit price off sale price by > PRICE_MISMATCH_PERCENT)

CANCELLATION BOUNDARY: a confirmed regular-phase order is already counted in
its cycle's regular demand; once that cycle's window has closed it can no
longer be cancelled.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Iterable

from flask import current_app

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, OrderingError, ValidationError
from ..models import CutoffCycle, SaleOrder, SaleOrderItem
from .audit_service import append_audit_event
from .catalog_service import ProductInfo, resolve_products
from .concurrency import commit_or_conflict
from .cutoff_service import classify_phase, current_window
from .document_service import SALE_ORDER, next_document_number
from .lifecycle_service import (
    OrderPhase,
    SaleOrderStatus,
    apply_sale_order_transition,
    parse_status,
)
from ordering.time_utils import business_date, utcnow


BUYER_TYPES = {"customer", "staff_proxy"}

ISSUE_LABELS = {
    "PRODUCT_NOT_FOUND": "product not found",
    "PRODUCT_INACTIVE": "inactive product",
    "STOCK_SHORTAGE": "stock shortage",
    "BELOW_SAFETY_STOCK": "below safety stock",
    "UNUSUAL_QUANTITY": "unusual quantity",
    "PRICE_MISMATCH": "price mismatch",
}


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    code: str
    message: str
    severity: str  # error | warning


@dataclass
class OrderValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def issues(self) -> list[dict]:
        return [asdict(issue) for issue in (*self.errors, *self.warnings)]

    def pended_reason(self) -> str:
        parts = []
        if self.errors:
            parts.append(f"{len(self.errors)} error(s)")
        if self.warnings:
            parts.append(f"{len(self.warnings)} warning(s)")
        codes = []
        for issue in (*self.errors, *self.warnings):
            label = ISSUE_LABELS.get(issue.code, issue.code)
            if label not in codes:
                codes.append(label)
        reason = ", ".join(parts)
        if codes:
            reason = f"{reason}: {', '.join(codes)}"
        return reason


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    name: str
    spec: str | None
    quantity: int
    unit_price: int
    line_total: int


def _require_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer")
    return value


def normalize_items(raw_items: Any, products: dict[str, ProductInfo] | None = None) -> list[OrderLine]:
    """
    Validate raw item payloads into OrderLine values.

    Raises:
        ValidationError: empty list, bad quantity / price, or a line_total that
            does not equal unit_price x quantity
    """
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError("At least one order item is required")
    products = products or {}

    lines: list[OrderLine] = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        product_id = str(raw.get("product_id") or "").strip()
        if not product_id:
            raise ValidationError(f"items[{idx}].product_id is required")

        quantity = _require_int(raw.get("quantity"), f"items[{idx}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be > 0")
        unit_price = _require_int(raw.get("unit_price"), f"items[{idx}].unit_price")
        if unit_price < 0:
            raise ValidationError(f"items[{idx}].unit_price must be >= 0")

        expected = unit_price * quantity
        if raw.get("line_total") is not None:
            line_total = _require_int(raw.get("line_total"), f"items[{idx}].line_total")
            if line_total != expected:
                raise ValidationError(
                    f"items[{idx}].line_total {line_total} != {unit_price} x {quantity}",
                    payload={"field": f"items[{idx}].line_total", "expected": expected},
                )
        else:
            line_total = expected

        for text_field in ("name", "spec"):
            if raw.get(text_field) is not None and not isinstance(raw.get(text_field), str):
                raise ValidationError(f"items[{idx}].{text_field} must be a string")

        info = products.get(product_id)
        name = (raw.get("name") or (info.name if info else None) or product_id).strip()
        spec = raw.get("spec") if raw.get("spec") is not None else (info.spec if info else None)

        lines.append(OrderLine(
            product_id=product_id,
            name=name,
            spec=spec,
            quantity=quantity,
            unit_price=unit_price,
            line_total=line_total,
        ))
    return lines


def validate_order(lines: Iterable[OrderLine], products: dict[str, ProductInfo]) -> OrderValidationResult:
    """Intake checks over already-normalized lines. Pure; reads only the given snapshots."""
    result = OrderValidationResult()
    threshold = current_app.config.get("UNUSUAL_QUANTITY_THRESHOLD", 1000)
    mismatch_pct = current_app.config.get("PRICE_MISMATCH_PERCENT", 10.0)

    for line in lines:
        key = f"items.{line.product_id}"
        product = products.get(line.product_id)
        if product is None:
            result.errors.append(ValidationIssue(key, "PRODUCT_NOT_FOUND", f"Product not found: {line.name}", "error"))
            continue

        if not product.is_active:
            result.errors.append(ValidationIssue(key, "PRODUCT_INACTIVE", f"Inactive product: {line.name}", "error"))

        if product.stock_quantity is not None and product.stock_quantity < line.quantity:
            shortage = line.quantity - product.stock_quantity
            result.warnings.append(ValidationIssue(
                f"{key}.quantity",
                "STOCK_SHORTAGE",
                f"Stock shortage: {line.name} (short {shortage}, on hand {product.stock_quantity})",
                "warning",
            ))

        if product.stock_quantity is not None and product.minimum_stock is not None:
            remaining = product.stock_quantity - line.quantity
            if remaining < product.minimum_stock:
                result.warnings.append(ValidationIssue(
                    f"{key}.quantity",
                    "BELOW_SAFETY_STOCK",
                    f"Below safety stock: {line.name} (after order {remaining}, minimum {product.minimum_stock})",
                    "warning",
                ))

        if line.quantity > threshold:
            result.warnings.append(ValidationIssue(
                f"{key}.quantity",
                "UNUSUAL_QUANTITY",
                f"Unusually large quantity: {line.name} ({line.quantity})",
                "warning",
            ))

        if product.sale_price and line.unit_price != product.sale_price:
            diff_pct = abs(line.unit_price - product.sale_price) / product.sale_price * 100
            if diff_pct > mismatch_pct:
                result.warnings.append(ValidationIssue(
                    f"{key}.unit_price",
                    "PRICE_MISMATCH",
                    f"Price mismatch: {line.name} (ordered {line.unit_price}, list {product.sale_price})",
                    "warning",
                ))
    return result


def _phase_for(placed_at: datetime, lines: list[OrderLine], products: dict[str, ProductInfo]) -> OrderPhase:
    phase = classify_phase(placed_at, current_window(placed_at))
    cutoff_categories = set(current_app.config.get("CUTOFF_CATEGORIES") or [])
    if phase is not OrderPhase.NONE and cutoff_categories:
        categories = {products[l.product_id].category for l in lines if l.product_id in products}
        if not categories & cutoff_categories:
            return OrderPhase.NONE
    return phase


def create_sale_order(
    *,
    buyer_id: str,
    buyer_name: str,
    items: list[dict],
    buyer_type: str = "customer",
    actor: str | None = None,
    placed_at: datetime | None = None,
) -> SaleOrder:
    """
    Create a sale order and stamp its phase.

    Raises:
        ValidationError: invalid buyer or items (nothing is written)
    """
    if not buyer_id or not str(buyer_id).strip():
        raise ValidationError("buyer_id is required")
    if not buyer_name or not str(buyer_name).strip():
        raise ValidationError("buyer_name is required")
    if buyer_type not in BUYER_TYPES:
        raise ValidationError(f"buyer_type must be one of: {', '.join(sorted(BUYER_TYPES))}")

    raw_ids = [str(i.get("product_id") or "") for i in items or [] if isinstance(i, dict)]
    products = resolve_products(raw_ids)
    lines = normalize_items(items, products)

    now = placed_at or utcnow()
    phase = _phase_for(now, lines, products)
    tz_name = current_app.config.get("BUSINESS_TIMEZONE", "UTC")

    order = SaleOrder(
        order_number=next_document_number(document_type=SALE_ORDER, on_date=business_date(now, tz_name)),
        buyer_id=str(buyer_id).strip(),
        buyer_name=str(buyer_name).strip(),
        buyer_type=buyer_type,
        status=SaleOrderStatus.PLACED.value,
        order_phase=phase.value,
        final_amount=sum(l.line_total for l in lines),
        item_count=len(lines),
        placed_at=now,
        created_by=actor,
        validation_issues=[],
    )
    for position, line in enumerate(lines, start=1):
        order.items.append(SaleOrderItem(
            position=position,
            product_id=line.product_id,
            name=line.name,
            spec=line.spec,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
        ))
    db.session.add(order)
    db.session.flush()

    if current_app.config.get("AUTO_CONFIRM_SALE_ORDERS", True):
        check = validate_order(lines, products)
        order.validation_issues = check.issues()
        if check.is_valid:
            apply_sale_order_transition(order, SaleOrderStatus.CONFIRMED, actor=actor, at=now)
        else:
            apply_sale_order_transition(
                order, SaleOrderStatus.PENDED, actor=actor, reason=check.pended_reason(), at=now
            )

    append_audit_event(
        event_type="sale_order.created",
        entity_type="sale_order",
        entity_ref=order.order_number,
        actor_id=actor,
        occurred_at=now,
        payload={"status": order.status, "order_phase": order.order_phase, "final_amount": order.final_amount},
    )
    db.session.commit()
    return order


def get_sale_order(order_number: str) -> SaleOrder:
    order = db.session.query(SaleOrder).filter_by(order_number=order_number).first()
    if order is None:
        raise NotFoundError(f"Sale order {order_number} not found")
    return order


def _window_closed_for(order: SaleOrder, now: datetime) -> bool:
    cycle = (
        db.session.query(CutoffCycle)
        .filter(CutoffCycle.opened_at <= order.placed_at)
        .order_by(CutoffCycle.opened_at.desc(), CutoffCycle.id.desc())
        .first()
    )
    return cycle is not None and cycle.closed_at is not None and cycle.closed_at <= now


def _transition(
    order_number: str,
    target: SaleOrderStatus,
    *,
    actor: str | None,
    reason: str | None = None,
) -> SaleOrder:
    order = get_sale_order(order_number)
    source = order.status
    now = utcnow()

    if (
        target is SaleOrderStatus.CANCELLED
        and source == SaleOrderStatus.CONFIRMED.value
        and order.order_phase == OrderPhase.REGULAR.value
        and _window_closed_for(order, now)
    ):
        raise InvalidStateError(
            f"Sale order {order_number} is part of a closed cutoff cycle and can no longer be cancelled"
        )

    apply_sale_order_transition(order, target, actor=actor, reason=reason, at=now)
    append_audit_event(
        event_type=f"sale_order.{target.value}",
        entity_type="sale_order",
        entity_ref=order.order_number,
        actor_id=actor,
        occurred_at=now,
        note=reason,
        payload={"source": source, "target": target.value},
    )
    commit_or_conflict(f"Sale order {order_number}")
    return order


def confirm_sale_order(order_number: str, *, actor: str | None = None) -> SaleOrder:
    return _transition(order_number, SaleOrderStatus.CONFIRMED, actor=actor)


def pend_sale_order(order_number: str, *, actor: str | None = None, reason: str | None = None) -> SaleOrder:
    return _transition(order_number, SaleOrderStatus.PENDED, actor=actor, reason=reason)


def reject_sale_order(order_number: str, *, actor: str | None = None, reason: str | None = None) -> SaleOrder:
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")
    return _transition(order_number, SaleOrderStatus.REJECTED, actor=actor, reason=reason.strip())


def cancel_sale_order(order_number: str, *, actor: str | None = None) -> SaleOrder:
    return _transition(order_number, SaleOrderStatus.CANCELLED, actor=actor)


def complete_sale_order(order_number: str, *, actor: str | None = None) -> SaleOrder:
    return _transition(order_number, SaleOrderStatus.COMPLETED, actor=actor)


def modify_pended_order(order_number: str, items: list[dict], *, actor: str | None = None) -> SaleOrder:
    """
    Replace a pended order's lines and confirm it.

    The lines go through the same strict checks as intake. final_amount and
    item_count are recomputed; order_phase and pended_reason are left as they
    were. Intake checks are re-run and recorded but do not block the confirm:
    the operator edit is the resolution.

    Raises:
        NotFoundError, ValidationError (nothing is written)
        InvalidStateError: the order is not pended
    """
    order = get_sale_order(order_number)
    if order.status != SaleOrderStatus.PENDED.value:
        raise InvalidStateError(
            f"Only pended sale orders can be modified (order {order_number} is '{order.status}')"
        )

    raw_ids = [str(i.get("product_id") or "") for i in items or [] if isinstance(i, dict)]
    products = resolve_products(raw_ids)
    lines = normalize_items(items, products)
    now = utcnow()
    previous_amount = order.final_amount

    order.items.clear()
    db.session.flush()
    for position, line in enumerate(lines, start=1):
        order.items.append(SaleOrderItem(
            position=position,
            product_id=line.product_id,
            name=line.name,
            spec=line.spec,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
        ))
    order.final_amount = sum(l.line_total for l in lines)
    order.item_count = len(lines)
    order.validation_issues = validate_order(lines, products).issues()

    apply_sale_order_transition(order, SaleOrderStatus.CONFIRMED, actor=actor, at=now)
    append_audit_event(
        event_type="sale_order.modified",
        entity_type="sale_order",
        entity_ref=order.order_number,
        actor_id=actor,
        occurred_at=now,
        payload={
            "previous_amount": previous_amount,
            "final_amount": order.final_amount,
            "item_count": order.item_count,
        },
    )
    commit_or_conflict(f"Sale order {order_number}")
    return order


@dataclass
class BatchConfirmResult:
    results: list[dict] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r["success"])

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": list(self.results),
        }


def batch_confirm_sale_orders(order_numbers: Iterable[str], *, actor: str | None = None) -> BatchConfirmResult:
    """Confirm each order independently; one failure never blocks the rest."""
    summary = BatchConfirmResult()
    seen: set[str] = set()
    for number in order_numbers:
        if not number or number in seen:
            continue
        seen.add(number)
        try:
            confirm_sale_order(number, actor=actor)
        except OrderingError as exc:
            db.session.rollback()
            summary.results.append({"order_number": number, "success": False, "error": exc.message, "code": exc.code})
        else:
            summary.results.append({"order_number": number, "success": True, "error": None, "code": None})

    current_app.logger.info(
        "Batch confirm: attempted=%d succeeded=%d failed=%d",
        summary.attempted, summary.succeeded, summary.failed,
    )
    return summary


def list_sale_orders(
    *,
    status: str | None = None,
    phase: str | None = None,
    buyer_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 200,
) -> list[SaleOrder]:
    q = db.session.query(SaleOrder)
    if status:
        q = q.filter(SaleOrder.status == parse_status("sale_order", status).value)
    if phase:
        try:
            q = q.filter(SaleOrder.order_phase == OrderPhase(phase).value)
        except ValueError:
            raise ValidationError(f"Invalid order phase '{phase}'")
    if buyer_id:
        q = q.filter(SaleOrder.buyer_id == buyer_id)
    if since is not None:
        q = q.filter(SaleOrder.placed_at >= since)
    if until is not None:
        q = q.filter(SaleOrder.placed_at < until)
    return q.order_by(SaleOrder.placed_at.desc(), SaleOrder.id.desc()).limit(limit).all()

# Overview: Service-layer operations for demand aggregation; pure fold plus thin DB readers.

"""
Aggregation Engine

================================================================================
PURPOSE: Fold confirmed sale orders since a reset point into purchase demand,
         keyed category -> supplier -> product.
================================================================================

PHASE SPLIT:
    placed_*    <- order_phase 'regular' (and 'none')
    confirmed_* <- order_phase 'additional'
    The bucket names are historical. The split is by the phase stamped on the
    order at creation, never by the order's current status.

INVARIANTS:
- total_X == placed_X + confirmed_X at every level (totals are derived).
- A product bucket equals the sum of its contributing order lines.
- Only status='confirmed' orders contribute demand. Pended and rejected
  orders appear in the StatusSummary only.

DETERMINISM:
- categories: name asc
- suppliers:  total_amount desc, supplier_id asc
- products:   name asc, product_id asc

fold_orders() is pure: it reads frozen snapshots only and never touches the
session. aggregate() takes one query snapshot and hands it to the fold.
Lines whose product is unknown (or has no category / supplier) are dropped
and reported, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Iterable, Mapping

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError
from ..models import PurchaseOrder, SaleOrder
from .catalog_service import CompanyInfo, ProductInfo, find_product, resolve_companies, resolve_products
from .cutoff_service import current_window
from .lifecycle_service import OrderPhase, PurchaseOrderStatus, SaleOrderStatus
from ordering.time_utils import business_date, to_utc_z, utcnow


UNKNOWN_SUPPLIER_NAME = "Unknown supplier"


# ----------------------------------------------------------------------------
# Input snapshots
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderLineSnapshot:
    product_id: str
    name: str
    spec: str | None
    quantity: int
    unit_price: int
    line_total: int


@dataclass(frozen=True)
class OrderSnapshot:
    order_number: str
    status: str
    order_phase: str
    placed_at: datetime
    final_amount: int
    buyer_name: str = ""
    items: tuple[OrderLineSnapshot, ...] = ()

    @classmethod
    def from_model(cls, order: SaleOrder) -> "OrderSnapshot":
        return cls(
            order_number=order.order_number,
            status=order.status,
            order_phase=order.order_phase,
            placed_at=order.placed_at,
            final_amount=order.final_amount,
            buyer_name=order.buyer_name,
            items=tuple(
                OrderLineSnapshot(
                    product_id=i.product_id,
                    name=i.name,
                    spec=i.spec,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                    line_total=i.line_total,
                )
                for i in order.items
            ),
        )

    @property
    def is_additional(self) -> bool:
        return self.order_phase == OrderPhase.ADDITIONAL.value


# ----------------------------------------------------------------------------
# Projections
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class ProductAggregation:
    product_id: str
    name: str
    spec: str | None
    category: str
    supplier_id: str
    placed_quantity: int = 0
    confirmed_quantity: int = 0
    placed_amount: int = 0
    confirmed_amount: int = 0
    unit_price: int = 0
    stock_quantity: int = 0
    order_count: int = 0

    @property
    def total_quantity(self) -> int:
        return self.placed_quantity + self.confirmed_quantity

    @property
    def total_amount(self) -> int:
        return self.placed_amount + self.confirmed_amount

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "spec": self.spec,
            "category": self.category,
            "supplier_id": self.supplier_id,
            "placed_quantity": self.placed_quantity,
            "confirmed_quantity": self.confirmed_quantity,
            "total_quantity": self.total_quantity,
            "placed_amount": self.placed_amount,
            "confirmed_amount": self.confirmed_amount,
            "total_amount": self.total_amount,
            "unit_price": self.unit_price,
            "stock_quantity": self.stock_quantity,
            "order_count": self.order_count,
        }


@dataclass(frozen=True)
class SupplierAggregation:
    supplier_id: str
    supplier_name: str
    products: tuple[ProductAggregation, ...] = ()
    recipients: tuple[dict, ...] = ()
    has_purchase_order: bool = False
    purchase_order_number: str | None = None

    @property
    def placed_quantity(self) -> int:
        return sum(p.placed_quantity for p in self.products)

    @property
    def confirmed_quantity(self) -> int:
        return sum(p.confirmed_quantity for p in self.products)

    @property
    def total_quantity(self) -> int:
        return self.placed_quantity + self.confirmed_quantity

    @property
    def placed_amount(self) -> int:
        return sum(p.placed_amount for p in self.products)

    @property
    def confirmed_amount(self) -> int:
        return sum(p.confirmed_amount for p in self.products)

    @property
    def total_amount(self) -> int:
        return self.placed_amount + self.confirmed_amount

    def to_dict(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "recipients": [dict(r) for r in self.recipients],
            "placed_quantity": self.placed_quantity,
            "confirmed_quantity": self.confirmed_quantity,
            "total_quantity": self.total_quantity,
            "placed_amount": self.placed_amount,
            "confirmed_amount": self.confirmed_amount,
            "total_amount": self.total_amount,
            "has_purchase_order": self.has_purchase_order,
            "purchase_order_number": self.purchase_order_number,
            "products": [p.to_dict() for p in self.products],
        }


@dataclass(frozen=True)
class CategoryAggregation:
    category: str
    suppliers: tuple[SupplierAggregation, ...] = ()
    total_orders: int = 0
    placed_orders: int = 0
    confirmed_orders: int = 0

    @property
    def placed_quantity(self) -> int:
        return sum(s.placed_quantity for s in self.suppliers)

    @property
    def confirmed_quantity(self) -> int:
        return sum(s.confirmed_quantity for s in self.suppliers)

    @property
    def total_quantity(self) -> int:
        return self.placed_quantity + self.confirmed_quantity

    @property
    def placed_amount(self) -> int:
        return sum(s.placed_amount for s in self.suppliers)

    @property
    def confirmed_amount(self) -> int:
        return sum(s.confirmed_amount for s in self.suppliers)

    @property
    def total_amount(self) -> int:
        return self.placed_amount + self.confirmed_amount

    def supplier(self, supplier_id: str) -> SupplierAggregation | None:
        for s in self.suppliers:
            if s.supplier_id == supplier_id:
                return s
        return None

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "total_orders": self.total_orders,
            "placed_orders": self.placed_orders,
            "confirmed_orders": self.confirmed_orders,
            "placed_quantity": self.placed_quantity,
            "confirmed_quantity": self.confirmed_quantity,
            "total_quantity": self.total_quantity,
            "placed_amount": self.placed_amount,
            "confirmed_amount": self.confirmed_amount,
            "total_amount": self.total_amount,
            "suppliers": [s.to_dict() for s in self.suppliers],
        }


@dataclass(frozen=True)
class SummaryBucket:
    count: int = 0
    amount: int = 0
    quantity: int = 0

    def add(self, amount: int, quantity: int) -> "SummaryBucket":
        return SummaryBucket(self.count + 1, self.amount + amount, self.quantity + quantity)

    def to_dict(self) -> dict:
        return {"count": self.count, "amount": self.amount, "quantity": self.quantity}


@dataclass(frozen=True)
class StatusSummary:
    regular: SummaryBucket = field(default_factory=SummaryBucket)
    additional: SummaryBucket = field(default_factory=SummaryBucket)
    pended: SummaryBucket = field(default_factory=SummaryBucket)
    rejected: SummaryBucket = field(default_factory=SummaryBucket)

    def to_dict(self) -> dict:
        return {
            "regular": self.regular.to_dict(),
            "additional": self.additional.to_dict(),
            "pended": self.pended.to_dict(),
            "rejected": self.rejected.to_dict(),
        }


@dataclass(frozen=True)
class DroppedLine:
    order_number: str
    product_id: str
    reason: str


@dataclass(frozen=True)
class AggregationResult:
    since: datetime | None
    generated_at: datetime
    categories: tuple[CategoryAggregation, ...] = ()
    totals: StatusSummary = field(default_factory=StatusSummary)
    dropped: tuple[DroppedLine, ...] = ()

    def category(self, name: str) -> CategoryAggregation | None:
        for c in self.categories:
            if c.category == name:
                return c
        return None

    def product(self, product_id: str) -> ProductAggregation | None:
        for c in self.categories:
            for s in c.suppliers:
                for p in s.products:
                    if p.product_id == product_id:
                        return p
        return None

    def to_dict(self) -> dict:
        return {
            "since": to_utc_z(self.since),
            "generated_at": to_utc_z(self.generated_at),
            "totals": self.totals.to_dict(),
            "categories": [c.to_dict() for c in self.categories],
            "dropped": [
                {"order_number": d.order_number, "product_id": d.product_id, "reason": d.reason}
                for d in self.dropped
            ],
        }


# ----------------------------------------------------------------------------
# Pure fold
# ----------------------------------------------------------------------------

def summarize_statuses(orders: Iterable[OrderSnapshot]) -> StatusSummary:
    summary = StatusSummary()
    for order in orders:
        quantity = sum(i.quantity for i in order.items)
        if order.status == SaleOrderStatus.PENDED.value:
            summary = replace(summary, pended=summary.pended.add(order.final_amount, quantity))
        elif order.status == SaleOrderStatus.REJECTED.value:
            summary = replace(summary, rejected=summary.rejected.add(order.final_amount, quantity))
        elif order.status == SaleOrderStatus.CONFIRMED.value:
            if order.is_additional:
                summary = replace(summary, additional=summary.additional.add(order.final_amount, quantity))
            else:
                summary = replace(summary, regular=summary.regular.add(order.final_amount, quantity))
    return summary


def fold_orders(
    orders: Iterable[OrderSnapshot],
    products: Mapping[str, ProductInfo],
    suppliers: Mapping[str, CompanyInfo],
    *,
    since: datetime | None = None,
    generated_at: datetime | None = None,
) -> AggregationResult:
    """
    Fold order snapshots into the category -> supplier -> product tree.

    Only confirmed orders contribute to the tree; every snapshot counts toward
    the status summary.
    """
    orders = list(orders)
    # (category, supplier_id, product_id) -> accumulated fields
    buckets: dict[tuple[str, str, str], dict] = {}
    category_orders: dict[str, dict[str, bool]] = {}
    dropped: list[DroppedLine] = []

    for order in orders:
        if order.status != SaleOrderStatus.CONFIRMED.value:
            continue
        for line in order.items:
            product = products.get(line.product_id)
            if product is None:
                dropped.append(DroppedLine(order.order_number, line.product_id, "product not found"))
                continue
            if not product.category:
                dropped.append(DroppedLine(order.order_number, line.product_id, "product has no category"))
                continue
            if not product.supplier_id:
                dropped.append(DroppedLine(order.order_number, line.product_id, "product has no supplier"))
                continue

            key = (product.category, product.supplier_id, line.product_id)
            acc = buckets.get(key)
            if acc is None:
                acc = buckets[key] = {
                    "name": line.name,
                    "spec": line.spec,
                    "unit_price": product.purchase_price or 0,
                    "stock_quantity": product.stock_quantity or 0,
                    "placed_quantity": 0,
                    "confirmed_quantity": 0,
                    "placed_amount": 0,
                    "confirmed_amount": 0,
                    "orders": set(),
                }
            if order.is_additional:
                acc["confirmed_quantity"] += line.quantity
                acc["confirmed_amount"] += line.line_total
            else:
                acc["placed_quantity"] += line.quantity
                acc["placed_amount"] += line.line_total
            acc["orders"].add(order.order_number)
            category_orders.setdefault(product.category, {})[order.order_number] = order.is_additional

    tree: dict[str, dict[str, list[ProductAggregation]]] = {}
    for (category, supplier_id, product_id), acc in buckets.items():
        tree.setdefault(category, {}).setdefault(supplier_id, []).append(ProductAggregation(
            product_id=product_id,
            name=acc["name"],
            spec=acc["spec"],
            category=category,
            supplier_id=supplier_id,
            placed_quantity=acc["placed_quantity"],
            confirmed_quantity=acc["confirmed_quantity"],
            placed_amount=acc["placed_amount"],
            confirmed_amount=acc["confirmed_amount"],
            unit_price=acc["unit_price"],
            stock_quantity=acc["stock_quantity"],
            order_count=len(acc["orders"]),
        ))

    categories = []
    for category in sorted(tree):
        supplier_buckets = []
        for supplier_id, product_list in tree[category].items():
            company = suppliers.get(supplier_id)
            supplier_buckets.append(SupplierAggregation(
                supplier_id=supplier_id,
                supplier_name=company.name if company else UNKNOWN_SUPPLIER_NAME,
                recipients=tuple(company.recipients_as_dicts()) if company else (),
                products=tuple(sorted(product_list, key=lambda p: (p.name, p.product_id))),
            ))
        supplier_buckets.sort(key=lambda s: (-s.total_amount, s.supplier_id))

        seen = category_orders.get(category, {})
        additional = sum(1 for is_additional in seen.values() if is_additional)
        categories.append(CategoryAggregation(
            category=category,
            suppliers=tuple(supplier_buckets),
            total_orders=len(seen),
            placed_orders=len(seen) - additional,
            confirmed_orders=additional,
        ))

    return AggregationResult(
        since=since,
        generated_at=generated_at or utcnow(),
        categories=tuple(categories),
        totals=summarize_statuses(orders),
        dropped=tuple(dropped),
    )


def annotate_with_purchase_orders(
    result: AggregationResult,
    existing: Mapping[tuple[str, str], str],
) -> AggregationResult:
    """Pure: mark supplier buckets whose (category, supplier_id) already has an order number."""
    categories = []
    for cat in result.categories:
        suppliers = []
        for s in cat.suppliers:
            number = existing.get((cat.category, s.supplier_id))
            suppliers.append(replace(s, has_purchase_order=number is not None, purchase_order_number=number))
        categories.append(replace(cat, suppliers=tuple(suppliers)))
    return replace(result, categories=tuple(categories))


# ----------------------------------------------------------------------------
# DB-facing readers
# ----------------------------------------------------------------------------

def _load_snapshots(since: datetime) -> list[OrderSnapshot]:
    statuses = (
        SaleOrderStatus.CONFIRMED.value,
        SaleOrderStatus.PENDED.value,
        SaleOrderStatus.REJECTED.value,
    )
    rows = (
        db.session.query(SaleOrder)
        .filter(SaleOrder.status.in_(statuses), SaleOrder.placed_at >= since)
        .order_by(SaleOrder.placed_at.asc(), SaleOrder.id.asc())
        .all()
    )
    return [OrderSnapshot.from_model(row) for row in rows]


def existing_purchase_orders(cycle_date: date) -> dict[tuple[str, str], str]:
    rows = (
        db.session.query(PurchaseOrder.category, PurchaseOrder.supplier_id, PurchaseOrder.order_number)
        .filter(
            PurchaseOrder.cycle_date == cycle_date,
            PurchaseOrder.status != PurchaseOrderStatus.CANCELLED.value,
        )
        .all()
    )
    return {(category, supplier_id): number for category, supplier_id, number in rows}


def annotate_purchase_orders(result: AggregationResult, cycle_date: date) -> AggregationResult:
    return annotate_with_purchase_orders(result, existing_purchase_orders(cycle_date))


def aggregate(since: datetime | None = None, *, annotate: bool = True) -> AggregationResult:
    """
    Aggregate confirmed demand placed at or after `since`.

    `since` defaults to the current cutoff window's opened_at. Read-only.
    """
    window = current_window()
    if since is None:
        since = window.opened_at

    snapshots = _load_snapshots(since)
    product_ids = {line.product_id for o in snapshots for line in o.items}
    products = resolve_products(product_ids)
    suppliers = resolve_companies(p.supplier_id for p in products.values() if p.supplier_id)

    result = fold_orders(snapshots, products, suppliers, since=since)
    for d in result.dropped:
        current_app.logger.warning(
            "Aggregation skipped %s line %s: %s", d.order_number, d.product_id, d.reason
        )

    if annotate:
        tz_name = current_app.config.get("BUSINESS_TIMEZONE", "UTC")
        result = annotate_purchase_orders(result, business_date(window.opened_at, tz_name))
    return result


def get_product_order_details(product_id: str, since: datetime | None = None) -> dict:
    """Contributing confirmed order lines for one product since the reset point."""
    product = find_product(product_id)
    if since is None:
        since = current_window().opened_at

    lines = []
    for order in _load_snapshots(since):
        if order.status != SaleOrderStatus.CONFIRMED.value:
            continue
        for line in order.items:
            if line.product_id != product_id:
                continue
            lines.append({
                "order_number": order.order_number,
                "buyer_name": order.buyer_name,
                "order_phase": order.order_phase,
                "placed_at": to_utc_z(order.placed_at),
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "line_total": line.line_total,
            })

    if product is None and not lines:
        raise NotFoundError(f"Product {product_id} not found")

    return {
        "product_id": product_id,
        "name": product.name if product else product_id,
        "spec": product.spec if product else None,
        "since": to_utc_z(since),
        "total_quantity": sum(l["quantity"] for l in lines),
        "total_amount": sum(l["line_total"] for l in lines),
        "orders": lines,
    }

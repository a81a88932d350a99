from __future__ import annotations

from sqlalchemy import event, inspect

from ..extensions import db
from ..errors import ImmutableRecordError, ValidationError
from ordering.time_utils import to_utc_z


class SaleOrder(db.Model):
    """
    Customer sale order.

    LIFECYCLE: see services/lifecycle_service.py (SALE_ORDER_TRANSITIONS).

    PHASE: order_phase (regular / additional / none) is stamped once at
    creation from the cutoff window and is never recomputed. Aggregation
    replays history from this column, so it is guarded by a before_update
    listener.
    """
    __tablename__ = "sale_orders"
    __table_args__ = (
        db.CheckConstraint("order_phase IN ('regular', 'additional', 'none')", name="ck_sale_orders_phase"),
        db.Index("ix_sale_orders_status_placed", "status", "placed_at"),
        db.Index("ix_sale_orders_buyer", "buyer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable order number (e.g., "SO-251020-001")
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    # Buyer snapshot at order time
    buyer_id = db.Column(db.String(64), nullable=False)
    buyer_name = db.Column(db.String(255), nullable=False)
    buyer_type = db.Column(db.String(16), nullable=False, default="customer")  # customer | staff_proxy

    status = db.Column(db.String(16), nullable=False, default="placed", index=True)
    order_phase = db.Column(db.String(16), nullable=False, default="none")

    final_amount = db.Column(db.Integer, nullable=False, default=0)
    item_count = db.Column(db.Integer, nullable=False, default=0)

    placed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Audit fields
    pended_reason = db.Column(db.Text, nullable=True)
    rejected_reason = db.Column(db.Text, nullable=True)
    processed_by = db.Column(db.String(128), nullable=True)
    created_by = db.Column(db.String(128), nullable=True)
    validation_issues = db.Column(db.JSON, nullable=False, default=list)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleOrderItem",
        back_populates="order",
        order_by="SaleOrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SaleOrder number={self.order_number!r} status={self.status} phase={self.order_phase}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "buyer_id": self.buyer_id,
            "buyer_name": self.buyer_name,
            "buyer_type": self.buyer_type,
            "status": self.status,
            "order_phase": self.order_phase,
            "final_amount": self.final_amount,
            "item_count": self.item_count,
            "placed_at": to_utc_z(self.placed_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "pended_at": to_utc_z(self.pended_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "completed_at": to_utc_z(self.completed_at),
            "pended_reason": self.pended_reason,
            "rejected_reason": self.rejected_reason,
            "processed_by": self.processed_by,
            "created_by": self.created_by,
            "validation_issues": list(self.validation_issues or []),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleOrderItem(db.Model):
    __tablename__ = "sale_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_order_items_quantity"),
        db.CheckConstraint("unit_price >= 0", name="ck_sale_order_items_unit_price"),
        db.CheckConstraint("line_total = unit_price * quantity", name="ck_sale_order_items_line_total"),
        db.UniqueConstraint("sale_order_id", "position", name="uq_sale_order_items_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_order_id = db.Column(db.Integer, db.ForeignKey("sale_orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    spec = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Integer, nullable=False)

    order = db.relationship("SaleOrder", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "spec": self.spec,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
        }


@event.listens_for(SaleOrder, "before_update")
def _guard_order_phase(mapper, connection, target):
    history = inspect(target).attrs.order_phase.history
    # deleted is empty when the attribute was expired before the write
    if history.has_changes() and list(history.deleted) != list(history.added):
        raise ImmutableRecordError(
            f"order_phase of {target.order_number} is fixed at creation"
        )


@event.listens_for(SaleOrderItem, "before_insert")
@event.listens_for(SaleOrderItem, "before_update")
def _check_line_total(mapper, connection, target):
    if target.line_total != target.unit_price * target.quantity:
        raise ValidationError(
            f"line_total {target.line_total} != {target.unit_price} x {target.quantity} "
            f"for product {target.product_id}"
        )

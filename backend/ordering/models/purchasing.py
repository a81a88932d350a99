from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import ImmutableRecordError, ValidationError
from ordering.time_utils import to_utc_z


class PurchaseOrder(db.Model):
    """
    Demand document sent to one supplier for one category and cycle.

    LIFECYCLE: see services/lifecycle_service.py (PURCHASE_ORDER_TRANSITIONS).
    Only inbound reconciliation moves an order to 'completed'.

    sms_success is tri-state: NULL (never sent), True, False.

    IDEMPOTENCY: a partial unique index allows a single non-cancelled order per
    (supplier_id, category, cycle_date), so re-running generation cannot
    double-order even under concurrent operators.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index(
            "uq_purchase_orders_supplier_category_cycle",
            "supplier_id",
            "category",
            "cycle_date",
            unique=True,
            sqlite_where=db.text("status != 'cancelled'"),
            postgresql_where=db.text("status != 'cancelled'"),
        ),
        db.Index("ix_purchase_orders_status_sms", "status", "sms_success"),
        db.Index("ix_purchase_orders_placed_at", "placed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable order number (e.g., "PO-251020-001")
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    # Supplier snapshot at generation time
    supplier_id = db.Column(db.String(32), nullable=False, index=True)
    supplier_name = db.Column(db.String(255), nullable=False)
    recipients = db.Column(db.JSON, nullable=False, default=list)

    category = db.Column(db.String(64), nullable=False, index=True)
    cycle_date = db.Column(db.Date, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="placed", index=True)
    item_count = db.Column(db.Integer, nullable=False, default=0)

    # Notification outcome
    sms_success = db.Column(db.Boolean, nullable=True)
    last_sms_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_sms_error = db.Column(db.Text, nullable=True)

    placed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    purchase_ledger_number = db.Column(db.String(32), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    processed_by = db.Column(db.String(128), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="order",
        order_by="PurchaseOrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder number={self.order_number!r} status={self.status}>"

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "recipients": list(self.recipients or []),
            "category": self.category,
            "cycle_date": self.cycle_date.isoformat() if self.cycle_date else None,
            "status": self.status,
            "item_count": self.item_count,
            "total_quantity": self.total_quantity,
            "sms_success": self.sms_success,
            "last_sms_sent_at": to_utc_z(self.last_sms_sent_at),
            "last_sms_error": self.last_sms_error,
            "placed_at": to_utc_z(self.placed_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "pended_at": to_utc_z(self.pended_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "completed_at": to_utc_z(self.completed_at),
            "purchase_ledger_number": self.purchase_ledger_number,
            "created_by": self.created_by,
            "processed_by": self.processed_by,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """Quantity only. Unit cost is captured at reconciliation."""
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_order_items_quantity"),
        db.UniqueConstraint("purchase_order_id", "position", name="uq_purchase_order_items_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    spec = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    order = db.relationship("PurchaseOrder", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "spec": self.spec,
            "quantity": self.quantity,
        }


class PurchaseLedger(db.Model):
    """
    Immutable record of what was actually received and at what cost.

    IMMUTABLE: written once by inbound reconciliation; UPDATE and DELETE are
    rejected by mapper listeners below. Exactly one ledger per purchase order
    (unique purchase_order_number).
    """
    __tablename__ = "purchase_ledgers"
    __table_args__ = (
        db.Index("ix_purchase_ledgers_supplier_received", "supplier_id", "received_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ledger_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    purchase_order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    supplier_id = db.Column(db.String(32), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    total_amount = db.Column(db.Integer, nullable=False)
    item_count = db.Column(db.Integer, nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False)
    received_by = db.Column(db.String(128), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    items = db.relationship(
        "PurchaseLedgerItem",
        back_populates="ledger",
        order_by="PurchaseLedgerItem.position",
        cascade="save-update, merge",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<PurchaseLedger number={self.ledger_number!r} po={self.purchase_order_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ledger_number": self.ledger_number,
            "purchase_order_number": self.purchase_order_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "category": self.category,
            "total_amount": self.total_amount,
            "item_count": self.item_count,
            "received_at": to_utc_z(self.received_at),
            "received_by": self.received_by,
            "notes": self.notes,
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseLedgerItem(db.Model):
    __tablename__ = "purchase_ledger_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_purchase_ledger_items_quantity"),
        db.CheckConstraint("unit_price > 0", name="ck_purchase_ledger_items_unit_price"),
        db.CheckConstraint("line_total = unit_price * quantity", name="ck_purchase_ledger_items_line_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_ledger_id = db.Column(db.Integer, db.ForeignKey("purchase_ledgers.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    spec = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(64), nullable=False)
    ordered_quantity = db.Column(db.Integer, nullable=False, default=0)  # reference only
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Integer, nullable=False)

    ledger = db.relationship("PurchaseLedger", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "spec": self.spec,
            "category": self.category,
            "ordered_quantity": self.ordered_quantity,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
        }


@event.listens_for(PurchaseLedger, "before_update")
@event.listens_for(PurchaseLedgerItem, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise ImmutableRecordError(f"{mapper.class_.__name__} rows are append-only")


@event.listens_for(PurchaseLedger, "before_delete")
@event.listens_for(PurchaseLedgerItem, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise ImmutableRecordError(f"{mapper.class_.__name__} rows cannot be deleted")


@event.listens_for(PurchaseLedgerItem, "before_insert")
def _check_ledger_line_total(mapper, connection, target):
    if target.line_total != target.unit_price * target.quantity:
        raise ValidationError(
            f"line_total {target.line_total} != {target.unit_price} x {target.quantity} "
            f"for product {target.product_id}"
        )

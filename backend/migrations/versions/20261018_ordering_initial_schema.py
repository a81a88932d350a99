"""Initial schema: catalog, cutoff cycles, sale orders, purchase orders, ledgers, audit

Revision ID: 20261018_ordering_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_ordering_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False)


def upgrade():
    # Directory and catalog (read-mostly master data)
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("company_type", sa.String(length=16), nullable=False),
        sa.Column("recipients", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_companies_business_id", "companies", ["business_id"], unique=True)
    op.create_index("ix_companies_type_active", "companies", ["company_type", "is_active"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("spec", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("supplier_id", sa.String(length=32), nullable=True),
        sa.Column("purchase_price", sa.Integer(), nullable=True),
        sa.Column("sale_price", sa.Integer(), nullable=True),
        sa.Column("stock_quantity", sa.Integer(), nullable=True),
        sa.Column("minimum_stock", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_product_id", "products", ["product_id"], unique=True)
    op.create_index("ix_products_category", "products", ["category"], unique=False)
    op.create_index("ix_products_supplier_id", "products", ["supplier_id"], unique=False)
    op.create_index("ix_products_category_supplier", "products", ["category", "supplier_id"], unique=False)

    # Cutoff cycles: at most one open row
    op.create_table(
        "cutoff_cycles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("opened_by", sa.String(length=128), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.String(length=128), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("status IN ('open', 'closed')", name="ck_cutoff_cycles_status"),
        sa.CheckConstraint(
            "(status = 'open' AND closed_at IS NULL) OR (status = 'closed' AND closed_at IS NOT NULL)",
            name="ck_cutoff_cycles_closed_at",
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "uq_cutoff_cycles_single_open",
        "cutoff_cycles",
        ["status"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )
    op.create_index("ix_cutoff_cycles_opened_at", "cutoff_cycles", ["opened_at"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("sequence_date", sa.Date(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", "sequence_date", name="uq_doc_sequences_type_date"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_sequences_document_type", "document_sequences", ["document_type"], unique=False)

    # Sale orders
    op.create_table(
        "sale_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(length=32), nullable=False),
        sa.Column("buyer_id", sa.String(length=64), nullable=False),
        sa.Column("buyer_name", sa.String(length=255), nullable=False),
        sa.Column("buyer_type", sa.String(length=16), nullable=False, server_default="customer"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="placed"),
        sa.Column("order_phase", sa.String(length=16), nullable=False, server_default="none"),
        sa.Column("final_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("item_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("placed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pended_reason", sa.Text(), nullable=True),
        sa.Column("rejected_reason", sa.Text(), nullable=True),
        sa.Column("processed_by", sa.String(length=128), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("validation_issues", sa.JSON(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("order_phase IN ('regular', 'additional', 'none')", name="ck_sale_orders_phase"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_orders_order_number", "sale_orders", ["order_number"], unique=True)
    op.create_index("ix_sale_orders_status", "sale_orders", ["status"], unique=False)
    op.create_index("ix_sale_orders_status_placed", "sale_orders", ["status", "placed_at"], unique=False)
    op.create_index("ix_sale_orders_buyer", "sale_orders", ["buyer_id"], unique=False)

    op.create_table(
        "sale_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_order_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("spec", sa.String(length=255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("line_total", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_sale_order_items_quantity"),
        sa.CheckConstraint("unit_price >= 0", name="ck_sale_order_items_unit_price"),
        sa.CheckConstraint("line_total = unit_price * quantity", name="ck_sale_order_items_line_total"),
        sa.ForeignKeyConstraint(["sale_order_id"], ["sale_orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sale_order_id", "position", name="uq_sale_order_items_position"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_order_items_sale_order_id", "sale_order_items", ["sale_order_id"], unique=False)
    op.create_index("ix_sale_order_items_product_id", "sale_order_items", ["product_id"], unique=False)

    # Purchase orders: one active order per (supplier, category, cycle_date)
    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(length=32), nullable=False),
        sa.Column("supplier_id", sa.String(length=32), nullable=False),
        sa.Column("supplier_name", sa.String(length=255), nullable=False),
        sa.Column("recipients", sa.JSON(), nullable=False),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("cycle_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="placed"),
        sa.Column("item_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sms_success", sa.Boolean(), nullable=True),
        sa.Column("last_sms_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sms_error", sa.Text(), nullable=True),
        sa.Column("placed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("purchase_ledger_number", sa.String(length=32), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("processed_by", sa.String(length=128), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_orders_order_number", "purchase_orders", ["order_number"], unique=True)
    op.create_index("ix_purchase_orders_supplier_id", "purchase_orders", ["supplier_id"], unique=False)
    op.create_index("ix_purchase_orders_category", "purchase_orders", ["category"], unique=False)
    op.create_index("ix_purchase_orders_cycle_date", "purchase_orders", ["cycle_date"], unique=False)
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"], unique=False)
    op.create_index("ix_purchase_orders_status_sms", "purchase_orders", ["status", "sms_success"], unique=False)
    op.create_index("ix_purchase_orders_placed_at", "purchase_orders", ["placed_at"], unique=False)
    op.create_index(
        "uq_purchase_orders_supplier_category_cycle",
        "purchase_orders",
        ["supplier_id", "category", "cycle_date"],
        unique=True,
        sqlite_where=sa.text("status != 'cancelled'"),
        postgresql_where=sa.text("status != 'cancelled'"),
    )

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_order_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("spec", sa.String(length=255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_purchase_order_items_quantity"),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("purchase_order_id", "position", name="uq_purchase_order_items_position"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_order_items_purchase_order_id", "purchase_order_items", ["purchase_order_id"], unique=False)

    # Purchase ledgers (append-only)
    op.create_table(
        "purchase_ledgers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ledger_number", sa.String(length=32), nullable=False),
        sa.Column("purchase_order_number", sa.String(length=32), nullable=False),
        sa.Column("supplier_id", sa.String(length=32), nullable=False),
        sa.Column("supplier_name", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("item_count", sa.Integer(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("received_by", sa.String(length=128), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_ledgers_ledger_number", "purchase_ledgers", ["ledger_number"], unique=True)
    op.create_index("ix_purchase_ledgers_purchase_order_number", "purchase_ledgers", ["purchase_order_number"], unique=True)
    op.create_index("ix_purchase_ledgers_supplier_received", "purchase_ledgers", ["supplier_id", "received_at"], unique=False)

    op.create_table(
        "purchase_ledger_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_ledger_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("spec", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("ordered_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("line_total", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_purchase_ledger_items_quantity"),
        sa.CheckConstraint("unit_price > 0", name="ck_purchase_ledger_items_unit_price"),
        sa.CheckConstraint("line_total = unit_price * quantity", name="ck_purchase_ledger_items_line_total"),
        sa.ForeignKeyConstraint(["purchase_ledger_id"], ["purchase_ledgers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_ledger_items_purchase_ledger_id", "purchase_ledger_items", ["purchase_ledger_id"], unique=False)
    op.create_index("ix_purchase_ledger_items_product_id", "purchase_ledger_items", ["product_id"], unique=False)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_ref", sa.String(length=64), nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        _timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"], unique=False)
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_ref"], unique=False)
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"], unique=False)


def downgrade():
    op.drop_table("audit_events")
    op.drop_table("purchase_ledger_items")
    op.drop_table("purchase_ledgers")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("sale_order_items")
    op.drop_table("sale_orders")
    op.drop_table("document_sequences")
    op.drop_table("cutoff_cycles")
    op.drop_table("products")
    op.drop_table("companies")

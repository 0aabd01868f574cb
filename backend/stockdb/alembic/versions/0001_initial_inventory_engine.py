"""
Initial inventory engine schema: locations, ledger, batches, stock audits,
custody chain, configuration and the audit log.

Revision ID: 0001_initial_inventory_engine
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_inventory_engine"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor_user_id", sa.String(length=36), nullable=True),
        sa.Column("actor_role", sa.String(length=16), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
    )
    op.create_index("ix_audit_events_id", "audit_events", ["id"])
    op.create_index("ix_audit_events_entity_type", "audit_events", ["entity_type"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
    op.create_index("ix_audit_events_actor_user_id", "audit_events", ["actor_user_id"])
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"])
    op.create_index("ix_audit_events_correlation_id", "audit_events", ["correlation_id"])
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("ix_audit_events_action", "audit_events", ["action"])
    op.create_index("ix_audit_events_time_desc", "audit_events", [sa.text("occurred_at DESC")])

    op.create_table(
        "system_config",
        sa.Column("key", sa.String(length=64), primary_key=True),
        sa.Column("value", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_by_user_id", sa.String(length=36), nullable=True),
    )

    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_warehouses_id", "warehouses", ["id"])
    op.create_index("ix_warehouses_code", "warehouses", ["code"], unique=True)

    op.create_table(
        "warehouse_zones",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "warehouse_id",
            sa.Integer(),
            sa.ForeignKey("warehouses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column(
            "zone_type",
            _enum("zone_type_enum", "STORAGE", "PICKING", "RECEIVING", "SHIPPING", "QUARANTINE"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("warehouse_id", "code", name="uq_warehouse_zone_code"),
    )
    op.create_index("ix_warehouse_zones_id", "warehouse_zones", ["id"])
    op.create_index("ix_warehouse_zones_warehouse_id", "warehouse_zones", ["warehouse_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_products_id", "products", ["id"])
    op.create_index("ix_products_sku", "products", ["sku"], unique=True)

    op.create_table(
        "inventory_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_records_quantity_non_negative"),
    )
    op.create_index("ix_inventory_records_id", "inventory_records", ["id"])
    op.create_index("ix_inventory_records_product_id", "inventory_records", ["product_id"], unique=True)

    op.create_table(
        "location_stock",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("zone_id", sa.Integer(), sa.ForeignKey("warehouse_zones.id"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("aisle", sa.String(length=16), nullable=True),
        sa.Column("shelf", sa.String(length=16), nullable=True),
        sa.Column("bin", sa.String(length=16), nullable=True),
        sa.Column("last_audit_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("product_id", "warehouse_id", "zone_id", name="uq_location_stock_scope"),
        sa.CheckConstraint("quantity >= 0", name="ck_location_stock_quantity_non_negative"),
        sa.CheckConstraint(
            "reserved_quantity >= 0 AND reserved_quantity <= quantity",
            name="ck_location_stock_reserved_bounds",
        ),
    )
    op.create_index("ix_location_stock_id", "location_stock", ["id"])
    op.create_index("ix_location_stock_product_id", "location_stock", ["product_id"])
    op.create_index("ix_location_stock_warehouse_zone", "location_stock", ["warehouse_id", "zone_id"])

    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "movement_type",
            _enum("inventory_movement_type_enum", "RECEIVE", "SALE", "TRANSFER", "ADJUSTMENT"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("resulting_quantity", sa.Integer(), nullable=False),
        sa.Column("from_warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=True),
        sa.Column("from_zone_id", sa.Integer(), sa.ForeignKey("warehouse_zones.id"), nullable=True),
        sa.Column("to_warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=True),
        sa.Column("to_zone_id", sa.Integer(), sa.ForeignKey("warehouse_zones.id"), nullable=True),
        sa.Column("reference", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("actor_user_id", sa.String(length=36), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_inventory_movements_id", "inventory_movements", ["id"])
    op.create_index("ix_inventory_movements_product_id", "inventory_movements", ["product_id"])
    op.create_index("ix_inventory_movements_from_warehouse_id", "inventory_movements", ["from_warehouse_id"])
    op.create_index("ix_inventory_movements_to_warehouse_id", "inventory_movements", ["to_warehouse_id"])
    op.create_index("ix_inventory_movements_occurred_at", "inventory_movements", ["occurred_at"])
    op.create_index("ix_inventory_movements_movement_type", "inventory_movements", ["movement_type"])
    op.create_index(
        "ix_inventory_movements_product_time",
        "inventory_movements",
        ["product_id", "occurred_at"],
    )

    op.create_table(
        "batches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("zone_id", sa.Integer(), sa.ForeignKey("warehouse_zones.id"), nullable=True),
        sa.Column("batch_number", sa.String(length=64), nullable=False),
        sa.Column("lot_number", sa.String(length=64), nullable=True),
        sa.Column("supplier", sa.String(length=128), nullable=True),
        sa.Column("quantity_received", sa.Integer(), nullable=False),
        sa.Column("quantity_remaining", sa.Integer(), nullable=False),
        sa.Column("quantity_sold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("received_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("status", _enum("batch_status_enum", "ACTIVE", "DEPLETED"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by_user_id", sa.String(length=36), nullable=True),
        sa.UniqueConstraint(
            "product_id",
            "warehouse_id",
            "zone_id",
            "batch_number",
            name="uq_batches_scope_number",
        ),
        sa.CheckConstraint(
            "quantity_remaining >= 0 AND quantity_remaining <= quantity_received",
            name="ck_batches_remaining_bounds",
        ),
    )
    op.create_index("ix_batches_id", "batches", ["id"])
    op.create_index("ix_batches_product_id", "batches", ["product_id"])
    op.create_index("ix_batches_batch_number", "batches", ["batch_number"])
    op.create_index(
        "ix_batches_fifo",
        "batches",
        ["product_id", "warehouse_id", "zone_id", "status", "received_date"],
    )
    op.create_index("ix_batches_expiry", "batches", ["expiry_date"])

    op.create_table(
        "stock_audits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("zone_id", sa.Integer(), sa.ForeignKey("warehouse_zones.id"), nullable=True),
        sa.Column("audit_type", _enum("stock_audit_type_enum", "FULL", "CYCLE", "SPOT"), nullable=False),
        sa.Column(
            "status",
            _enum("stock_audit_status_enum", "IN_PROGRESS", "PENDING_APPROVAL", "COMPLETED"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("submitted_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_stock_audits_id", "stock_audits", ["id"])
    op.create_index("ix_stock_audits_status", "stock_audits", ["status"])
    op.create_index("ix_stock_audits_scope", "stock_audits", ["warehouse_id", "zone_id"])

    op.create_table(
        "stock_audit_worksheet_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "audit_id",
            sa.Integer(),
            sa.ForeignKey("stock_audits.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("location_stock_id", sa.Integer(), sa.ForeignKey("location_stock.id"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("zone_id", sa.Integer(), sa.ForeignKey("warehouse_zones.id"), nullable=True),
        sa.Column("system_quantity", sa.Integer(), nullable=False),
        sa.Column("counted_quantity", sa.Integer(), nullable=True),
        sa.Column("variance", sa.Integer(), nullable=True),
        sa.Column("count_notes", sa.Text(), nullable=True),
        sa.Column("counted_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("counted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("audit_id", "location_stock_id", name="uq_worksheet_audit_location"),
    )
    op.create_index("ix_stock_audit_worksheet_items_id", "stock_audit_worksheet_items", ["id"])
    op.create_index("ix_stock_audit_worksheet_items_audit_id", "stock_audit_worksheet_items", ["audit_id"])
    op.create_index("ix_stock_audit_worksheet_items_product_id", "stock_audit_worksheet_items", ["product_id"])

    op.create_table(
        "stock_audit_discrepancies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "audit_id",
            sa.Integer(),
            sa.ForeignKey("stock_audits.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "worksheet_item_id",
            sa.Integer(),
            sa.ForeignKey("stock_audit_worksheet_items.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("zone_id", sa.Integer(), sa.ForeignKey("warehouse_zones.id"), nullable=True),
        sa.Column("system_quantity", sa.Integer(), nullable=False),
        sa.Column("counted_quantity", sa.Integer(), nullable=False),
        sa.Column("variance", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            _enum("stock_audit_discrepancy_status_enum", "PENDING", "RESOLVED"),
            nullable=False,
        ),
        sa.Column(
            "resolution",
            _enum("stock_audit_resolution_enum", "ADJUST", "ACCEPT_SYSTEM"),
            nullable=True,
        ),
        sa.Column("adjustment_reason", sa.Text(), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("resolved_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_stock_audit_discrepancies_id", "stock_audit_discrepancies", ["id"])
    op.create_index("ix_stock_audit_discrepancies_audit_id", "stock_audit_discrepancies", ["audit_id"])
    op.create_index("ix_stock_audit_discrepancies_status", "stock_audit_discrepancies", ["status"])

    op.create_table(
        "custody_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("serial_number", sa.String(length=128), nullable=False, unique=True),
        sa.Column("current_custodian_id", sa.String(length=36), nullable=False),
        sa.Column(
            "status",
            _enum("custody_status_enum", "IN_STORAGE", "IN_TRANSIT", "ASSIGNED"),
            nullable=False,
        ),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=True),
        sa.Column("zone_id", sa.Integer(), sa.ForeignKey("warehouse_zones.id"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("last_custody_change", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by_user_id", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_custody_items_id", "custody_items", ["id"])
    op.create_index("ix_custody_items_product_id", "custody_items", ["product_id"])
    op.create_index("ix_custody_items_status", "custody_items", ["status"])
    op.create_index("ix_custody_items_custodian", "custody_items", ["current_custodian_id"])

    op.create_table(
        "custody_approval_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("custody_items.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        sa.Column("from_custodian_id", sa.String(length=36), nullable=True),
        sa.Column("to_custodian_id", sa.String(length=36), nullable=False),
        sa.Column("transfer_reason", sa.Text(), nullable=False),
        sa.Column("location_from", sa.String(length=255), nullable=True),
        sa.Column("location_to", sa.String(length=255), nullable=True),
        sa.Column("item_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("requested_by_user_id", sa.String(length=36), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            _enum("custody_approval_status_enum", "PENDING", "APPROVED", "REJECTED"),
            nullable=False,
        ),
        sa.Column("decided_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decision_notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_custody_approval_requests_id", "custody_approval_requests", ["id"])
    op.create_index("ix_custody_approval_requests_status", "custody_approval_requests", ["status"])
    op.create_index("ix_custody_approval_requests_item", "custody_approval_requests", ["item_id", "status"])

    op.create_table(
        "custody_transfers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("custody_items.id"), nullable=False),
        sa.Column("from_custodian_id", sa.String(length=36), nullable=True),
        sa.Column("to_custodian_id", sa.String(length=36), nullable=False),
        sa.Column("transfer_reason", sa.Text(), nullable=False),
        sa.Column("location_from", sa.String(length=255), nullable=True),
        sa.Column("location_to", sa.String(length=255), nullable=True),
        sa.Column("authorized_by_user_id", sa.String(length=36), nullable=False),
        sa.Column(
            "approval_request_id",
            sa.Integer(),
            sa.ForeignKey("custody_approval_requests.id"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transferred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("acknowledgment_notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_custody_transfers_id", "custody_transfers", ["id"])
    op.create_index("ix_custody_transfers_item_id", "custody_transfers", ["item_id"])
    op.create_index("ix_custody_transfers_item_time", "custody_transfers", ["item_id", "transferred_at"])
    op.create_index("ix_custody_transfers_recipient", "custody_transfers", ["to_custodian_id"])


def downgrade() -> None:
    op.drop_table("custody_transfers")
    op.drop_table("custody_approval_requests")
    op.drop_table("custody_items")
    op.drop_table("stock_audit_discrepancies")
    op.drop_table("stock_audit_worksheet_items")
    op.drop_table("stock_audits")
    op.drop_table("batches")
    op.drop_table("inventory_movements")
    op.drop_table("location_stock")
    op.drop_table("inventory_records")
    op.drop_table("products")
    op.drop_table("warehouse_zones")
    op.drop_table("warehouses")
    op.drop_table("system_config")
    op.drop_table("audit_events")

"""initial schema - sites, sync queue, checkpoints, run logs, product/order mirror

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(500), nullable=False),
        sa.Column("api_key", sa.String(255), nullable=False),
        sa.Column("api_secret", sa.String(255), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_sync_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_table(
        "site_filters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sku_filter", sa.Text()),
        sa.Column("exclude_sku_prefixes", sa.Text()),
        sa.Column("category_filters", sa.JSON()),
        sa.Column("exclude_warehouses", sa.Text()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_site_filters_site", "site_filters", ["site_id"], unique=True)

    op.create_table(
        "auto_sync_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("site_ids", sa.JSON()),
        sa.Column("filters", sa.JSON()),
        sa.Column("sync_to_instock", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sync_to_outofstock", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("webhook_url", sa.String(1000)),
        sa.Column("notify_on_success", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_on_failure", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_on_no_changes", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_run_at", sa.DateTime()),
        sa.Column("last_run_status", sa.String(20)),
        sa.Column("last_run_summary", sa.JSON()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_table(
        "auto_sync_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("config_id", sa.Integer(), sa.ForeignKey("auto_sync_config.id", ondelete="SET NULL")),
        sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="SET NULL")),
        sa.Column("site_name", sa.String(255)),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("total_checked", sa.Integer()),
        sa.Column("synced_to_instock", sa.Integer()),
        sa.Column("synced_to_outofstock", sa.Integer()),
        sa.Column("failed", sa.Integer()),
        sa.Column("skipped", sa.Integer()),
        sa.Column("duration_ms", sa.Integer()),
        sa.Column("error_message", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("notification_sent", sa.Boolean()),
        sa.Column("notification_error", sa.Text()),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime()),
    )
    op.create_index("ix_auto_sync_logs_site_started", "auto_sync_logs", ["site_id", "started_at"])

    op.create_table(
        "sync_tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("task_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("metadata", sa.JSON()),
        sa.Column("progress", sa.JSON()),
        sa.Column("result", sa.JSON()),
        sa.Column("error_message", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_sync_tasks_claim", "sync_tasks", ["status", "priority", "created_at"])
    op.create_index("ix_sync_tasks_site_type", "sync_tasks", ["site_id", "task_type", "status"])
    op.create_index(
        "uq_sync_tasks_active",
        "sync_tasks",
        ["site_id", "task_type"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'processing')"),
        sqlite_where=sa.text("status IN ('pending', 'processing')"),
    )

    op.create_table(
        "sync_checkpoints",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sync_type", sa.String(20), nullable=False),
        sa.Column("last_object_id", sa.BigInteger()),
        sa.Column("last_modified", sa.DateTime()),
        sa.Column("synced_count", sa.Integer(), nullable=False),
        sa.Column("last_sync_status", sa.String(20)),
        sa.Column("last_error", sa.Text()),
        sa.Column("last_duration_ms", sa.Integer()),
        sa.Column("last_sync_at", sa.DateTime()),
    )
    op.create_index("ix_sync_checkpoints_site_type", "sync_checkpoints", ["site_id", "sync_type"], unique=True)

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="CASCADE")),
        sa.Column("task_id", sa.Integer(), sa.ForeignKey("sync_tasks.id", ondelete="SET NULL")),
        sa.Column("sync_type", sa.String(20), nullable=False),
        sa.Column("mode", sa.String(20)),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("items_synced", sa.Integer()),
        sa.Column("items_failed", sa.Integer()),
        sa.Column("error_sample", sa.JSON()),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("duration_ms", sa.Integer()),
    )
    op.create_index("ix_sync_logs_site_started", "sync_logs", ["site_id", "started_at"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), nullable=False),
        sa.Column("parent_id", sa.BigInteger()),
        sa.Column("sku", sa.String(255)),
        sa.Column("name", sa.String(500)),
        sa.Column("type", sa.String(30)),
        sa.Column("status", sa.String(30)),
        sa.Column("stock_status", sa.String(30)),
        sa.Column("stock_quantity", sa.Integer()),
        sa.Column("manage_stock", sa.Boolean()),
        sa.Column("price", sa.Numeric(15, 4)),
        sa.Column("date_modified", sa.DateTime()),
        sa.Column("synced_at", sa.DateTime()),
    )
    op.create_index("ix_products_site_product", "products", ["site_id", "product_id"], unique=True)
    op.create_index("ix_products_site_sku", "products", ["site_id", "sku"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("order_id", sa.BigInteger(), nullable=False),
        sa.Column("order_number", sa.String(50)),
        sa.Column("status", sa.String(30)),
        sa.Column("currency", sa.String(10)),
        sa.Column("total", sa.Numeric(15, 4)),
        sa.Column("subtotal", sa.Numeric(15, 4)),
        sa.Column("total_tax", sa.Numeric(15, 4)),
        sa.Column("shipping_total", sa.Numeric(15, 4)),
        sa.Column("discount_total", sa.Numeric(15, 4)),
        sa.Column("customer_id", sa.BigInteger()),
        sa.Column("customer_email", sa.String(255)),
        sa.Column("billing_country", sa.String(10)),
        sa.Column("payment_method", sa.String(100)),
        sa.Column("payment_status", sa.String(20)),
        sa.Column("date_created", sa.DateTime()),
        sa.Column("date_modified", sa.DateTime()),
        sa.Column("date_paid", sa.DateTime()),
        sa.Column("date_completed", sa.DateTime()),
        sa.Column("attribution_source_type", sa.String(50)),
        sa.Column("attribution_source", sa.String(255)),
        sa.Column("attribution_medium", sa.String(255)),
        sa.Column("attribution_campaign", sa.String(255)),
        sa.Column("attribution_origin", sa.String(255)),
        sa.Column("attribution_device", sa.String(50)),
        sa.Column("utm_source", sa.String(255)),
        sa.Column("utm_medium", sa.String(255)),
        sa.Column("utm_campaign", sa.String(255)),
        sa.Column("customer_note", sa.Text()),
        sa.Column("synced_at", sa.DateTime()),
    )
    op.create_index("ix_orders_site_order", "orders", ["site_id", "order_id"], unique=True)
    op.create_index("ix_orders_site_modified", "orders", ["site_id", "date_modified"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        sa.Column("product_id", sa.BigInteger()),
        sa.Column("variation_id", sa.BigInteger()),
        sa.Column("sku", sa.String(255)),
        sa.Column("name", sa.String(500)),
        sa.Column("quantity", sa.Integer()),
        sa.Column("price", sa.Numeric(15, 4)),
        sa.Column("subtotal", sa.Numeric(15, 4)),
        sa.Column("total", sa.Numeric(15, 4)),
    )
    op.create_index("ix_order_items_order_item", "order_items", ["order_id", "item_id"], unique=True)


def downgrade() -> None:
    """Drop all tables. Destructive — dev/test environments only."""
    for table in (
        "order_items",
        "orders",
        "products",
        "sync_logs",
        "sync_checkpoints",
        "sync_tasks",
        "auto_sync_logs",
        "auto_sync_config",
        "site_filters",
        "sites",
    ):
        op.drop_table(table)

"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INVENTORY_QUANTITY_COLUMNS = (
    "fulfillable_quantity",
    "total_reserved_quantity",
    "pending_customer_order_quantity",
    "pending_transshipment_quantity",
    "fc_processing_quantity",
    "total_unfulfillable_quantity",
    "customer_damaged_quantity",
    "warehouse_damaged_quantity",
    "distributor_damaged_quantity",
    "inbound_shipped_quantity",
    "inbound_working_quantity",
    "inbound_receiving_quantity",
)

SALES_WINDOW_COLUMNS = (
    "last7", "last30", "last90", "last180", "last366",
    "pre_year_last7", "pre_year_last30", "pre_year_last90", "pre_year_last180", "pre_year_last365",
    "pre_year_next7", "pre_year_next30", "pre_year_next90", "pre_year_next180",
)


def _int_columns(names):
    return [sa.Column(name, sa.Integer(), nullable=False, server_default="0") for name in names]


def upgrade(engine_name: str = "") -> None:
    globals()[f"upgrade_{engine_name}"]()


def downgrade(engine_name: str = "") -> None:
    globals()[f"downgrade_{engine_name}"]()


def upgrade_operational() -> None:
    op.create_table(
        "sp_api_credentials",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("region", sa.Text(), nullable=False),
        sa.Column("seller_id", sa.Text(), nullable=True),
        sa.Column("account_name", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("client_id", sa.Text(), nullable=False),
        sa.Column("client_secret", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "marketplace_config",
        sa.Column("marketplace_id", sa.Text(), primary_key=True),
        sa.Column("country_code", sa.Text(), nullable=False, unique=True),
        sa.Column("channel", sa.Text(), nullable=False),
        sa.Column("warehouse", sa.Text(), nullable=False),
        sa.Column("region", sa.Text(), nullable=False),
        sa.Column("timezone_offset", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("credential_id", sa.Integer(), sa.ForeignKey("sp_api_credentials.id"), nullable=True),
    )
    op.create_table(
        "sync_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("job_type", sa.Text(), nullable=False),
        sa.Column("marketplace", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("records_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_sync_jobs_created_at", "sync_jobs", ["created_at"])
    op.create_table(
        "raw_orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("marketplace_id", sa.Text(), nullable=False),
        sa.Column("channel", sa.Text(), nullable=False),
        sa.Column("amazon_order_id", sa.Text(), nullable=False),
        sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("purchase_date_local", sa.Date(), nullable=False),
        sa.Column("sku", sa.Text(), nullable=False),
        sa.Column("asin", sa.Text(), nullable=True),
        sa.Column("iwasku", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("item_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.Text(), nullable=True),
        sa.Column("order_status", sa.Text(), nullable=True),
        sa.Column("fulfillment_channel", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("amazon_order_id", "sku", name="uq_raw_orders_order_sku"),
    )
    op.create_index("ix_raw_orders_channel", "raw_orders", ["channel"])
    op.create_index("ix_raw_orders_purchase_date_local", "raw_orders", ["purchase_date_local"])
    op.create_table(
        "fba_inventory",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("warehouse", sa.Text(), nullable=False),
        sa.Column("marketplace_id", sa.Text(), nullable=False),
        sa.Column("sku", sa.Text(), nullable=False),
        sa.Column("asin", sa.Text(), nullable=True),
        sa.Column("fnsku", sa.Text(), nullable=True),
        sa.Column("iwasku", sa.Text(), nullable=True),
        *_int_columns(INVENTORY_QUANTITY_COLUMNS),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("warehouse", "sku", name="uq_fba_inventory_warehouse_sku"),
    )
    op.create_index("ix_fba_inventory_warehouse", "fba_inventory", ["warehouse"])


def downgrade_operational() -> None:
    op.drop_table("fba_inventory")
    op.drop_table("raw_orders")
    op.drop_table("sync_jobs")
    op.drop_table("marketplace_config")
    op.drop_table("sp_api_credentials")


def upgrade_shared() -> None:
    op.create_table(
        "sales_data",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("channel", sa.Text(), nullable=False),
        sa.Column("iwasku", sa.Text(), nullable=False),
        sa.Column("asin", sa.Text(), nullable=True),
        *_int_columns(SALES_WINDOW_COLUMNS),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("iwasku", "channel", name="uq_sales_data_iwasku_channel"),
    )
    op.create_table(
        "fba_inventory",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("iwasku", sa.Text(), nullable=False),
        sa.Column("warehouse", sa.Text(), nullable=False),
        sa.Column("asin", sa.Text(), nullable=True),
        sa.Column("fnsku", sa.Text(), nullable=True),
        sa.Column("sku_list", sa.Text(), nullable=True),
        sa.Column("total_quantity", sa.Integer(), nullable=False, server_default="0"),
        *_int_columns(INVENTORY_QUANTITY_COLUMNS),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("iwasku", "warehouse", name="uq_fba_inventory_iwasku_warehouse"),
    )


def downgrade_shared() -> None:
    op.drop_table("fba_inventory")
    op.drop_table("sales_data")

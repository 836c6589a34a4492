from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class OperationalBase(DeclarativeBase):
    pass


class SharedBase(DeclarativeBase):
    pass


# Quantity columns shared by the raw snapshot table and the projection table
INVENTORY_QUANTITY_FIELDS = (
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


class SpApiCredential(OperationalBase):
    __tablename__ = "sp_api_credentials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    region: Mapped[str] = mapped_column(Text, nullable=False)  # NA, EU, FE
    seller_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    account_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    client_id: Mapped[str] = mapped_column(Text, nullable=False)
    client_secret: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class MarketplaceConfig(OperationalBase):
    """
    Static marketplace reference data. Maintained by administration, read-only to the sync engine.
    """
    __tablename__ = "marketplace_config"

    marketplace_id: Mapped[str] = mapped_column(Text, primary_key=True)  # ATVPDKIKX0DER
    country_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)  # US
    channel: Mapped[str] = mapped_column(Text, nullable=False)  # us
    warehouse: Mapped[str] = mapped_column(Text, nullable=False)  # US, EU, ...
    region: Mapped[str] = mapped_column(Text, nullable=False)  # NA, EU, FE
    timezone_offset: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    credential_id: Mapped[int | None] = mapped_column(ForeignKey("sp_api_credentials.id"), nullable=True)

    credential: Mapped[SpApiCredential | None] = relationship(lazy="joined")


class SyncJob(OperationalBase):
    """
    Append-only audit row per sync attempt: pending -> running -> completed | failed.
    """
    __tablename__ = "sync_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_type: Mapped[str] = mapped_column(Text, nullable=False)  # inventory_sync, sales_sync, sales_backfill
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    records_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


class RawOrder(OperationalBase):
    __tablename__ = "raw_orders"
    __table_args__ = (
        UniqueConstraint("amazon_order_id", "sku", name="uq_raw_orders_order_sku"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    marketplace_id: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    amazon_order_id: Mapped[str] = mapped_column(Text, nullable=False)
    purchase_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    purchase_date_local: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    sku: Mapped[str] = mapped_column(Text, nullable=False)
    asin: Mapped[str | None] = mapped_column(Text, nullable=True)
    iwasku: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    item_price: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    currency: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_status: Mapped[str | None] = mapped_column(Text, nullable=True)
    fulfillment_channel: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class FbaInventoryItem(OperationalBase):
    """
    Point-in-time FBA snapshot. Replaced wholesale per warehouse on every sync.
    """
    __tablename__ = "fba_inventory"
    __table_args__ = (
        UniqueConstraint("warehouse", "sku", name="uq_fba_inventory_warehouse_sku"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    warehouse: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    marketplace_id: Mapped[str] = mapped_column(Text, nullable=False)
    sku: Mapped[str] = mapped_column(Text, nullable=False)
    asin: Mapped[str | None] = mapped_column(Text, nullable=True)
    fnsku: Mapped[str | None] = mapped_column(Text, nullable=True)
    iwasku: Mapped[str | None] = mapped_column(Text, nullable=True)

    fulfillable_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_customer_order_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_transshipment_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fc_processing_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_unfulfillable_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    customer_damaged_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warehouse_damaged_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    distributor_damaged_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inbound_shipped_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inbound_working_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inbound_receiving_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SkuMaster(SharedBase):
    """
    Product master owned by the downstream application. Only read here.
    """
    __tablename__ = "sku_master"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False, default="amazon")
    sku: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    iwasku: Mapped[str] = mapped_column(Text, nullable=False)
    asin: Mapped[str | None] = mapped_column(Text, nullable=True)
    country_code: Mapped[str | None] = mapped_column(Text, nullable=True)


class SalesData(SharedBase):
    __tablename__ = "sales_data"
    __table_args__ = (
        UniqueConstraint("iwasku", "channel", name="uq_sales_data_iwasku_channel"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel: Mapped[str] = mapped_column(Text, nullable=False)
    iwasku: Mapped[str] = mapped_column(Text, nullable=False)
    asin: Mapped[str | None] = mapped_column(Text, nullable=True)

    last7: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last30: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last90: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last180: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last366: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pre_year_last7: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pre_year_last30: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pre_year_last90: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pre_year_last180: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pre_year_last365: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pre_year_next7: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pre_year_next30: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pre_year_next90: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pre_year_next180: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class InventoryData(SharedBase):
    __tablename__ = "fba_inventory"
    __table_args__ = (
        UniqueConstraint("iwasku", "warehouse", name="uq_fba_inventory_iwasku_warehouse"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    iwasku: Mapped[str] = mapped_column(Text, nullable=False)
    warehouse: Mapped[str] = mapped_column(Text, nullable=False)
    asin: Mapped[str | None] = mapped_column(Text, nullable=True)
    fnsku: Mapped[str | None] = mapped_column(Text, nullable=True)
    sku_list: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    fulfillable_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_customer_order_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_transshipment_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fc_processing_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_unfulfillable_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    customer_damaged_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warehouse_damaged_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    distributor_damaged_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inbound_shipped_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inbound_working_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inbound_receiving_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

"""
SP-API 응답/리포트 행을 타입이 있는 레코드로 정규화합니다.

리포트 컬럼명은 리포트 종류와 마켓에 따라 두 가지 표기가 섞여 있으므로
(`purchase-date` / `PurchaseDate` 등) 여기서 한 번만 흡수합니다.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping, Sequence

from databridge.spapi.constants import CHANNEL_TIMEZONE_OFFSETS, SALES_CHANNEL_TO_CHANNEL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderRecord:
    marketplace_id: str
    channel: str
    amazon_order_id: str
    purchase_date: datetime
    purchase_date_local: date
    sku: str
    asin: str | None
    quantity: int
    item_price: float
    currency: str | None
    order_status: str | None
    fulfillment_channel: str | None

    def to_row(self, iwasku: str | None) -> dict[str, Any]:
        row = asdict(self)
        row["iwasku"] = iwasku
        return row


@dataclass(frozen=True)
class InventoryRecord:
    marketplace_id: str
    sku: str
    asin: str | None = None
    fnsku: str | None = None
    fulfillable_quantity: int = 0
    total_reserved_quantity: int = 0
    pending_customer_order_quantity: int = 0
    pending_transshipment_quantity: int = 0
    fc_processing_quantity: int = 0
    total_unfulfillable_quantity: int = 0
    customer_damaged_quantity: int = 0
    warehouse_damaged_quantity: int = 0
    distributor_damaged_quantity: int = 0
    inbound_shipped_quantity: int = 0
    inbound_working_quantity: int = 0
    inbound_receiving_quantity: int = 0

    def to_row(self, warehouse: str, iwasku: str | None) -> dict[str, Any]:
        row = asdict(self)
        row["warehouse"] = warehouse
        row["iwasku"] = iwasku
        return row


# inventoryDetails 키 -> 컬럼명
_INVENTORY_DETAIL_FIELDS = {
    "fulfillableQuantity": "fulfillable_quantity",
    "totalReservedQuantity": "total_reserved_quantity",
    "pendingCustomerOrderQuantity": "pending_customer_order_quantity",
    "pendingTransshipmentQuantity": "pending_transshipment_quantity",
    "fcProcessingQuantity": "fc_processing_quantity",
    "totalUnfulfillableQuantity": "total_unfulfillable_quantity",
    "customerDamagedQuantity": "customer_damaged_quantity",
    "warehouseDamagedQuantity": "warehouse_damaged_quantity",
    "distributorDamagedQuantity": "distributor_damaged_quantity",
    "inboundShippedQuantity": "inbound_shipped_quantity",
    "inboundWorkingQuantity": "inbound_working_quantity",
    "inboundReceivingQuantity": "inbound_receiving_quantity",
}


def _first(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


def _to_int(value: Any) -> int:
    if value in (None, ""):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _to_float(value: Any) -> float:
    if value in (None, ""):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_purchase_date(value: Any) -> datetime | None:
    """ISO-8601 문자열을 UTC aware datetime으로. 파싱 불가 시 None."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_local_date(instant: datetime, offset_hours: float) -> date:
    return (instant.astimezone(timezone.utc) + timedelta(hours=offset_hours)).date()


def resolve_channel(sales_channel: str | None, default_channel: str) -> str:
    if not sales_channel:
        return default_channel
    return SALES_CHANNEL_TO_CHANNEL.get(sales_channel.strip(), default_channel)


def normalize_order_row(row: Mapping[str, Any], marketplaces: Sequence[Any]) -> OrderRecord | None:
    """
    주문 리포트 한 행을 OrderRecord로 변환합니다.

    marketplaces[0]은 리포트를 요청한 대표 마켓이며, sales-channel 값으로 판별된 채널과
    일치하는 멤버가 있으면 해당 멤버의 marketplace_id/오프셋을 사용합니다.
    구매일이 잘못되었거나 수량이 0인 행은 None.
    """
    representative = marketplaces[0]

    purchase_date = parse_purchase_date(_first(row, "purchase-date", "PurchaseDate"))
    if purchase_date is None:
        return None

    quantity = _to_int(_first(row, "quantity", "item-quantity"))
    if quantity == 0:
        return None

    channel = resolve_channel(_first(row, "sales-channel", "SalesChannel"), representative.channel)
    member = next((m for m in marketplaces if m.channel == channel), representative)
    offset = CHANNEL_TIMEZONE_OFFSETS.get(channel, member.timezone_offset or 0)

    return OrderRecord(
        marketplace_id=member.marketplace_id,
        channel=channel,
        amazon_order_id=_first(row, "amazon-order-id", "AmazonOrderId") or "",
        purchase_date=purchase_date,
        purchase_date_local=to_local_date(purchase_date, offset),
        sku=_first(row, "sku", "seller-sku") or "",
        asin=_first(row, "asin"),
        quantity=quantity,
        item_price=_to_float(_first(row, "item-price", "item-total")),
        currency=_first(row, "currency"),
        order_status=_first(row, "order-status", "OrderStatus"),
        fulfillment_channel=_first(row, "fulfillment-channel", "FulfillmentChannel"),
    )


def normalize_order_rows(rows: Sequence[Mapping[str, Any]], marketplaces: Sequence[Any]) -> list[OrderRecord]:
    records = []
    skipped = 0
    for row in rows:
        record = normalize_order_row(row, marketplaces)
        if record is None:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.debug(f"[SP-API] Skipped {skipped} order rows (invalid date or zero quantity)")
    return records


def normalize_inventory_summary(summary: Mapping[str, Any], marketplace_id: str) -> InventoryRecord | None:
    sku = summary.get("sellerSku")
    if not sku:
        return None

    details = summary.get("inventoryDetails") or {}
    quantities = {column: _to_int(details.get(key)) for key, column in _INVENTORY_DETAIL_FIELDS.items()}

    # reserved/unfulfillable은 중첩 객체로 오는 경우가 있다
    reserved = details.get("reservedQuantity")
    if isinstance(reserved, Mapping) and not quantities["total_reserved_quantity"]:
        quantities["total_reserved_quantity"] = _to_int(reserved.get("totalReservedQuantity"))
        quantities["pending_customer_order_quantity"] = _to_int(reserved.get("pendingCustomerOrderQuantity"))
        quantities["pending_transshipment_quantity"] = _to_int(reserved.get("pendingTransshipmentQuantity"))
        quantities["fc_processing_quantity"] = _to_int(reserved.get("fcProcessingQuantity"))
    unfulfillable = details.get("unfulfillableQuantity")
    if isinstance(unfulfillable, Mapping) and not quantities["total_unfulfillable_quantity"]:
        quantities["total_unfulfillable_quantity"] = _to_int(unfulfillable.get("totalUnfulfillableQuantity"))
        quantities["customer_damaged_quantity"] = _to_int(unfulfillable.get("customerDamagedQuantity"))
        quantities["warehouse_damaged_quantity"] = _to_int(unfulfillable.get("warehouseDamagedQuantity"))
        quantities["distributor_damaged_quantity"] = _to_int(unfulfillable.get("distributorDamagedQuantity"))

    return InventoryRecord(
        marketplace_id=marketplace_id,
        sku=sku,
        asin=summary.get("asin") or None,
        fnsku=summary.get("fnSku") or None,
        **quantities,
    )

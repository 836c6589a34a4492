import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.orm import Session

from databridge.models import INVENTORY_QUANTITY_FIELDS, FbaInventoryItem, RawOrder
from databridge.services.upsert import chunked, upsert_statement
from databridge.settings import settings
from databridge.spapi.records import InventoryRecord, OrderRecord

logger = logging.getLogger(__name__)


def coalesce_orders(records: Sequence[OrderRecord]) -> List[OrderRecord]:
    """
    (amazon_order_id, sku) 중복 행을 하나로 합칩니다.
    수량과 금액은 합산하고 나머지 필드는 나중 행 값을 사용합니다.
    """
    merged: Dict[tuple, OrderRecord] = {}
    for record in records:
        key = (record.amazon_order_id, record.sku)
        prev = merged.get(key)
        if prev is None:
            merged[key] = record
            continue
        merged[key] = replace(
            record,
            quantity=prev.quantity + record.quantity,
            item_price=round(prev.item_price + record.item_price, 2),
        )
    return list(merged.values())


def dedupe_inventory(records: Sequence[InventoryRecord]) -> List[InventoryRecord]:
    """스냅샷 안에서 같은 sku가 여러 번 나오면 마지막 행만 남긴다."""
    latest: Dict[str, InventoryRecord] = {}
    for record in records:
        latest.pop(record.sku, None)
        latest[record.sku] = record
    return list(latest.values())


class _BatchWriter:
    def __init__(self, session: Session, batch_size: Optional[int] = None):
        self.session = session
        self.batch_size = batch_size or settings.write_batch_size

    def _commit_batch(self, statement, label: str, batch_no: int) -> None:
        try:
            self.session.execute(statement)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"[SYNC] {label} batch {batch_no} failed, rolled back: {e}")
            raise


class OrderWriter(_BatchWriter):
    UPDATE_COLUMNS = ("iwasku", "quantity", "item_price", "order_status", "channel")

    def upsert(self, records: Sequence[OrderRecord], iwaskus: Mapping[str, Optional[str]]) -> int:
        """
        주문 라인을 raw_orders에 upsert 합니다. 반환값은 기록한 행 수.
        iwaskus: sku -> iwasku (미해결은 None)
        """
        orders = coalesce_orders(records)
        if not orders:
            return 0

        rows = [order.to_row(iwaskus.get(order.sku)) for order in orders]
        written = 0
        for batch_no, batch in enumerate(chunked(rows, self.batch_size), start=1):
            stmt = upsert_statement(
                self.session,
                RawOrder,
                batch,
                conflict_cols=("amazon_order_id", "sku"),
                update_cols=self.UPDATE_COLUMNS,
            )
            self._commit_batch(stmt, "raw_orders", batch_no)
            written += len(batch)

        if len(orders) != len(records):
            logger.info(f"[SYNC] Merged {len(records) - len(orders)} duplicate order lines")
        return written


class InventoryWriter(_BatchWriter):
    UPDATE_COLUMNS = ("marketplace_id", "asin", "fnsku", "iwasku") + INVENTORY_QUANTITY_FIELDS

    def replace(self, warehouse: str, records: Sequence[InventoryRecord],
                iwaskus: Mapping[str, Optional[str]]) -> int:
        """
        warehouse의 스냅샷을 통째로 교체합니다.
        삭제는 첫 배치와 같은 트랜잭션에서 커밋된다.
        빈 스냅샷이면 아무것도 바꾸지 않고 0을 반환한다.
        """
        items = dedupe_inventory(records)
        if not items:
            # 빈 응답으로 기존 스냅샷을 지우지 않는다
            logger.warning(f"[SYNC] Empty inventory fetch for {warehouse}, keeping existing snapshot")
            return 0

        synced_at = datetime.now(timezone.utc)
        rows = []
        for item in items:
            row = item.to_row(warehouse, iwaskus.get(item.sku))
            row["last_synced_at"] = synced_at
            rows.append(row)

        delete_stmt = delete(FbaInventoryItem).where(FbaInventoryItem.warehouse == warehouse)
        written = 0
        for batch_no, batch in enumerate(chunked(rows, self.batch_size), start=1):
            stmt = upsert_statement(
                self.session,
                FbaInventoryItem,
                batch,
                conflict_cols=("warehouse", "sku"),
                update_cols=self.UPDATE_COLUMNS,
                extra_set={"last_synced_at": synced_at},
            )
            if batch_no == 1:
                try:
                    self.session.execute(delete_stmt)
                except Exception:
                    self.session.rollback()
                    raise
            self._commit_batch(stmt, f"fba_inventory[{warehouse}]", batch_no)
            written += len(batch)

        return written

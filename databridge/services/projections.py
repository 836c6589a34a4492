"""
운영 DB(raw_orders, fba_inventory)를 pricelab 프로젝션 테이블로 집계합니다.

- sales_data   : (iwasku, channel) 별 롤링 윈도 판매 수량
- fba_inventory: (iwasku, warehouse) 별 재고 합계

윈도 합계는 DB에서 group by로 구하고, 대표 ASIN 선택과 eu 합산만 파이썬에서 한 뒤 배치 upsert 합니다.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from databridge.models import INVENTORY_QUANTITY_FIELDS, FbaInventoryItem, InventoryData, RawOrder, SalesData
from databridge.services.upsert import chunked, upsert_statement
from databridge.settings import settings

logger = logging.getLogger(__name__)

INDIVIDUAL_CHANNELS = ("us", "uk", "de", "fr", "it", "es", "ca", "au", "ae", "sa", "others")
EU_CHANNEL = "eu"
EU_MEMBER_CHANNELS = ("de", "fr", "it", "es")
WAREHOUSES = ("US", "UK", "EU", "CA", "AU", "AE", "SA")

# 반품(Amazon Grade & Resell) SKU
RETURNS_SKU_PREFIX = "amzn.gr."

LAST_WINDOWS = (7, 30, 90, 180, 366)
PRE_YEAR_LAST_WINDOWS = (7, 30, 90, 180, 365)
PRE_YEAR_NEXT_WINDOWS = (7, 30, 90, 180)

SALES_WINDOW_COLUMNS = (
    [f"last{n}" for n in LAST_WINDOWS]
    + [f"pre_year_last{n}" for n in PRE_YEAR_LAST_WINDOWS]
    + [f"pre_year_next{n}" for n in PRE_YEAR_NEXT_WINDOWS]
)


def years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # 2월 29일
        return day.replace(year=day.year - years, day=28)


def is_returns_sku(sku: Optional[str]) -> bool:
    return bool(sku) and sku.startswith(RETURNS_SKU_PREFIX)


@dataclass(frozen=True)
class SalesWindows:
    """기준일(today)로부터 계산한 윈도 경계."""

    today: date

    @property
    def prior_year(self) -> date:
        return years_before(self.today, 1)

    @property
    def horizon(self) -> date:
        return years_before(self.today, 2)

    def bounds(self) -> Dict[str, Tuple[date, Optional[date]]]:
        """컬럼 -> (시작일, 종료일). 종료일 None은 상한 없음. 양 끝 포함."""
        py = self.prior_year
        bounds: Dict[str, Tuple[date, Optional[date]]] = {}
        for n in LAST_WINDOWS:
            bounds[f"last{n}"] = (self.today - timedelta(days=n), None)
        for n in PRE_YEAR_LAST_WINDOWS:
            bounds[f"pre_year_last{n}"] = (py - timedelta(days=n), py)
        for n in PRE_YEAR_NEXT_WINDOWS:
            bounds[f"pre_year_next{n}"] = (py, py + timedelta(days=n))
        return bounds

    def columns_for(self, day: date) -> List[str]:
        return [
            column for column, (start, end) in self.bounds().items()
            if start <= day and (end is None or day <= end)
        ]


def _empty_windows() -> Dict[str, int]:
    return {column: 0 for column in SALES_WINDOW_COLUMNS}


@dataclass
class _AsinTotals:
    asin: Optional[str]
    windows: Dict[str, int] = field(default_factory=_empty_windows)


def _pick_asin(candidates: Iterable[_AsinTotals]) -> Optional[str]:
    # last30 최다, 동률이면 ASIN 있는 쪽, 그다음 ASIN 오름차순
    ranked = sorted(candidates, key=lambda c: (-c.windows["last30"], c.asin is None, c.asin or ""))
    return ranked[0].asin if ranked else None


def _window_sum(column: str, start: date, end: Optional[date]):
    day = RawOrder.purchase_date_local
    condition = day >= start if end is None else day.between(start, end)
    return func.coalesce(func.sum(case((condition, RawOrder.quantity), else_=0)), 0).label(column)


class SalesProjectionAggregator:
    def __init__(self, session: Session, today_fn: Optional[Callable[[], date]] = None,
                 batch_size: Optional[int] = None):
        self.session = session
        self.today_fn = today_fn or date.today
        self.batch_size = batch_size or settings.write_batch_size

    def _load_totals(self, windows: SalesWindows) -> List:
        """(channel, canonical id, asin) 별 윈도 합계를 DB에서 집계합니다."""
        canonical = func.coalesce(RawOrder.iwasku, RawOrder.sku)
        asin = func.nullif(RawOrder.asin, "")
        sums = [_window_sum(column, start, end) for column, (start, end) in windows.bounds().items()]
        return self.session.execute(
            select(RawOrder.channel, canonical.label("canonical"), asin.label("asin"), *sums)
            .where(RawOrder.purchase_date_local >= windows.horizon)
            .where(RawOrder.channel.in_(INDIVIDUAL_CHANNELS))
            .where(~RawOrder.sku.startswith(RETURNS_SKU_PREFIX))
            .group_by(RawOrder.channel, canonical, asin)
        ).all()

    def compute(self, today: Optional[date] = None) -> List[dict]:
        windows = SalesWindows(today or self.today_fn())

        # channel -> canonical id -> asin -> totals
        # 윈도 밖 주문만 있는 엔트리도 0 값으로 기록된다
        totals: Dict[str, Dict[str, Dict[Optional[str], _AsinTotals]]] = defaultdict(lambda: defaultdict(dict))
        for row in self._load_totals(windows):
            values = row._mapping
            entry = _AsinTotals(values["asin"])
            for column in SALES_WINDOW_COLUMNS:
                entry.windows[column] = int(values[column] or 0)
            totals[values["channel"]][values["canonical"]][entry.asin] = entry

        rows = []
        for channel in INDIVIDUAL_CHANNELS:
            for canonical, by_asin in totals.get(channel, {}).items():
                rows.append(self._row(channel, canonical, by_asin.values()))

        eu_members = [totals[c] for c in EU_MEMBER_CHANNELS if c in totals]
        if eu_members:
            combined: Dict[str, Dict[Optional[str], _AsinTotals]] = defaultdict(dict)
            for per_channel in eu_members:
                for canonical, by_asin in per_channel.items():
                    for asin, entry in by_asin.items():
                        target = combined[canonical].get(asin)
                        if target is None:
                            target = combined[canonical][asin] = _AsinTotals(asin)
                        for column, value in entry.windows.items():
                            target.windows[column] += value
            for canonical, by_asin in combined.items():
                rows.append(self._row(EU_CHANNEL, canonical, by_asin.values()))

        return rows

    @staticmethod
    def _row(channel: str, canonical: str, constituents: Iterable[_AsinTotals]) -> dict:
        constituents = list(constituents)
        row = {"channel": channel, "iwasku": canonical, "asin": _pick_asin(constituents)}
        for column in SALES_WINDOW_COLUMNS:
            row[column] = sum(c.windows[column] for c in constituents)
        return row

    def refresh(self, today: Optional[date] = None) -> int:
        rows = self.compute(today)
        written = 0
        for batch in chunked(rows, self.batch_size):
            stmt = upsert_statement(
                self.session,
                SalesData,
                batch,
                conflict_cols=("iwasku", "channel"),
                update_cols=("asin",) + tuple(SALES_WINDOW_COLUMNS),
                extra_set={"updated_at": func.now()},
            )
            try:
                self.session.execute(stmt)
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
            written += len(batch)

        channels = sorted({row["channel"] for row in rows})
        logger.info(f"[PROJECTION] sales_data refreshed: {written} rows, channels: {', '.join(channels) or '-'}")
        return written


class InventoryProjectionAggregator:
    def __init__(self, session: Session, batch_size: Optional[int] = None):
        self.session = session
        self.batch_size = batch_size or settings.write_batch_size

    def compute(self) -> List[dict]:
        items = self.session.scalars(
            select(FbaInventoryItem)
            .where(FbaInventoryItem.warehouse.in_(WAREHOUSES))
            .order_by(FbaInventoryItem.warehouse, FbaInventoryItem.sku)
        ).all()

        grouped: Dict[Tuple[str, str], List[FbaInventoryItem]] = defaultdict(list)
        for item in items:
            if is_returns_sku(item.sku):
                continue
            grouped[(item.warehouse, item.iwasku or item.sku)].append(item)

        rows = []
        for (warehouse, canonical), members in grouped.items():
            # ASIN/FNSKU는 판매 가능 재고가 가장 많은 행 기준
            representative = max(members, key=lambda m: m.fulfillable_quantity or 0)
            row = {
                "iwasku": canonical,
                "warehouse": warehouse,
                "asin": representative.asin,
                "fnsku": representative.fnsku,
                "sku_list": ", ".join(sorted({m.sku for m in members})),
            }
            for column in INVENTORY_QUANTITY_FIELDS:
                row[column] = sum(getattr(m, column) or 0 for m in members)
            row["total_quantity"] = (
                row["fulfillable_quantity"]
                + row["total_reserved_quantity"]
                + row["total_unfulfillable_quantity"]
                + row["inbound_shipped_quantity"]
                + row["inbound_working_quantity"]
                + row["inbound_receiving_quantity"]
            )
            rows.append(row)
        return rows

    def refresh(self) -> int:
        rows = self.compute()
        written = 0
        for batch in chunked(rows, self.batch_size):
            stmt = upsert_statement(
                self.session,
                InventoryData,
                batch,
                conflict_cols=("iwasku", "warehouse"),
                update_cols=("asin", "fnsku", "sku_list", "total_quantity") + INVENTORY_QUANTITY_FIELDS,
                extra_set={"updated_at": func.now()},
            )
            try:
                self.session.execute(stmt)
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
            written += len(batch)

        warehouses = sorted({row["warehouse"] for row in rows})
        logger.info(f"[PROJECTION] fba_inventory refreshed: {written} rows, warehouses: {', '.join(warehouses) or '-'}")
        return written

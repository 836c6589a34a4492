import calendar
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, TypeVar

from sqlalchemy.orm import Session

from databridge.exceptions import CredentialNotFound
from databridge.services.job_tracker import (
    JOB_INVENTORY_SYNC,
    JOB_SALES_BACKFILL,
    JOB_SALES_SYNC,
    JobTracker,
    TrackedJob,
)
from databridge.services.marketplaces import (
    MarketplaceGroup,
    credential_for,
    eligible_marketplaces,
    get_marketplace,
    inventory_groups,
    sales_groups,
)
from databridge.services.projections import InventoryProjectionAggregator, SalesProjectionAggregator
from databridge.services.sku_resolver import SkuLookupItem, SkuResolver
from databridge.services.writers import InventoryWriter, OrderWriter
from databridge.settings import settings
from databridge.spapi.fetcher import ReportFetcher
from databridge.spapi.records import OrderRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlightGuard:
    """
    프로세스 내 동기화 실행을 한 번에 하나로 제한합니다.
    try_acquire는 기다리지 않고 즉시 결과를 돌려준다.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._holder: Optional[str] = None

    def try_acquire(self, holder: str = "sync") -> bool:
        if not self._lock.acquire(blocking=False):
            return False
        self._holder = holder
        return True

    def release(self) -> None:
        self._holder = None
        self._lock.release()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> Optional[str]:
        return self._holder


class PacedSequence:
    """항목 사이에만 delay 만큼 쉰다 (마지막 항목 뒤에는 쉬지 않음)."""

    def __init__(self, delay: float, sleep: Callable[[float], None] = time.sleep):
        self.delay = delay
        self.sleep = sleep

    def iterate(self, items: Iterable[T]) -> Iterator[T]:
        for index, item in enumerate(items):
            if index and self.delay > 0:
                self.sleep(self.delay)
            yield item


@dataclass
class SyncRunResult:
    kind: str
    skipped: bool = False
    groups_ok: int = 0
    groups_failed: int = 0
    records: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.skipped and self.groups_failed == 0

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "skipped": self.skipped,
            "groupsOk": self.groups_ok,
            "groupsFailed": self.groups_failed,
            "records": self.records,
            "errors": self.errors,
        }


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def backfill_windows(now: datetime, months: int) -> List[tuple]:
    """오래된 달부터: [now-(m+1)개월, now-m개월] for m = months-1 .. 0"""
    return [(add_months(now, -(m + 1)), add_months(now, -m)) for m in reversed(range(months))]


class SyncOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        fetcher: ReportFetcher,
        resolver: SkuResolver,
        guard: Optional[SingleFlightGuard] = None,
        sleep: Callable[[float], None] = time.sleep,
        now_fn: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session_factory = session_factory
        self.fetcher = fetcher
        self.resolver = resolver
        self.guard = guard or SingleFlightGuard()
        self.sleep = sleep
        self.now_fn = now_fn

    @property
    def is_running(self) -> bool:
        return self.guard.is_running

    def _guarded(self, kind: str, body: Callable[[SyncRunResult], None]) -> SyncRunResult:
        result = SyncRunResult(kind)
        if not self.guard.try_acquire(kind):
            logger.warning(f"[SYNC] {kind} requested while '{self.guard.holder}' is running. Skipping this run.")
            result.skipped = True
            return result

        started = time.monotonic()
        try:
            body(result)
        finally:
            self.guard.release()
        logger.info(
            f"[SYNC] {kind} finished in {time.monotonic() - started:.1f}s: "
            f"groups ok={result.groups_ok} failed={result.groups_failed}, records={result.records}"
        )
        return result

    # ---- per-group steps ----

    def _sync_inventory_group(self, session: Session, tracker: JobTracker, group: MarketplaceGroup) -> int:
        with tracker.track(JOB_INVENTORY_SYNC, group.label) as tracked:
            records = self.fetcher.fetch_inventory_snapshot(group)
            country = group.representative.country_code
            iwaskus = self.resolver.resolve_bulk(SkuLookupItem(r.sku, country, r.asin) for r in records)
            tracked.records_processed = InventoryWriter(session).replace(group.warehouse, records, iwaskus)
        return tracked.records_processed

    def _write_orders(self, session: Session, group: MarketplaceGroup, orders: Sequence[OrderRecord],
                      tracked: TrackedJob) -> int:
        # 해석 국가는 주문의 채널에 해당하는 멤버 마켓 기준
        by_channel: Dict[str, List[OrderRecord]] = {}
        for order in orders:
            by_channel.setdefault(order.channel, []).append(order)

        writer = OrderWriter(session)
        written = 0
        for channel, subset in by_channel.items():
            country = group.member_for_channel(channel).country_code
            iwaskus = self.resolver.resolve_bulk(SkuLookupItem(o.sku, country, o.asin) for o in subset)
            written += writer.upsert(subset, iwaskus)
            # 이후 채널이 실패해도 이미 커밋된 건수는 job에 남는다
            tracked.records_processed = written
        return written

    def _sync_sales_group(self, session: Session, tracker: JobTracker, group: MarketplaceGroup,
                          start: datetime, end: datetime, job_type: str = JOB_SALES_SYNC) -> int:
        with tracker.track(job_type, group.label) as tracked:
            orders = self.fetcher.fetch_orders(group, start, end)
            tracked.records_processed = self._write_orders(session, group, orders, tracked)
        return tracked.records_processed

    def _run_groups(self, result: SyncRunResult, groups: Sequence[MarketplaceGroup], delay: float,
                    step: Callable[[MarketplaceGroup], int]) -> None:
        for group in PacedSequence(delay, self.sleep).iterate(groups):
            try:
                result.records += step(group)
                result.groups_ok += 1
            except Exception as e:
                result.groups_failed += 1
                result.errors.append(f"{group.label}: {e}")
                logger.error(f"[SYNC] {result.kind} failed for {group.label}: {e}")

    def _sales_aggregator(self, session: Session) -> SalesProjectionAggregator:
        # 윈도 기준일은 실행 시계(UTC)와 같은 날짜
        return SalesProjectionAggregator(session, today_fn=lambda: self.now_fn().date())

    def _refresh(self, session: Session, aggregator) -> Optional[int]:
        try:
            return aggregator.refresh()
        except Exception as e:
            session.rollback()
            logger.error(f"[PROJECTION] {aggregator.__class__.__name__} refresh failed: {e}")
            return None

    def _single_group(self, session: Session, code: str) -> MarketplaceGroup:
        marketplace = get_marketplace(session, code)
        credential = credential_for(session, marketplace)
        if credential is None:
            raise CredentialNotFound(
                f"No active SP-API credential for marketplace {marketplace.country_code}",
                {"marketplace": marketplace.country_code},
            )
        return MarketplaceGroup(credential=credential, members=[marketplace])

    # ---- public runs ----

    def run_inventory_sync(self) -> SyncRunResult:
        def body(result: SyncRunResult) -> None:
            with self.session_factory() as session:
                tracker = JobTracker(session)
                groups = inventory_groups(eligible_marketplaces(session))
                logger.info(f"[SYNC] Inventory sync: {len(groups)} groups")
                self._run_groups(result, groups, settings.inventory_group_delay,
                                 lambda g: self._sync_inventory_group(session, tracker, g))
                self._refresh(session, InventoryProjectionAggregator(session))

        return self._guarded(JOB_INVENTORY_SYNC, body)

    def run_sales_sync(self) -> SyncRunResult:
        def body(result: SyncRunResult) -> None:
            end = self.now_fn()
            start = end - timedelta(days=settings.sales_overlap_days)
            with self.session_factory() as session:
                tracker = JobTracker(session)
                groups = sales_groups(eligible_marketplaces(session))
                logger.info(f"[SYNC] Sales sync: {len(groups)} groups, {start.isoformat()} - {end.isoformat()}")
                self._run_groups(result, groups, settings.sales_group_delay,
                                 lambda g: self._sync_sales_group(session, tracker, g, start, end))
                self._refresh(session, self._sales_aggregator(session))

        return self._guarded(JOB_SALES_SYNC, body)

    def sync_inventory_for_marketplace(self, code: str) -> SyncRunResult:
        """
        단일 마켓 재고 동기화 (수동 트리거용, 동기 실행).
        Raises:
            MarketplaceNotFound, CredentialNotFound
        """
        def body(result: SyncRunResult) -> None:
            with self.session_factory() as session:
                group = self._single_group(session, code)
                tracker = JobTracker(session)
                self._run_groups(result, [group], 0, lambda g: self._sync_inventory_group(session, tracker, g))
                self._refresh(session, InventoryProjectionAggregator(session))

        return self._guarded(JOB_INVENTORY_SYNC, body)

    def sync_sales_for_marketplace(self, code: str, days_back: Optional[int] = None) -> SyncRunResult:
        if days_back is None:
            days_back = settings.sales_overlap_days

        def body(result: SyncRunResult) -> None:
            end = self.now_fn()
            start = end - timedelta(days=days_back)
            with self.session_factory() as session:
                group = self._single_group(session, code)
                tracker = JobTracker(session)
                self._run_groups(result, [group], 0,
                                 lambda g: self._sync_sales_group(session, tracker, g, start, end))
                self._refresh(session, self._sales_aggregator(session))

        return self._guarded(JOB_SALES_SYNC, body)

    def backfill_sales(self, code: str, months: Optional[int] = None) -> SyncRunResult:
        """
        월 단위로 과거 주문을 채웁니다 (오래된 달부터).
        월별 실패는 기록 후 다음 달로 진행하고, 마지막에 sales 프로젝션을 갱신한다.
        """
        months = months or settings.backfill_default_months

        def body(result: SyncRunResult) -> None:
            windows = backfill_windows(self.now_fn(), months)
            with self.session_factory() as session:
                group = self._single_group(session, code)
                tracker = JobTracker(session)
                logger.info(f"[SYNC] Backfill {group.label}: {months} months")
                for start, end in PacedSequence(settings.backfill_month_delay, self.sleep).iterate(windows):
                    try:
                        written = self._sync_sales_group(session, tracker, group, start, end, JOB_SALES_BACKFILL)
                        result.records += written
                        result.groups_ok += 1
                        logger.info(f"[SYNC] Backfill {group.label} {start.date()} - {end.date()}: {written} records "
                                    f"(total {result.records})")
                    except Exception as e:
                        result.groups_failed += 1
                        result.errors.append(f"{start.date()} - {end.date()}: {e}")
                        logger.error(f"[SYNC] Backfill {group.label} {start.date()} - {end.date()} failed: {e}")
                self._refresh(session, self._sales_aggregator(session))

        return self._guarded(JOB_SALES_BACKFILL, body)

    def refresh_projections(self) -> Dict[str, Optional[int]]:
        with self.session_factory() as session:
            return {
                "sales": self._refresh(session, self._sales_aggregator(session)),
                "inventory": self._refresh(session, InventoryProjectionAggregator(session)),
            }


_orchestrator: Optional[SyncOrchestrator] = None
_orchestrator_lock = threading.Lock()


def get_orchestrator() -> SyncOrchestrator:
    """프로세스당 하나의 orchestrator (단일 실행 가드 공유)."""
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            from databridge.db import SessionLocal
            from databridge.spapi.fetcher import SpApiReportFetcher

            _orchestrator = SyncOrchestrator(
                session_factory=SessionLocal,
                fetcher=SpApiReportFetcher(),
                resolver=SkuResolver(SessionLocal),
            )
        return _orchestrator

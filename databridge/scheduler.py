"""
정기 동기화 스케줄러 (APScheduler, UTC 크론).

- inventory: 기본 4시간마다
- sales    : 기본 매일 03:00

작업은 스레드 풀에서 실행되며, 겹치는 실행은 orchestrator의 단일 실행 가드가 건너뛴다.
"""
import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from databridge.services.orchestrator import SyncOrchestrator, get_orchestrator
from databridge.settings import settings

logger = logging.getLogger(__name__)

INVENTORY_JOB_ID = "databridge_inventory_sync"
SALES_JOB_ID = "databridge_sales_sync"


class SyncScheduler:
    def __init__(
        self,
        orchestrator: Optional[SyncOrchestrator] = None,
        inventory_cron: Optional[str] = None,
        sales_cron: Optional[str] = None,
    ):
        self._orchestrator = orchestrator
        self.inventory_cron = inventory_cron or settings.sync_inventory_cron
        self.sales_cron = sales_cron or settings.sync_sales_cron
        self.scheduler = BackgroundScheduler(timezone="UTC")

    @property
    def orchestrator(self) -> SyncOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = get_orchestrator()
        return self._orchestrator

    def _run_inventory(self) -> None:
        logger.info("[SCHEDULER] Starting scheduled inventory sync")
        try:
            self.orchestrator.run_inventory_sync()
        except Exception as e:
            logger.exception(f"[SCHEDULER] Scheduled inventory sync failed: {e}")

    def _run_sales(self) -> None:
        logger.info("[SCHEDULER] Starting scheduled sales sync")
        try:
            self.orchestrator.run_sales_sync()
        except Exception as e:
            logger.exception(f"[SCHEDULER] Scheduled sales sync failed: {e}")

    def register_jobs(self) -> None:
        self.scheduler.add_job(
            self._run_inventory,
            trigger=CronTrigger.from_crontab(self.inventory_cron, timezone="UTC"),
            id=INVENTORY_JOB_ID,
            name="Inventory Sync",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            self._run_sales,
            trigger=CronTrigger.from_crontab(self.sales_cron, timezone="UTC"),
            id=SALES_JOB_ID,
            name="Sales Sync",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )

    def start(self) -> None:
        self.register_jobs()
        self.scheduler.start()
        logger.info(f"[SCHEDULER] Started. Inventory: {self.inventory_cron}, Sales: {self.sales_cron} (UTC)")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("[SCHEDULER] Stopped")

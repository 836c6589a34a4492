import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from databridge.exceptions import InvalidJobTransition
from databridge.models import SyncJob

logger = logging.getLogger(__name__)

JOB_INVENTORY_SYNC = "inventory_sync"
JOB_SALES_SYNC = "sales_sync"
JOB_SALES_BACKFILL = "sales_backfill"
JOB_TYPES = (JOB_INVENTORY_SYNC, JOB_SALES_SYNC, JOB_SALES_BACKFILL)

STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

# pending -> running -> completed | failed
_ALLOWED = {
    STATUS_PENDING: {STATUS_RUNNING, STATUS_FAILED},
    STATUS_RUNNING: {STATUS_COMPLETED, STATUS_FAILED},
    STATUS_COMPLETED: set(),
    STATUS_FAILED: set(),
}


class JobTracker:
    """
    sync_jobs 감사 로그 관리.
    상태 전이마다 즉시 commit 하여 실행 중에도 외부에서 진행 상황을 볼 수 있게 한다.
    """

    def __init__(self, session: Session):
        self.session = session

    def _transition(self, job: SyncJob, target: str) -> None:
        if target not in _ALLOWED.get(job.status, set()):
            raise InvalidJobTransition(job.id, job.status, target)
        job.status = target

    def create(self, job_type: str, marketplace: str) -> SyncJob:
        if job_type not in JOB_TYPES:
            raise ValueError(f"Unknown job type: {job_type}")
        job = SyncJob(job_type=job_type, marketplace=marketplace, status=STATUS_PENDING, records_processed=0)
        self.session.add(job)
        self.session.commit()
        return job

    def start(self, job: SyncJob) -> SyncJob:
        self._transition(job, STATUS_RUNNING)
        job.started_at = datetime.now(timezone.utc)
        self.session.commit()
        logger.info(f"[SYNC] Job {job.id} started ({job.job_type}:{job.marketplace})")
        return job

    def complete(self, job: SyncJob, records_processed: int) -> SyncJob:
        self._transition(job, STATUS_COMPLETED)
        job.completed_at = datetime.now(timezone.utc)
        job.records_processed = records_processed
        self.session.commit()
        logger.info(f"[SYNC] Job {job.id} completed ({job.job_type}:{job.marketplace}), records: {records_processed}")
        return job

    def fail(self, job: SyncJob, error_message: str, records_processed: int = 0) -> SyncJob:
        # 실패한 쓰기 배치의 트랜잭션이 남아 있을 수 있다
        self.session.rollback()
        self._transition(job, STATUS_FAILED)
        job.completed_at = datetime.now(timezone.utc)
        job.error_message = error_message
        job.records_processed = records_processed
        self.session.commit()
        logger.error(f"[SYNC] Job {job.id} failed ({job.job_type}:{job.marketplace}): {error_message}")
        return job

    @contextmanager
    def track(self, job_type: str, marketplace: str) -> Iterator["TrackedJob"]:
        """
        create + start 후 블록을 실행하고, 정상 종료 시 complete / 예외 시 fail 처리.
        예외는 다시 던진다.
        """
        job = self.start(self.create(job_type, marketplace))
        tracked = TrackedJob(job)
        try:
            yield tracked
        except Exception as e:
            self.fail(job, str(e) or e.__class__.__name__, tracked.records_processed)
            raise
        self.complete(job, tracked.records_processed)

    def recent_jobs(self, limit: int = 50) -> List[SyncJob]:
        return list(self.session.scalars(
            select(SyncJob).order_by(SyncJob.created_at.desc(), SyncJob.id.desc()).limit(limit)
        ))

    def last_sync_per_job(self) -> List[SyncJob]:
        """(job_type, marketplace) 별 가장 최근 job."""
        latest_ids = (
            select(func.max(SyncJob.id))
            .group_by(SyncJob.job_type, SyncJob.marketplace)
        )
        return list(self.session.scalars(
            select(SyncJob).where(SyncJob.id.in_(latest_ids)).order_by(SyncJob.job_type, SyncJob.marketplace)
        ))


class TrackedJob:
    def __init__(self, job: SyncJob):
        self.job = job
        self.records_processed = 0

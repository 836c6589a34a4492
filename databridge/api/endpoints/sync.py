import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from databridge.db import get_session
from databridge.exceptions import CredentialNotFound, MarketplaceNotFound
from databridge.services.job_tracker import JobTracker
from databridge.services.marketplaces import get_marketplace
from databridge.services.orchestrator import SyncOrchestrator, SyncRunResult, get_orchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class SyncTriggerIn(BaseModel):
    type: Literal["inventory", "sales", "backfill", "refresh_projection"]
    marketplace: Optional[str] = None
    months: Optional[int] = Field(default=None, ge=1, le=24)
    days_back: Optional[int] = Field(default=None, alias="daysBack", ge=1, le=60)

    model_config = ConfigDict(populate_by_name=True)


class SyncJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_type: str
    marketplace: str
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    records_processed: int
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


def _run_result(result: SyncRunResult) -> dict:
    if result.skipped:
        raise HTTPException(status_code=409, detail="다른 동기화가 실행 중입니다")
    return {"success": result.success, **result.to_dict()}


def _run_background(label: str, func, *args) -> None:
    try:
        func(*args)
    except Exception as e:
        # 백그라운드 실행 실패는 job 상태와 로그로만 확인 가능
        logger.exception(f"[SYNC] Background {label} failed: {e}")


@router.post("/trigger")
def trigger_sync(
    payload: SyncTriggerIn,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    수동 동기화 트리거.

    - inventory / sales: marketplace 지정 시 동기 실행, 미지정 시 전체를 백그라운드로 실행
    - backfill: marketplace 필수, 백그라운드 실행
    - refresh_projection: 프로젝션 재계산 (동기)
    """
    code = payload.marketplace.strip().upper() if payload.marketplace else None

    if payload.type == "refresh_projection":
        counts = orchestrator.refresh_projections()
        return {"success": all(v is not None for v in counts.values()), **counts}

    if payload.type == "backfill":
        if not code:
            raise HTTPException(status_code=400, detail="backfill에는 marketplace가 필요합니다")
        try:
            get_marketplace(session, code)
        except MarketplaceNotFound as e:
            raise HTTPException(status_code=404, detail=e.message)
        background_tasks.add_task(_run_background, "backfill", orchestrator.backfill_sales, code, payload.months)
        return {"success": True, "message": f"{code} backfill started", "months": payload.months}

    if code is None:
        if payload.type == "inventory":
            background_tasks.add_task(_run_background, "inventory sync", orchestrator.run_inventory_sync)
        else:
            background_tasks.add_task(_run_background, "sales sync", orchestrator.run_sales_sync)
        return {"success": True, "message": f"{payload.type} sync started"}

    try:
        if payload.type == "inventory":
            result = orchestrator.sync_inventory_for_marketplace(code)
        else:
            result = orchestrator.sync_sales_for_marketplace(code, payload.days_back)
    except MarketplaceNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except CredentialNotFound as e:
        raise HTTPException(status_code=400, detail=e.message)
    return _run_result(result)


@router.get("/jobs", response_model=List[SyncJobResponse])
def list_jobs(
    session: Session = Depends(get_session),
    limit: int = Query(default=50, ge=1, le=200),
):
    return JobTracker(session).recent_jobs(limit)

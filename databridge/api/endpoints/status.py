from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from databridge.db import get_session
from databridge.models import FbaInventoryItem, MarketplaceConfig, RawOrder, SpApiCredential
from databridge.services.job_tracker import JobTracker
from databridge.services.orchestrator import SyncOrchestrator, get_orchestrator

router = APIRouter()


def _iso(value):
    return value.isoformat() if value else None


@router.get("")
def get_status(
    session: Session = Depends(get_session),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    동기화 현황: (job_type, marketplace)별 최근 job, 마켓 설정, region별 credential 수, 데이터 건수
    """
    last_syncs = [
        {
            "jobType": job.job_type,
            "marketplace": job.marketplace,
            "status": job.status,
            "recordsProcessed": job.records_processed,
            "startedAt": _iso(job.started_at),
            "completedAt": _iso(job.completed_at),
            "errorMessage": job.error_message,
        }
        for job in JobTracker(session).last_sync_per_job()
    ]

    marketplaces = [
        {
            "marketplaceId": m.marketplace_id,
            "countryCode": m.country_code,
            "channel": m.channel,
            "warehouse": m.warehouse,
            "region": m.region,
            "isActive": m.is_active,
            "credentialId": m.credential_id,
        }
        for m in session.scalars(select(MarketplaceConfig).order_by(MarketplaceConfig.country_code)).unique()
    ]

    credential_rows = session.execute(
        select(SpApiCredential.region, func.count())
        .where(SpApiCredential.is_active.is_(True))
        .group_by(SpApiCredential.region)
    ).all()

    raw_orders = session.scalar(select(func.count()).select_from(RawOrder)) or 0
    inventory_items = session.scalar(select(func.count()).select_from(FbaInventoryItem)) or 0
    unresolved_orders = session.scalar(
        select(func.count()).select_from(RawOrder).where(RawOrder.iwasku.is_(None))
    ) or 0

    return {
        "isRunning": orchestrator.is_running,
        "lastSyncs": last_syncs,
        "marketplaces": marketplaces,
        "credentials": {region: count for region, count in credential_rows},
        "dataCounts": {
            "rawOrders": raw_orders,
            "inventoryItems": inventory_items,
            "unresolvedOrders": unresolved_orders,
        },
    }

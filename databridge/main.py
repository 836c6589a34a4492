import logging

from fastapi import FastAPI

from databridge.api.endpoints import status, sync
from databridge.scheduler import SyncScheduler
from databridge.settings import settings

logger = logging.getLogger(__name__)

app = FastAPI(title="DataBridge")

app.include_router(sync.router, prefix="/api/v1/sync", tags=["Sync"])
app.include_router(status.router, prefix="/api/v1/status", tags=["Status"])

_scheduler: SyncScheduler | None = None


@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def on_startup() -> None:
    global _scheduler
    if not settings.scheduler_enabled:
        logger.info("[SCHEDULER] Disabled by settings")
        return
    _scheduler = SyncScheduler()
    _scheduler.start()


@app.on_event("shutdown")
def on_shutdown() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
        _scheduler = None

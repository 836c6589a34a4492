"""
동기화 API 테스트.
엔드포인트 함수를 직접 호출하고, 라우팅은 TestClient로 확인한다.
"""

from datetime import datetime, timezone

import pytest
from fastapi import BackgroundTasks, HTTPException
from fastapi.testclient import TestClient

from databridge.api.endpoints.status import get_status
from databridge.api.endpoints.sync import SyncJobResponse, SyncTriggerIn, list_jobs, trigger_sync
from databridge.db import get_session
from databridge.main import app
from databridge.services.job_tracker import JOB_INVENTORY_SYNC, JobTracker
from databridge.services.orchestrator import SingleFlightGuard, SyncOrchestrator, get_orchestrator
from databridge.services.sku_resolver import SkuResolver

NOW = datetime(2026, 10, 15, 3, 0, tzinfo=timezone.utc)


@pytest.fixture
def orchestrator(session_factory, fake_fetcher, seed_marketplaces):
    return SyncOrchestrator(session_factory, fake_fetcher, SkuResolver(session_factory),
                            sleep=lambda s: None, now_fn=lambda: NOW)


def _trigger(session, orchestrator, **payload):
    background = BackgroundTasks()
    response = trigger_sync(SyncTriggerIn(**payload), background, session, orchestrator)
    return response, background


@pytest.mark.integration
class TestTriggerSync:
    def test_single_marketplace_runs_synchronously(self, test_session, orchestrator, fake_fetcher,
                                                   inventory_factory):
        fake_fetcher.inventory = {"US": [inventory_factory(sku="SKU-1", fulfillable=1)]}
        response, background = _trigger(test_session, orchestrator, type="inventory", marketplace="us")

        assert response["success"] is True
        assert response["records"] == 1
        assert background.tasks == []

    def test_all_marketplaces_runs_in_background(self, test_session, orchestrator, fake_fetcher):
        response, background = _trigger(test_session, orchestrator, type="sales")

        assert response == {"success": True, "message": "sales sync started"}
        assert len(background.tasks) == 1
        assert fake_fetcher.calls == []

    def test_unknown_marketplace_is_404(self, test_session, orchestrator):
        with pytest.raises(HTTPException) as excinfo:
            _trigger(test_session, orchestrator, type="inventory", marketplace="XX")
        assert excinfo.value.status_code == 404

    def test_backfill_requires_marketplace(self, test_session, orchestrator):
        with pytest.raises(HTTPException) as excinfo:
            _trigger(test_session, orchestrator, type="backfill")
        assert excinfo.value.status_code == 400

    def test_backfill_unknown_marketplace_is_404(self, test_session, orchestrator):
        with pytest.raises(HTTPException) as excinfo:
            _trigger(test_session, orchestrator, type="backfill", marketplace="XX", months=2)
        assert excinfo.value.status_code == 404

    def test_backfill_runs_in_background(self, test_session, orchestrator):
        response, background = _trigger(test_session, orchestrator, type="backfill", marketplace="de", months=2)
        assert response["months"] == 2
        assert len(background.tasks) == 1

    def test_busy_is_409(self, test_session, session_factory, fake_fetcher, seed_marketplaces):
        guard = SingleFlightGuard()
        orchestrator = SyncOrchestrator(session_factory, fake_fetcher, SkuResolver(session_factory), guard=guard)
        guard.try_acquire("sales_sync")
        try:
            with pytest.raises(HTTPException) as excinfo:
                _trigger(test_session, orchestrator, type="inventory", marketplace="US")
        finally:
            guard.release()
        assert excinfo.value.status_code == 409

    def test_refresh_projection(self, test_session, orchestrator):
        response, _ = _trigger(test_session, orchestrator, type="refresh_projection")
        assert response == {"success": True, "sales": 0, "inventory": 0}

    def test_days_back_alias(self):
        payload = SyncTriggerIn.model_validate({"type": "sales", "marketplace": "US", "daysBack": 7})
        assert payload.days_back == 7


@pytest.mark.integration
class TestJobsAndStatus:
    def test_list_jobs(self, test_session):
        tracker = JobTracker(test_session)
        job = tracker.start(tracker.create(JOB_INVENTORY_SYNC, "US"))
        tracker.complete(job, 5)

        jobs = [SyncJobResponse.model_validate(j) for j in list_jobs(test_session, limit=50)]
        assert [(j.job_type, j.marketplace, j.status, j.records_processed) for j in jobs] == [
            (JOB_INVENTORY_SYNC, "US", "completed", 5),
        ]

    def test_status(self, test_session, orchestrator, fake_fetcher, inventory_factory):
        fake_fetcher.inventory = {"US": [inventory_factory(sku="UNMAPPED", fulfillable=1)]}
        orchestrator.sync_inventory_for_marketplace("US")

        status = get_status(test_session, orchestrator)

        assert status["isRunning"] is False
        assert [s["marketplace"] for s in status["lastSyncs"]] == ["US"]
        assert [m["countryCode"] for m in status["marketplaces"]] == ["CA", "DE", "FR", "UK", "US"]
        assert status["credentials"] == {"EU": 1, "NA": 1}
        assert status["dataCounts"] == {"rawOrders": 0, "inventoryItems": 1, "unresolvedOrders": 0}


@pytest.mark.integration
class TestRouting:
    def test_routes(self, session_factory, orchestrator):
        def override_session():
            with session_factory() as session:
                yield session

        app.dependency_overrides[get_session] = override_session
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        try:
            client = TestClient(app)
            assert client.get("/health").json() == {"status": "ok"}

            response = client.post("/api/v1/sync/trigger", json={"type": "sales", "marketplace": "XX"})
            assert response.status_code == 404

            response = client.post("/api/v1/sync/trigger", json={"type": "unknown"})
            assert response.status_code == 422

            response = client.get("/api/v1/sync/jobs")
            assert response.status_code == 200
            assert response.json() == []

            response = client.get("/api/v1/status")
            assert response.status_code == 200
            assert response.json()["isRunning"] is False
        finally:
            app.dependency_overrides.clear()

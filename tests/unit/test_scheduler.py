import pytest

from databridge.scheduler import INVENTORY_JOB_ID, SALES_JOB_ID, SyncScheduler


class RecordingOrchestrator:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def run_inventory_sync(self):
        self.calls.append("inventory")
        if self.fail:
            raise RuntimeError("db down")

    def run_sales_sync(self):
        self.calls.append("sales")
        if self.fail:
            raise RuntimeError("db down")


@pytest.mark.unit
class TestSyncScheduler:
    def test_register_jobs_uses_cron(self):
        scheduler = SyncScheduler(RecordingOrchestrator(), inventory_cron="0 */4 * * *", sales_cron="0 3 * * *")
        scheduler.register_jobs()

        inventory = scheduler.scheduler.get_job(INVENTORY_JOB_ID)
        sales = scheduler.scheduler.get_job(SALES_JOB_ID)
        assert inventory is not None and sales is not None
        assert "hour='*/4'" in str(inventory.trigger)
        assert "hour='3'" in str(sales.trigger)

    def test_register_twice_replaces(self):
        scheduler = SyncScheduler(RecordingOrchestrator())
        scheduler.register_jobs()
        scheduler.register_jobs()
        assert len(scheduler.scheduler.get_jobs()) == 2

    def test_job_failures_are_logged_not_raised(self):
        orchestrator = RecordingOrchestrator(fail=True)
        scheduler = SyncScheduler(orchestrator)
        scheduler._run_inventory()
        scheduler._run_sales()
        assert orchestrator.calls == ["inventory", "sales"]

    def test_start_and_stop(self):
        scheduler = SyncScheduler(RecordingOrchestrator())
        scheduler.start()
        assert scheduler.scheduler.running
        scheduler.stop()
        assert not scheduler.scheduler.running

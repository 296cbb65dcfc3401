import importlib

import pytest

from app.features.vip_sync.domain import SyncSummary
from app.features.vip_sync.services import VipSyncError

sync_job = importlib.import_module("app.features.vip_sync.jobs.sync_job")


class FakeService:
    def __init__(self, summary=None, error=None):
        self.summary = summary
        self.error = error
        self.calls = []

    async def run_once(self):
        self.calls.append("full")
        if self.error:
            raise self.error
        return self.summary

    async def run_expiry_sweep(self):
        self.calls.append("expiry")
        return self.summary


@pytest.mark.asyncio
async def test_run_vip_sync_returns_summary_dict(monkeypatch):
    fake = FakeService(summary=SyncSummary(lifetime_ensured=2, roster_size=5))
    monkeypatch.setattr(sync_job, "vip_reconciliation_service", fake)

    result = await sync_job.run_vip_sync("interval")

    assert result["lifetime_ensured"] == 2
    assert result["roster_size"] == 5
    assert fake.calls == ["full"]


@pytest.mark.asyncio
async def test_run_expiry_sweep_reports_skip(monkeypatch):
    fake = FakeService(summary=SyncSummary(skipped=True))
    monkeypatch.setattr(sync_job, "vip_reconciliation_service", fake)

    result = await sync_job.run_expiry_sweep()

    assert result == {"skipped": True, "reason": "already_running"}
    assert fake.calls == ["expiry"]


@pytest.mark.asyncio
async def test_run_vip_sync_propagates_pass_errors(monkeypatch):
    fake = FakeService(error=VipSyncError("roster unreachable", operation="read_roster"))
    monkeypatch.setattr(sync_job, "vip_reconciliation_service", fake)

    with pytest.raises(VipSyncError):
        await sync_job.run_vip_sync("cli")

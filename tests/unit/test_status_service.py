import pytest

from app.features.vip_sync.domain import LIFETIME_UNTIL_MS, ONE_DAY_MS, VipStatus, VipStatusResult
from app.features.vip_sync.services.status_service import StatusService, format_status_message

NOW = 1_700_000_000_000


@pytest.fixture
def service(store):
    return StatusService(store=store, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_unknown_member_has_no_vip(service):
    result = await service.get_status("123")

    assert result.status is VipStatus.NONE


@pytest.mark.asyncio
async def test_zero_vip_until_means_no_vip(store, service):
    store.seed("123", 0, NOW - 40 * ONE_DAY_MS)

    result = await service.get_status("123")

    assert result.status is VipStatus.NONE


@pytest.mark.asyncio
async def test_lifetime_member(store, service):
    store.seed("123", LIFETIME_UNTIL_MS, NOW)

    result = await service.get_status("123")

    assert result.status is VipStatus.LIFETIME
    assert format_status_message(result) == "✅ VIP status: **LIFETIME ACCESS**"


@pytest.mark.asyncio
async def test_active_window_reports_until(store, service):
    until = NOW + 3 * ONE_DAY_MS
    store.seed("123", until, until)

    result = await service.get_status("123")

    assert result == VipStatusResult(VipStatus.ACTIVE, until_ms=until)
    assert format_status_message(result) == f"✅ VIP active until <t:{until // 1000}:F>"


@pytest.mark.asyncio
async def test_past_window_is_expired(store, service):
    store.seed("123", NOW - 1, NOW - 1)

    result = await service.get_status("123")

    assert result.status is VipStatus.EXPIRED
    assert format_status_message(result) == "❌ VIP expired."


@pytest.mark.asyncio
async def test_status_never_writes(store, service):
    store.seed("123", NOW + ONE_DAY_MS, 0)

    await service.get_status("123")

    assert store.writes == []


def test_no_vip_message():
    assert format_status_message(VipStatusResult(VipStatus.NONE)) == "❌ You do not currently have VIP."

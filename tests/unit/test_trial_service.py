import pytest

from app.features.vip_sync.domain import LIFETIME_UNTIL_MS, ONE_DAY_MS, TRIAL_DURATION_MS
from app.features.vip_sync.services.trial_service import TrialService
from app.services.discord_client import RoleMutationError

NOW = 1_700_000_000_000
ROLE_ID = "role-vip"


def make_service(store, platform, log_channel_id=""):
    return TrialService(
        store=store,
        platform=platform,
        role_id=ROLE_ID,
        log_channel_id=log_channel_id,
        clock=lambda: NOW,
    )


@pytest.mark.asyncio
async def test_creates_record_from_join_time(store, platform):
    service = make_service(store, platform)
    joined = NOW - 5 * ONE_DAY_MS

    window = await service.ensure_trial("123", joined, NOW)

    assert window.mutated is True
    assert window.trial_until == joined + TRIAL_DURATION_MS
    assert window.vip_until == joined + TRIAL_DURATION_MS
    assert store.records["123"].trial_until == joined + TRIAL_DURATION_MS


@pytest.mark.asyncio
async def test_unknown_join_time_falls_back_to_now(store, platform):
    service = make_service(store, platform)

    window = await service.ensure_trial("123", None, NOW)

    assert window.trial_until == NOW + TRIAL_DURATION_MS


@pytest.mark.asyncio
async def test_backfill_keeps_running_manual_window(store, platform):
    manual_until = NOW + 3 * ONE_DAY_MS
    store.seed("123", manual_until, 0)
    service = make_service(store, platform)

    window = await service.ensure_trial("123", NOW - 100 * ONE_DAY_MS, NOW)

    assert window.mutated is True
    assert window.trial_until == manual_until
    assert store.records["123"].vip_until == manual_until


@pytest.mark.asyncio
async def test_backfill_for_lifetime_member_uses_join_time(store, platform):
    joined = NOW - 100 * ONE_DAY_MS
    store.seed("123", LIFETIME_UNTIL_MS, 0)
    service = make_service(store, platform)

    window = await service.ensure_trial("123", joined, NOW)

    assert window.trial_until == joined + TRIAL_DURATION_MS
    assert store.records["123"].vip_until == LIFETIME_UNTIL_MS


@pytest.mark.asyncio
async def test_backfill_ignores_expired_window(store, platform):
    joined = NOW - 100 * ONE_DAY_MS
    store.seed("123", NOW - ONE_DAY_MS, 0)
    service = make_service(store, platform)

    window = await service.ensure_trial("123", joined, NOW)

    assert window.trial_until == joined + TRIAL_DURATION_MS
    assert store.records["123"].vip_until == NOW - ONE_DAY_MS


@pytest.mark.asyncio
async def test_existing_trial_is_never_extended(store, platform):
    store.seed("123", LIFETIME_UNTIL_MS, NOW - ONE_DAY_MS)
    service = make_service(store, platform)

    first = await service.ensure_trial("123", NOW, NOW)
    second = await service.ensure_trial("123", NOW, NOW)

    assert first.mutated is False
    assert second.trial_until == NOW - ONE_DAY_MS
    assert store.writes == []


@pytest.mark.asyncio
async def test_ensure_trial_is_idempotent(store, platform):
    service = make_service(store, platform)

    await service.ensure_trial("123", NOW, NOW)
    writes_after_first = list(store.writes)
    again = await service.ensure_trial("123", NOW, NOW)

    assert again.mutated is False
    assert store.writes == writes_after_first


@pytest.mark.asyncio
async def test_join_grants_role_and_announces(store, platform):
    platform.add_member("123")
    service = make_service(store, platform, log_channel_id="chan-log")

    window = await service.grant_trial_on_join("123")

    assert window.trial_until == NOW + TRIAL_DURATION_MS
    assert platform.has_role("123")
    assert len(platform.messages) == 1
    channel, content = platform.messages[0]
    assert channel == "chan-log"
    assert "<@123>" in content


@pytest.mark.asyncio
async def test_rejoin_with_used_trial_gets_no_role(store, platform):
    platform.add_member("123")
    store.seed("123", 0, NOW - 10 * ONE_DAY_MS)
    service = make_service(store, platform, log_channel_id="chan-log")

    window = await service.grant_trial_on_join("123")

    assert window.trial_until == NOW - 10 * ONE_DAY_MS
    assert not platform.has_role("123")
    assert platform.messages == []


@pytest.mark.asyncio
async def test_rejoin_of_lifetime_member_restores_role_without_new_trial(store, platform):
    platform.add_member("123")
    store.seed("123", LIFETIME_UNTIL_MS, NOW - 10 * ONE_DAY_MS)
    service = make_service(store, platform, log_channel_id="chan-log")

    window = await service.grant_trial_on_join("123")

    assert window.mutated is False
    assert platform.has_role("123")
    assert store.records["123"].vip_until == LIFETIME_UNTIL_MS
    assert platform.messages == []


@pytest.mark.asyncio
async def test_join_role_failure_propagates(store, platform):
    platform.add_member("123")
    platform.fail_mutations_for.add("123")
    service = make_service(store, platform)

    with pytest.raises(RoleMutationError):
        await service.grant_trial_on_join("123")


@pytest.mark.asyncio
async def test_rejoin_without_any_window_leaves_record_untouched(store, platform):
    platform.add_member("123")
    store.seed("123", 0, 0)
    service = make_service(store, platform, log_channel_id="chan-log")

    window = await service.grant_trial_on_join("123")

    assert window.mutated is False
    assert window.trial_until == 0
    assert store.writes == []
    assert not platform.has_role("123")
    assert platform.messages == []

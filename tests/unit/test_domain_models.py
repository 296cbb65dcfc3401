from app.features.vip_sync.domain import (
    LIFETIME_UNTIL_MS,
    EntitlementRecord,
    Expiring,
    Lifetime,
    MemberOutcome,
    NoEntitlement,
    SyncPhase,
    SyncSummary,
    entitlement_from_vip_until,
)


def test_entitlement_decoding():
    assert entitlement_from_vip_until(0) == NoEntitlement()
    assert entitlement_from_vip_until(None) == NoEntitlement()
    assert entitlement_from_vip_until(LIFETIME_UNTIL_MS) == Lifetime()
    assert entitlement_from_vip_until(LIFETIME_UNTIL_MS + 1) == Lifetime()
    assert entitlement_from_vip_until(LIFETIME_UNTIL_MS - 1) == Expiring(LIFETIME_UNTIL_MS - 1)


def test_entitlement_round_trips_to_column_value():
    for value in (0, 1_700_000_000_000, LIFETIME_UNTIL_MS):
        assert entitlement_from_vip_until(value).to_vip_until() == value


def test_record_lifetime_flag():
    assert EntitlementRecord("1", LIFETIME_UNTIL_MS, 5).is_lifetime
    assert not EntitlementRecord("1", 5, 5).is_lifetime


def test_summary_counts_only_changes_and_failures():
    summary = SyncSummary(roster_size=3)
    summary.record(MemberOutcome("1", SyncPhase.GRANT, "changed"))
    summary.record(MemberOutcome("2", SyncPhase.GRANT, "unchanged"))
    summary.record(MemberOutcome("3", SyncPhase.DOWNGRADE, "changed"))
    summary.record(MemberOutcome("4", SyncPhase.EXPIRY, "skipped"))
    summary.record(MemberOutcome("5", SyncPhase.EXPIRY, "failed", error="403"))

    data = summary.to_dict()

    assert data["lifetime_ensured"] == 1
    assert data["lifetime_downgraded"] == 1
    assert data["expired_removed"] == 0
    assert data["failures"] == 1
    assert [o["user_id"] for o in data["outcomes"]] == ["1", "3", "5"]

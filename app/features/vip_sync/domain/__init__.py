"""Domain layer exports for the VIP sync feature."""

from .models import (
    LIFETIME_UNTIL_MS,
    ONE_DAY_MS,
    TRIAL_DURATION_MS,
    Entitlement,
    EntitlementRecord,
    Expiring,
    GuildMember,
    GuildRole,
    Lifetime,
    MemberOutcome,
    NoEntitlement,
    SyncPhase,
    SyncSummary,
    TrialWindow,
    VipStatus,
    VipStatusResult,
    entitlement_from_vip_until,
    now_ms,
)

__all__ = [
    "LIFETIME_UNTIL_MS",
    "ONE_DAY_MS",
    "TRIAL_DURATION_MS",
    "Entitlement",
    "EntitlementRecord",
    "Expiring",
    "GuildMember",
    "GuildRole",
    "Lifetime",
    "MemberOutcome",
    "NoEntitlement",
    "SyncPhase",
    "SyncSummary",
    "TrialWindow",
    "VipStatus",
    "VipStatusResult",
    "entitlement_from_vip_until",
    "now_ms",
]

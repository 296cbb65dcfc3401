"""
Domain models for the VIP sync feature.

Timestamps are integer milliseconds since the epoch, matching the values
stored in the vip_users table. Lifetime VIP is persisted as a far-future
sentinel; code reads it through the Entitlement variants below instead of
comparing magnitudes by hand.
"""

import time
from dataclasses import dataclass, field
from enum import Enum

ONE_DAY_MS = 24 * 60 * 60 * 1000
TRIAL_DURATION_MS = 30 * ONE_DAY_MS
LIFETIME_UNTIL_MS = 32503680000000  # 3000-01-01T00:00:00Z


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class NoEntitlement:
    """No VIP window at all (vip_until = 0)."""

    def to_vip_until(self) -> int:
        return 0


@dataclass(frozen=True, slots=True)
class Expiring:
    """Time-bounded VIP (trial or remaining trial after a downgrade)."""

    until_ms: int

    def to_vip_until(self) -> int:
        return self.until_ms

    def is_active(self, at_ms: int) -> bool:
        return self.until_ms > at_ms


@dataclass(frozen=True, slots=True)
class Lifetime:
    """Permanent, roster-approved VIP."""

    def to_vip_until(self) -> int:
        return LIFETIME_UNTIL_MS


Entitlement = NoEntitlement | Expiring | Lifetime


def entitlement_from_vip_until(vip_until: int | None) -> Entitlement:
    """Decode the persisted numeric column."""
    if not vip_until:
        return NoEntitlement()
    if vip_until >= LIFETIME_UNTIL_MS:
        return Lifetime()
    return Expiring(vip_until)


@dataclass(slots=True)
class EntitlementRecord:
    """Represents a vip_users row."""

    user_id: str
    vip_until: int = 0
    trial_until: int = 0

    @property
    def entitlement(self) -> Entitlement:
        return entitlement_from_vip_until(self.vip_until)

    @property
    def is_lifetime(self) -> bool:
        return isinstance(self.entitlement, Lifetime)


@dataclass(slots=True)
class TrialWindow:
    """Result of ensuring a member has a trial window on record."""

    user_id: str
    vip_until: int
    trial_until: int
    mutated: bool = False


@dataclass(frozen=True, slots=True)
class GuildMember:
    """The slice of a Discord guild member the sync needs."""

    id: str
    role_ids: frozenset[str] = frozenset()
    joined_at_ms: int | None = None

    def has_role(self, role_id: str) -> bool:
        return role_id in self.role_ids


@dataclass(frozen=True, slots=True)
class GuildRole:
    id: str
    name: str = ""


class SyncPhase(str, Enum):
    GRANT = "grant"
    DOWNGRADE = "downgrade"
    EXPIRY = "expiry"


@dataclass(slots=True)
class MemberOutcome:
    """What a single member's unit of work did during a pass."""

    user_id: str
    phase: SyncPhase
    status: str  # "changed", "unchanged", "skipped" or "failed"
    action: str | None = None
    error: str | None = None


@dataclass(slots=True)
class SyncSummary:
    """Counts reported back to whoever triggered a pass."""

    skipped: bool = False
    lifetime_ensured: int = 0
    lifetime_downgraded: int = 0
    expired_removed: int = 0
    failures: int = 0
    duration_ms: int = 0
    roster_size: int = 0
    outcomes: list[MemberOutcome] = field(default_factory=list)

    def record(self, outcome: MemberOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status == "failed":
            self.failures += 1
            return
        if outcome.status != "changed":
            return
        if outcome.phase is SyncPhase.GRANT:
            self.lifetime_ensured += 1
        elif outcome.phase is SyncPhase.DOWNGRADE:
            self.lifetime_downgraded += 1
        elif outcome.phase is SyncPhase.EXPIRY:
            self.expired_removed += 1

    def to_dict(self) -> dict:
        if self.skipped:
            return {"skipped": True, "reason": "already_running"}
        return {
            "skipped": False,
            "lifetime_ensured": self.lifetime_ensured,
            "lifetime_downgraded": self.lifetime_downgraded,
            "expired_removed": self.expired_removed,
            "failures": self.failures,
            "duration_ms": self.duration_ms,
            "roster_size": self.roster_size,
            "outcomes": [
                {
                    "user_id": o.user_id,
                    "phase": o.phase.value,
                    "status": o.status,
                    "action": o.action,
                    "error": o.error,
                }
                for o in self.outcomes
                if o.status in ("changed", "failed")
            ],
        }


class VipStatus(str, Enum):
    NONE = "none"
    LIFETIME = "lifetime"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class VipStatusResult:
    status: VipStatus
    until_ms: int | None = None

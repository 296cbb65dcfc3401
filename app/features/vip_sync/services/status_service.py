"""
Read-only VIP status lookup for the /status command.

Runs without the sync guard; a reply given mid-pass may be one pass stale.
"""

from app.features.vip_sync.domain import (
    Expiring,
    Lifetime,
    NoEntitlement,
    VipStatus,
    VipStatusResult,
    now_ms,
)
from app.features.vip_sync.repository import EntitlementRepository


class StatusService:
    def __init__(self, store=EntitlementRepository, clock=now_ms):
        self.store = store
        self._clock = clock

    async def get_status(self, user_id: str, now: int | None = None) -> VipStatusResult:
        now = self._clock() if now is None else now
        record = await self.store.get(user_id)
        if record is None:
            return VipStatusResult(VipStatus.NONE)

        entitlement = record.entitlement
        if isinstance(entitlement, NoEntitlement):
            return VipStatusResult(VipStatus.NONE)
        if isinstance(entitlement, Lifetime):
            return VipStatusResult(VipStatus.LIFETIME)
        if isinstance(entitlement, Expiring) and entitlement.is_active(now):
            return VipStatusResult(VipStatus.ACTIVE, until_ms=entitlement.until_ms)
        return VipStatusResult(VipStatus.EXPIRED, until_ms=entitlement.until_ms)


def format_status_message(result: VipStatusResult) -> str:
    """Reply text for the /status command."""
    if result.status is VipStatus.LIFETIME:
        return "✅ VIP status: **LIFETIME ACCESS**"
    if result.status is VipStatus.ACTIVE:
        return f"✅ VIP active until <t:{result.until_ms // 1000}:F>"
    if result.status is VipStatus.EXPIRED:
        return "❌ VIP expired."
    return "❌ You do not currently have VIP."


status_service = StatusService()

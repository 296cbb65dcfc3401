"""
Trial window lifecycle.

Every member gets one 30-day trial. trial_until is written once and then
only read: it is the floor a member keeps even after the roster stops
approving them, and automatic logic never pushes it forward.
"""

from app.config import settings
from app.features.vip_sync.domain import (
    LIFETIME_UNTIL_MS,
    TRIAL_DURATION_MS,
    Expiring,
    NoEntitlement,
    TrialWindow,
    entitlement_from_vip_until,
    now_ms,
)
from app.features.vip_sync.repository import EntitlementRepository
from app.infrastructure.observability.logging import get_logger
from app.services.discord_client import DiscordApiError, discord_client

logger = get_logger(__name__)


class TrialService:
    """Creates and backfills trial windows in the entitlement store."""

    def __init__(
        self,
        store=EntitlementRepository,
        platform=None,
        role_id: str | None = None,
        log_channel_id: str | None = None,
        clock=now_ms,
    ):
        self.store = store
        self.platform = platform or discord_client
        self.role_id = role_id or settings.VIP_ROLE_ID
        self.log_channel_id = log_channel_id if log_channel_id is not None else settings.LOG_CHANNEL_ID
        self._clock = clock

    async def ensure_trial(
        self, user_id: str, joined_at_ms: int | None, now: int | None = None
    ) -> TrialWindow:
        """
        Make sure the member has a trial window on record.

        Args:
            user_id: Discord user ID
            joined_at_ms: When the member joined the guild, if known
            now: Reference time; callers inside a sync pass pass the pass start

        Returns:
            TrialWindow with the stored values; mutated is True only when
            this call wrote to the store
        """
        now = self._clock() if now is None else now
        fallback_trial_until = (joined_at_ms or now) + TRIAL_DURATION_MS

        record = await self.store.get(user_id)

        if record is None:
            await self.store.upsert(user_id, fallback_trial_until, fallback_trial_until)
            logger.info("Trial record created", user_id=user_id, trial_until=fallback_trial_until)
            return TrialWindow(user_id, fallback_trial_until, fallback_trial_until, mutated=True)

        if not record.trial_until:
            trial_until = fallback_trial_until
            # A manually granted window still running becomes the trial floor
            if 0 < record.vip_until < LIFETIME_UNTIL_MS and record.vip_until > now:
                trial_until = record.vip_until

            await self.store.upsert(user_id, record.vip_until, trial_until)
            logger.info("Trial window backfilled", user_id=user_id, trial_until=trial_until)
            return TrialWindow(user_id, record.vip_until, trial_until, mutated=True)

        return TrialWindow(user_id, record.vip_until, record.trial_until)

    async def grant_trial_on_join(self, user_id: str, now: int | None = None) -> TrialWindow:
        """
        Handle a member joining the guild.

        First-time members get a fresh 30-day trial. Returning members keep
        whatever window they already have; the role is (re)applied only while
        that window is still open. A returning member with no VIP on record
        is left untouched, so no unused trial window is backfilled for them.

        Raises:
            RoleMutationError: If Discord rejects the role grant
        """
        now = self._clock() if now is None else now

        record = await self.store.get(user_id)
        if record is not None and isinstance(record.entitlement, NoEntitlement):
            logger.info("Rejoining member has no VIP on record", user_id=user_id)
            return TrialWindow(user_id, record.vip_until, record.trial_until)

        window = await self.ensure_trial(user_id, now, now)

        entitlement = entitlement_from_vip_until(window.vip_until)
        if isinstance(entitlement, Expiring) and not entitlement.is_active(now):
            logger.info("Rejoining member has no open VIP window", user_id=user_id)
            return window

        await self.platform.add_role(user_id, self.role_id, reason="VIP trial on join")

        if window.mutated:
            await self._announce_trial(user_id, window.trial_until)

        return window

    async def _announce_trial(self, user_id: str, trial_until: int) -> None:
        if not self.log_channel_id:
            return
        content = (
            f"✅ Gave 30-day VIP trial to <@{user_id}> until <t:{trial_until // 1000}:F>"
        )
        try:
            await self.platform.send_channel_message(self.log_channel_id, content)
        except DiscordApiError as e:
            logger.warning("Failed to post trial announcement", user_id=user_id, error=str(e))


trial_service = TrialService()

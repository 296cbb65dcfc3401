"""
VIP reconciliation between the roster sheet, Discord roles and vip_users.

A pass reads the roster and the full vip_users table once, resolves the VIP
role, then runs three phases in order over that one snapshot:

1. grant      - roster-approved members get the role and vip_until = LIFETIME
2. downgrade  - stored lifetime members no longer approved fall back to their
                remaining trial, or lose the role when the trial is over
3. expiry     - stored windows already in the past lose the role if held

Members are only ever fetched one by one; the full guild member list is
never requested. One failing member never aborts the pass, but a roster or
store read failure aborts it before anything is written.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from app.config import settings
from app.features.vip_sync.domain import (
    EntitlementRecord,
    Expiring,
    GuildRole,
    Lifetime,
    MemberOutcome,
    NoEntitlement,
    SyncPhase,
    SyncSummary,
    entitlement_from_vip_until,
    now_ms,
)
from app.features.vip_sync.repository import EntitlementRepository, EntitlementRepositoryError
from app.features.vip_sync.roster import EligibilityMap, RosterSchemaError, build_eligibility_map
from app.features.vip_sync.services.trial_service import TrialService
from app.infrastructure.observability.logging import get_logger
from app.services.discord_client import DiscordApiError, RoleMutationError, discord_client
from app.services.google_sheets_client import RosterFetchError, roster_reader

logger = get_logger(__name__)

MemberWork = Callable[[], Awaitable[MemberOutcome]]


class VipSyncError(Exception):
    """A reconciliation pass could not run to completion."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class VipReconciliationService:
    """
    Single-flight reconciliation of VIP entitlements.

    Startup, the periodic timer and the manual /reactivate command all call
    run_once(). While a pass is running any further call returns a skipped
    summary immediately; triggers are dropped, never queued.
    """

    def __init__(
        self,
        store=EntitlementRepository,
        platform=None,
        roster=None,
        role_id: str | None = None,
        trial_service: TrialService | None = None,
        max_concurrency: int | None = None,
        timeout_seconds: float | None = None,
        clock=now_ms,
    ):
        self.store = store
        self.platform = platform or discord_client
        self.roster = roster or roster_reader
        self.role_id = role_id or settings.VIP_ROLE_ID
        self.trial_service = trial_service or TrialService(
            store=store, platform=self.platform, role_id=self.role_id, clock=clock
        )
        self.max_concurrency = max(1, max_concurrency or settings.SYNC_MAX_CONCURRENCY)
        self.timeout_seconds = timeout_seconds or settings.SYNC_TIMEOUT_SECONDS
        self._clock = clock

        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_summary: SyncSummary | None = None
        self.last_error: str | None = None

    async def run_once(self) -> SyncSummary:
        """
        Run one full three-phase pass.

        Returns:
            SyncSummary; skipped=True if another pass was already running

        Raises:
            VipSyncError: If the roster, store or role could not be read, or
                the pass exceeded its timeout
        """
        return await self._run_guarded("full_sync", self._full_pass)

    async def run_expiry_sweep(self) -> SyncSummary:
        """Run only the expiry phase, without reading the roster."""
        return await self._run_guarded("expiry_sweep", self._expiry_pass)

    async def _run_guarded(
        self, pass_name: str, pass_fn: Callable[[], Awaitable[SyncSummary]]
    ) -> SyncSummary:
        # No await between the check and the set, so callers on the same
        # event loop cannot both get through.
        if self.is_running:
            logger.warning("VIP sync already running, skipping this trigger", pass_name=pass_name)
            return SyncSummary(skipped=True)

        self.is_running = True
        try:
            summary = await asyncio.wait_for(pass_fn(), timeout=self.timeout_seconds)

        except TimeoutError as e:
            self.last_error = f"{pass_name} timed out after {self.timeout_seconds}s"
            logger.error("VIP sync pass timed out", pass_name=pass_name, timeout=self.timeout_seconds)
            raise VipSyncError(self.last_error, operation=pass_name) from e
        except VipSyncError as e:
            self.last_error = str(e)
            logger.error("VIP sync pass aborted", pass_name=pass_name, error=str(e), operation=e.operation)
            raise
        except Exception as e:
            self.last_error = f"{type(e).__name__}: {e}"
            logger.error("VIP sync pass failed", pass_name=pass_name, error=str(e), error_type=type(e).__name__)
            raise VipSyncError(f"VIP sync failed: {e}", operation=pass_name) from e

        finally:
            self.is_running = False

        self.last_run_time = datetime.now(UTC)
        self.last_summary = summary
        self.last_error = None
        return summary

    async def _read_eligibility(self) -> EligibilityMap:
        try:
            rows = await self.roster.fetch_rows()
            return build_eligibility_map(rows)
        except RosterSchemaError as e:
            raise VipSyncError(
                f"Roster schema error: {e}", operation="read_roster", recoverable=False
            ) from e
        except RosterFetchError as e:
            raise VipSyncError(f"Roster unavailable: {e}", operation="read_roster") from e

    async def _read_snapshot(self) -> list[EntitlementRecord]:
        try:
            return await self.store.list_all()
        except EntitlementRepositoryError as e:
            raise VipSyncError(f"Entitlement store unavailable: {e}", operation="read_store") from e

    async def _resolve_role(self) -> GuildRole:
        try:
            role = await self.platform.get_role(self.role_id)
        except DiscordApiError as e:
            raise VipSyncError(f"VIP role lookup failed: {e}", operation="resolve_role") from e

        if role is None:
            raise VipSyncError(
                "VIP role not found. Check VIP_ROLE_ID and role hierarchy.",
                operation="resolve_role",
                recoverable=False,
            )
        return role

    async def _full_pass(self) -> SyncSummary:
        started = time.monotonic()
        # One reference time for the whole pass so trial floors cannot drift
        now = self._clock()

        eligibility = await self._read_eligibility()
        snapshot = await self._read_snapshot()
        role = await self._resolve_role()

        summary = SyncSummary(roster_size=len(eligibility))
        semaphore = asyncio.Semaphore(self.max_concurrency)

        logger.info(
            "Starting VIP sync pass",
            roster_size=len(eligibility),
            stored_records=len(snapshot),
            max_concurrency=self.max_concurrency,
        )

        approved_ids = [user_id for user_id, approved in eligibility.items() if approved]
        grant_outcomes = await self._run_phase(
            SyncPhase.GRANT,
            semaphore,
            summary,
            {user_id: self._make_grant(user_id, role, now) for user_id in approved_ids},
        )
        granted_ids = {o.user_id for o in grant_outcomes if o.status in ("changed", "unchanged")}

        revoked = [
            record
            for record in snapshot
            if record.is_lifetime and eligibility.get(record.user_id) is not True
        ]
        await self._run_phase(
            SyncPhase.DOWNGRADE,
            semaphore,
            summary,
            {record.user_id: self._make_downgrade(record, role, now) for record in revoked},
        )

        # Expiry reads the pre-pass snapshot, minus members granted lifetime above
        expired = [
            record
            for record in self._expired_records(snapshot, now)
            if record.user_id not in granted_ids
        ]
        await self._run_phase(
            SyncPhase.EXPIRY,
            semaphore,
            summary,
            {record.user_id: self._make_expiry(record, role) for record in expired},
        )

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        return summary

    async def _expiry_pass(self) -> SyncSummary:
        started = time.monotonic()
        now = self._clock()

        snapshot = await self._read_snapshot()
        role = await self._resolve_role()

        summary = SyncSummary()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        await self._run_phase(
            SyncPhase.EXPIRY,
            semaphore,
            summary,
            {record.user_id: self._make_expiry(record, role) for record in self._expired_records(snapshot, now)},
        )

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        return summary

    @staticmethod
    def _expired_records(snapshot: list[EntitlementRecord], now: int) -> list[EntitlementRecord]:
        return [
            record
            for record in snapshot
            if isinstance(record.entitlement, Expiring) and not record.entitlement.is_active(now)
        ]

    async def _run_phase(
        self,
        phase: SyncPhase,
        semaphore: asyncio.Semaphore,
        summary: SyncSummary,
        work: dict[str, MemberWork],
    ) -> list[MemberOutcome]:
        """Run one phase to completion; per-member work is isolated and bounded."""
        outcomes = await asyncio.gather(
            *(self._isolated(semaphore, phase, user_id, fn) for user_id, fn in work.items())
        )
        for outcome in outcomes:
            summary.record(outcome)

        logger.debug(
            "VIP sync phase finished",
            phase=phase.value,
            members=len(outcomes),
            changed=sum(1 for o in outcomes if o.status == "changed"),
            failed=sum(1 for o in outcomes if o.status == "failed"),
        )
        return list(outcomes)

    async def _isolated(
        self,
        semaphore: asyncio.Semaphore,
        phase: SyncPhase,
        user_id: str,
        fn: MemberWork,
    ) -> MemberOutcome:
        async with semaphore:
            try:
                return await fn()

            except RoleMutationError as e:
                logger.warning(
                    "Discord rejected VIP role change",
                    user_id=user_id,
                    phase=phase.value,
                    status_code=e.status_code,
                    error=str(e),
                )
                return MemberOutcome(user_id, phase, "failed", action=e.operation, error=str(e))

            except Exception as e:
                logger.error(
                    "VIP sync member processing error",
                    user_id=user_id,
                    phase=phase.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return MemberOutcome(user_id, phase, "failed", error=f"{type(e).__name__}: {e}")

    def _make_grant(self, user_id: str, role: GuildRole, now: int) -> MemberWork:
        return lambda: self._grant_lifetime(user_id, role, now)

    def _make_downgrade(self, record: EntitlementRecord, role: GuildRole, now: int) -> MemberWork:
        return lambda: self._downgrade_lifetime(record, role, now)

    def _make_expiry(self, record: EntitlementRecord, role: GuildRole) -> MemberWork:
        return lambda: self._remove_expired(record, role)

    async def _grant_lifetime(self, user_id: str, role: GuildRole, now: int) -> MemberOutcome:
        member = await self.platform.fetch_member(user_id)
        if member is None:
            return MemberOutcome(user_id, SyncPhase.GRANT, "skipped", action="member_not_found")

        role_added = False
        if not member.has_role(role.id):
            await self.platform.add_role(user_id, role.id, reason="Lifetime VIP approved")
            role_added = True

        window = await self.trial_service.ensure_trial(user_id, member.joined_at_ms, now)

        record_updated = not isinstance(entitlement_from_vip_until(window.vip_until), Lifetime)
        if record_updated:
            await self.store.upsert(user_id, Lifetime().to_vip_until(), window.trial_until)

        if role_added or record_updated or window.mutated:
            logger.info("Lifetime VIP ensured", user_id=user_id, role_added=role_added)
            return MemberOutcome(user_id, SyncPhase.GRANT, "changed", action="lifetime_granted")
        return MemberOutcome(user_id, SyncPhase.GRANT, "unchanged")

    async def _downgrade_lifetime(
        self, record: EntitlementRecord, role: GuildRole, now: int
    ) -> MemberOutcome:
        user_id = record.user_id
        member = await self.platform.fetch_member(user_id)
        if member is None:
            # Not found also covers rate limits; a later pass retries
            return MemberOutcome(user_id, SyncPhase.DOWNGRADE, "skipped", action="member_not_found")

        trial_until = record.trial_until
        if not trial_until:
            window = await self.trial_service.ensure_trial(user_id, member.joined_at_ms, now)
            trial_until = window.trial_until

        if trial_until > now:
            if not member.has_role(role.id):
                await self.platform.add_role(user_id, role.id, reason="Lifetime VIP revoked, trial remains")
            await self.store.upsert(user_id, Expiring(trial_until).to_vip_until(), trial_until)
            logger.info("Lifetime VIP downgraded to trial", user_id=user_id, trial_until=trial_until)
            return MemberOutcome(user_id, SyncPhase.DOWNGRADE, "changed", action="demoted_to_trial")

        if member.has_role(role.id):
            await self.platform.remove_role(user_id, role.id, reason="Lifetime VIP revoked")
        await self.store.upsert(user_id, NoEntitlement().to_vip_until(), trial_until)
        logger.info("Lifetime VIP revoked", user_id=user_id)
        return MemberOutcome(user_id, SyncPhase.DOWNGRADE, "changed", action="vip_removed")

    async def _remove_expired(self, record: EntitlementRecord, role: GuildRole) -> MemberOutcome:
        user_id = record.user_id
        member = await self.platform.fetch_member(user_id)
        if member is None:
            return MemberOutcome(user_id, SyncPhase.EXPIRY, "skipped", action="member_not_found")

        if not member.has_role(role.id):
            return MemberOutcome(user_id, SyncPhase.EXPIRY, "unchanged")

        await self.platform.remove_role(user_id, role.id, reason="VIP expired")
        logger.info("Expired VIP role removed", user_id=user_id, vip_until=record.vip_until)
        return MemberOutcome(user_id, SyncPhase.EXPIRY, "changed", action="role_removed")

    def get_job_status(self) -> dict:
        """Current guard state and the last pass result."""
        return {
            "job_name": "vip_sync",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "last_error": self.last_error,
            "interval_minutes": settings.SYNC_INTERVAL_MINUTES,
            "max_concurrency": self.max_concurrency,
            "last_summary": (
                {k: v for k, v in self.last_summary.to_dict().items() if k != "outcomes"}
                if self.last_summary
                else None
            ),
        }


# Singleton instance for application use
vip_reconciliation_service = VipReconciliationService()

"""
VIP sync scheduler.

Runs one full pass at startup, then every SYNC_INTERVAL_MINUTES. A second
loop runs the cheaper expiry sweep every EXPIRY_SWEEP_INTERVAL_MINUTES so
expired trials lose the role even while the roster sheet is unreachable.
Both go through the same single-flight guard as the /reactivate command.
"""

import asyncio

from app.config import settings
from app.features.vip_sync.services import VipSyncError, vip_reconciliation_service
from app.infrastructure.observability.logging import get_logger, log_sync_summary

logger = get_logger(__name__)


async def run_vip_sync(trigger: str = "manual") -> dict:
    """Run a single full pass and log its summary."""
    summary = await vip_reconciliation_service.run_once()
    result = summary.to_dict()
    log_sync_summary(trigger, result)
    return result


async def run_expiry_sweep(trigger: str = "expiry_sweep") -> dict:
    """Run the expiry phase on its own and log its summary."""
    summary = await vip_reconciliation_service.run_expiry_sweep()
    result = summary.to_dict()
    log_sync_summary(trigger, result)
    return result


async def _sync_loop() -> None:
    interval_seconds = settings.SYNC_INTERVAL_MINUTES * 60
    trigger = "startup"

    while True:
        try:
            await run_vip_sync(trigger)
        except VipSyncError as e:
            logger.error("VIP sync failed", trigger=trigger, error=str(e), operation=e.operation)
        except Exception as e:
            logger.error("Error in VIP sync scheduler", error=str(e), error_type=type(e).__name__)

        trigger = "interval"
        await asyncio.sleep(interval_seconds)


async def _expiry_loop() -> None:
    interval_seconds = settings.EXPIRY_SWEEP_INTERVAL_MINUTES * 60

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_expiry_sweep()
        except VipSyncError as e:
            logger.error("VIP expiry sweep failed", error=str(e), operation=e.operation)
        except Exception as e:
            logger.error("Error in VIP expiry scheduler", error=str(e), error_type=type(e).__name__)


async def start_vip_sync_scheduler() -> None:
    """
    Entry point for the VIP sync worker.

    Runs until cancelled; individual pass failures are logged and the next
    interval tries again.
    """
    logger.info(
        "Starting VIP sync scheduler",
        interval_minutes=settings.SYNC_INTERVAL_MINUTES,
        expiry_sweep_minutes=settings.EXPIRY_SWEEP_INTERVAL_MINUTES,
    )
    await asyncio.gather(_sync_loop(), _expiry_loop())


if __name__ == "__main__":
    asyncio.run(start_vip_sync_scheduler())

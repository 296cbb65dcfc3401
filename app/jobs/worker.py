"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the appropriate job.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.config import settings
from app.db.pool import db_pool
from app.features.vip_sync.jobs import run_expiry_sweep, run_vip_sync, start_vip_sync_scheduler
from app.features.vip_sync.repository import EntitlementRepository
from app.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]


def _with_database(job: Callable[[], Awaitable[object]]) -> JobCoroutine:
    """Open the pool and ensure the schema around a job."""

    async def _runner() -> None:
        await db_pool.initialize()
        try:
            await EntitlementRepository.ensure_schema()
            await job()
        finally:
            await db_pool.close()

    return _runner


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "vip_sync": _with_database(start_vip_sync_scheduler),
    "vip_sync_once": _with_database(lambda: run_vip_sync("cli")),
    "vip_expiry_sweep": _with_database(lambda: run_expiry_sweep("cli")),
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "vip_sync").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.log_level)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()

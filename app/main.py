"""
FastAPI application: Discord interactions, member-join relay and health.

The lifespan opens the database pool, ensures the vip_users schema,
registers the guild slash commands and, unless disabled, runs the VIP sync
scheduler in-process.
"""

import asyncio
import contextlib
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import db_pool
from app.features.vip_sync.api import SLASH_COMMANDS
from app.features.vip_sync.api import router as vip_sync_router
from app.features.vip_sync.jobs import start_vip_sync_scheduler
from app.features.vip_sync.repository import EntitlementRepository
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.routes import health
from app.services.discord_client import DiscordApiError, discord_client
from app.services.google_sheets_client import roster_reader

setup_logging(log_level=settings.log_level)
logger = get_logger(__name__)


async def _register_commands() -> None:
    try:
        await discord_client.register_guild_commands(SLASH_COMMANDS)
    except DiscordApiError as e:
        logger.error("Slash command registration failed", error=str(e), status_code=e.status_code)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    missing = settings.missing_discord_settings()
    if missing:
        logger.warning("Discord settings missing", missing=missing)

    try:
        await db_pool.initialize()
        await EntitlementRepository.ensure_schema()
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        await db_pool.close()
        raise

    if settings.DISCORD_APPLICATION_ID and not missing:
        await _register_commands()

    scheduler_task: asyncio.Task | None = None
    if settings.RUN_SCHEDULER_IN_APP:
        scheduler_task = asyncio.create_task(start_vip_sync_scheduler(), name="vip-sync-scheduler")

    yield

    logger.info("Application shutting down")

    if scheduler_task:
        scheduler_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await scheduler_task

    shutdown_errors = []
    for name, close in (
        ("discord", discord_client.close),
        ("sheets", roster_reader.close),
        ("database", db_pool.close),
    ):
        try:
            await close()
        except Exception as e:
            logger.error("Error closing client", client=name, error=str(e))
            shutdown_errors.append(f"{name}: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="VIP Roster Sync",
    description="Keeps the Discord VIP role in step with the approval roster and trial windows",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(vip_sync_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
Health check endpoints with database pool and sync job monitoring.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.db.pool import db_health_check
from app.features.vip_sync.services import vip_reconciliation_service

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "vip-roster-sync"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check: database pool, Discord configuration and last sync.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Configuration
    missing = settings.missing_discord_settings()
    if not settings.SHEET_ID:
        missing.append("SHEET_ID")
    checks["configuration"] = {
        "ok": not missing,
        "issues": [f"{name} not set" for name in missing] or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and not missing

    # 3) Sync job; a failing last pass is reported but does not fail readiness
    job_status = vip_reconciliation_service.get_job_status()
    checks["vip_sync"] = {
        "ok": job_status["last_error"] is None,
        "is_running": job_status["is_running"],
        "last_run_time": job_status["last_run_time"],
        "last_error": job_status["last_error"],
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/vip-sync")
async def vip_sync_status():
    """Guard state and counts from the last reconciliation pass."""
    return vip_reconciliation_service.get_job_status()

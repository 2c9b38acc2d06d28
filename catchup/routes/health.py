"""
Liveness and readiness endpoints.

/readyz reports the pool, the suggestion tables and the token configuration;
it always answers 200 and carries the verdict in ``overall_ok``.
"""

import time

from fastapi import APIRouter

from catchup.config import settings
from catchup.db.helpers import fetch_one
from catchup.db.pool import db_pool

router = APIRouter()

REQUIRED_TABLES = ("suggestion_batches", "suggestions", "suggestion_contacts")


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "catchup-engine"}


async def _check_database() -> dict:
    t0 = time.time()
    try:
        db_health = await db_pool.health_check()
    except Exception as e:
        return {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }

    check = {"ok": db_health.get("healthy", False), "latency_ms": round((time.time() - t0) * 1000, 1)}
    if "pool_stats" in db_health:
        check["pool_stats"] = db_health["pool_stats"]
    if not check["ok"]:
        check["error"] = db_health.get("error", "Database unhealthy")
    return check


async def _check_schema() -> dict:
    columns = ", ".join(f"to_regclass('public.{name}') IS NOT NULL AS {name}" for name in REQUIRED_TABLES)
    try:
        row = await fetch_one(f"SELECT {columns}")
    except Exception as e:
        return {"ok": False, "error": f"{type(e).__name__}: {e}"}

    missing = [name for name in REQUIRED_TABLES if not (row or {}).get(name)]
    return {"ok": not missing, "missing_tables": missing or None}


def _check_configuration() -> dict:
    issues = []
    if not settings.JWT_SECRET:
        issues.append("JWT_SECRET not set")
    return {"ok": not issues, "issues": issues or None, "environment": settings.environment}


@router.get("/readyz")
async def readyz():
    """Readiness check covering the database pool, schema and configuration."""
    checks = {"database": await _check_database()}
    if checks["database"]["ok"]:
        checks["schema"] = await _check_schema()
    checks["configuration"] = _check_configuration()

    overall_ok = all(check["ok"] for check in checks.values())
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}

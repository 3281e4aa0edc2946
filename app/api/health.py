"""Health and readiness endpoints.

  /health (liveness)
    Always 200 while the process can answer.  The body reports each
    dependency so a dashboard can show "alive but degraded".

  /ready (readiness)
    503 when the database is configured but unreachable: without it no
    submission can commit, so the load balancer should route elsewhere.
    Redis only backs the read cache, so its loss never fails readiness.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from app.db import engine as db_engine
from app.db import redis as db_redis

router = APIRouter(tags=["health"])


async def _dependency_checks() -> dict[str, str]:
    checks: dict[str, str] = {}
    if db_engine.engine is None:
        checks["database"] = "in_memory"
    else:
        checks["database"] = "ok" if await db_engine.ping_database() else "degraded"
    if db_redis.redis_pool is None:
        checks["redis"] = "not_configured"
    else:
        checks["redis"] = "ok" if await db_redis.ping_redis() else "degraded"
    return checks


@router.get("/health")
async def health() -> dict:
    """Liveness probe + dependency status.

    Returns 200 even when degraded; the status field carries the verdict.
    """
    checks = await _dependency_checks()
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe: 503 if the progress database is unreachable."""
    checks = await _dependency_checks()
    if checks["database"] == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)

"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready). Readiness checks
Redis connectivity and reports whether the activity type catalog is warm; a
cold catalog is reported but does not fail readiness.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.subject_sync.api.deps import get_app_settings
from src.subject_sync.core.redis import get_redis_pool

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Basic liveness check. No external dependencies are checked."""
    settings = get_app_settings(request)
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check Redis and the type catalog. Returns check results dict."""
    checks: dict = {"redis": "ok", "catalog": "cold", "poller": "disabled"}

    try:
        redis = getattr(request.app.state, "redis", None) or get_redis_pool()
        pong = await redis.ping()
        if not pong:
            checks["redis"] = "error"
            checks["redis_error"] = "PING did not return PONG"
    except Exception as e:
        checks["redis"] = "error"
        checks["redis_error"] = str(e)

    catalog = getattr(request.app.state, "catalog", None)
    if catalog is not None and catalog.is_warm:
        checks["catalog"] = "warm"

    poller = getattr(request.app.state, "poller", None)
    if poller is not None and getattr(request.app.state, "poller_started", False):
        checks["poller"] = "running" if poller.running else "idle"
        checks["poll_cursor"] = poller.cursor.isoformat() if poller.cursor else None

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: 200 if Redis answers, 503 otherwise."""
    checks = await _check_dependencies(request)
    healthy = checks.get("redis") == "ok"

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if healthy else "degraded",
            "checks": checks,
        },
    )

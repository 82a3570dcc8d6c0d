# recall/routes/health.py
"""
Health check endpoints.
"""

import time

from fastapi import APIRouter

from recall.dependencies import openai_service
from recall.services.infrastructure.redis_client import redis_client

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "recall-backend"}


@router.get("/readyz")
async def readyz():
    """Readiness check: language backend configuration and Redis, when configured."""
    checks = {"openai": {"ok": openai_service.is_configured()}}

    if redis_client.enabled:
        t0 = time.time()
        redis_ok = await redis_client.ping()
        checks["redis"] = {"ok": redis_ok, "latency_ms": round((time.time() - t0) * 1000, 1)}

    overall_ok = all(check["ok"] for check in checks.values())
    return {"status": "ready" if overall_ok else "degraded", "checks": checks}

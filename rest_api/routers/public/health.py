"""
Health check endpoints for the REST API.
Provides basic and detailed health status of the service and its dependencies.
"""

import asyncio

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shared.config.settings import settings
from shared.infrastructure.db import get_db_context
from shared.infrastructure.events import get_redis_pool
from rest_api.services.aggregator import get_breaker_stats

CHECK_TIMEOUT_SECONDS = 3.0

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.
    Returns service status without checking dependencies.
    """
    return {
        "status": "healthy",
        "service": "rest-api",
        "environment": settings.environment,
    }


async def check_database_health() -> dict:
    async with get_db_context() as db:
        await db.execute(text("SELECT 1"))
    return {"status": "healthy"}


async def check_redis_health() -> dict:
    if not settings.redis_events_enabled:
        return {"status": "disabled"}
    redis = await get_redis_pool()
    await redis.ping()
    return {"status": "healthy"}


async def _run_check(check) -> dict:
    try:
        return await asyncio.wait_for(check(), timeout=CHECK_TIMEOUT_SECONDS)
    except Exception as e:
        return {"status": "unhealthy", "error": str(e) or type(e).__name__}


@router.get("/health/detailed")
async def detailed_health_check():
    """
    Verifies connectivity to the database and Redis and reports the bridge
    circuit breaker.

    Returns 503 if the database is down. Redis only carries dashboard
    events, so a Redis outage degrades the service without failing it.
    """
    database, redis = await asyncio.gather(
        _run_check(check_database_health),
        _run_check(check_redis_health),
    )

    checks = {
        "service": "rest-api",
        "environment": settings.environment,
        "dependencies": {"database": database, "redis": redis},
        "aggregator_bridge": get_breaker_stats(),
    }

    if database["status"] != "healthy":
        checks["status"] = "unhealthy"
        return JSONResponse(content=checks, status_code=503)

    checks["status"] = "healthy" if redis["status"] != "unhealthy" else "degraded"
    return checks

"""Health check endpoint.

Verifies connectivity to the database and Redis, returns structured status
plus realtime hub counters. Used by Docker healthchecks, load balancers,
and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text

from aetherlock.api.deps import get_container
from aetherlock.bootstrap import Container
from aetherlock.logging_config import get_logger
from aetherlock.schemas.escrow import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(container: Container = Depends(get_container)) -> HealthResponse:
    """Check connectivity to the database and Redis."""
    db_status = "disabled"
    redis_status = "disabled"

    if container.engine is not None:
        try:
            async with container.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            db_status = "healthy"
        except Exception as exc:
            db_status = f"unhealthy: {exc}"
            logger.error("health.db_check_failed", error=str(exc))

    if container.redis is not None:
        try:
            await container.redis.ping()
            redis_status = "healthy"
        except Exception as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    checks = (db_status, redis_status)
    overall = "degraded" if any(c.startswith("unhealthy") for c in checks) else "ok"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        database=db_status,
        redis=redis_status,
        realtime=container.hub.stats(),
    )

"""
SupplyGuard Backend — Health Check Route
==========================================

What:  Health check endpoint for monitoring and load balancer probes.
Why:   Load balancers route away from instances that report unhealthy.
How:   Probes the database and reports in-process cache and limiter state.
Who:   Docker health checks, load balancers, monitoring dashboards.

Status levels:
    - healthy:  database reachable (HTTP 200)
    - degraded: database unreachable (HTTP 200). The gateway still limits,
                caches and forwards requests; only audit persistence is lost,
                so the instance should stay in rotation but be flagged.

Not rate limited: RateLimitMiddleware excludes /health.
"""

import logging
import time

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from supplyguard import __version__
from supplyguard.dependencies import get_rate_limiters, get_response_cache
from supplyguard.schemas.system import HealthResponse
from supplyguard.services.rate_limiter import RateLimiterRegistry
from supplyguard.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description=(
        "Returns the health of the gateway and its database, plus the size of "
        "the in-process response cache and rate limit tables."
    ),
)
async def health_check(
    request: Request,
    cache: ResponseCache = Depends(get_response_cache),
    limiters: RateLimiterRegistry = Depends(get_rate_limiters),
) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with request.app.state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "degraded"
        logger.warning("Health check: database unreachable: %s", str(e))

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        cache_entries=len(cache.store),
        rate_limit_keys=limiters.tracked_keys(),
        uptime_seconds=round(time.time() - request.app.state.started_at, 2),
    )

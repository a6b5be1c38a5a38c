"""
SupplyGuard Backend — Cache Administration Routes
===================================================

What:  Inspect and flush the response cache.
Why:   Operators need to clear stale dashboard data after out-of-band changes
       (a bulk import or a manual DB fix) without restarting the process.
Who:   Admin tooling. Both routes sit behind the "strict" limiter, and the
       response cache middleware never caches /api/cache itself.

Routes:
    GET    /api/cache/stats  → entry counts, TTL, hit/miss counters
    DELETE /api/cache        → remove every entry
"""

from fastapi import APIRouter, Depends

from supplyguard.dependencies import get_response_cache, require_rate_limit
from supplyguard.schemas.system import (
    CacheFlushResponse,
    CacheFlushResult,
    CacheStatsResponse,
)
from supplyguard.services.response_cache import ResponseCache

router = APIRouter(
    prefix="/api/cache",
    tags=["Cache"],
    dependencies=[Depends(require_rate_limit("strict"))],
)


@router.get(
    "/stats",
    response_model=CacheStatsResponse,
    summary="Response cache statistics",
)
async def cache_stats(cache: ResponseCache = Depends(get_response_cache)) -> CacheStatsResponse:
    return CacheStatsResponse(data=cache.stats())


@router.delete(
    "",
    response_model=CacheFlushResponse,
    summary="Flush the response cache",
)
async def flush_cache(cache: ResponseCache = Depends(get_response_cache)) -> CacheFlushResponse:
    """Removes every entry. AuditTrailMiddleware records the call as API_CALL."""
    cleared = cache.clear()
    return CacheFlushResponse(
        data=CacheFlushResult(cleared=cleared, message=f"Cleared {cleared} cached responses"),
    )

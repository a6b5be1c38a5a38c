"""
SupplyGuard Backend — FastAPI Dependencies
============================================

What:  Accessors for the components create_app() attaches to app.state, and
       the per-route rate limit dependency.
Why:   Routes declare what they need with Depends() instead of importing
       module-level singletons, so tests can build an app with fakes.
"""

from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.routing import BaseRoute

from supplyguard.exceptions import RateLimitExceededError
from supplyguard.middleware.rate_limit import client_key
from supplyguard.schemas.rate_limit import RateLimitDecision
from supplyguard.services.backup_codes import BackupCodeManager
from supplyguard.services.rate_limiter import RateLimiterRegistry
from supplyguard.services.response_cache import ResponseCache
from supplyguard.services.security_monitor import SecurityEvent, record_security_event


def get_rate_limiters(request: Request) -> RateLimiterRegistry:
    return request.app.state.rate_limiters


def get_response_cache(request: Request) -> ResponseCache:
    return request.app.state.response_cache


def get_backup_codes(request: Request) -> BackupCodeManager:
    return request.app.state.backup_codes


def require_rate_limit(name: str) -> Callable[..., Awaitable[RateLimitDecision]]:
    """
    Build a dependency that applies the named limiter to one route.

    Usage:
        @router.delete("/api/cache", dependencies=[Depends(require_rate_limit("strict"))])

    On admission the X-RateLimit-* headers are added to the route's response.
    On denial a security event is recorded and RateLimitExceededError is
    raised; the global handler renders it as the standard 429 envelope.

    Raises:
        KeyError: at request time, if no limiter with that name is registered
    """

    async def dependency(request: Request, response: Response) -> RateLimitDecision:
        limiter = get_rate_limiters(request)[name]
        decision = limiter.admit(client_key(request))

        if not decision.allowed:
            record_security_event(
                request,
                SecurityEvent.RATE_LIMIT_EXCEEDED,
                {
                    "limiter": name,
                    "count": decision.count,
                    "limit": decision.limit,
                    "retry_after": decision.retry_after,
                },
            )
            raise RateLimitExceededError(
                retry_after=decision.retry_after or 1,
                decision=decision,
                context={"limiter": name},
            )

        for header, value in decision.headers().items():
            response.headers[header] = value
        return decision

    dependency.limiter_name = name  # type: ignore[attr-defined]
    return dependency


def is_rate_limited_route(route: BaseRoute) -> bool:
    """
    True when the route, or its router, depends on require_rate_limit().

    ResponseCacheMiddleware never caches these paths: a cache hit would answer
    without running the dependency, so the limiter would never count it.
    """
    dependant = getattr(route, "dependant", None)
    if dependant is None:
        return False
    pending = list(dependant.dependencies)
    while pending:
        sub = pending.pop()
        if getattr(sub.call, "limiter_name", None) is not None:
            return True
        pending.extend(sub.dependencies)
    return False

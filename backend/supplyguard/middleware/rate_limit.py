"""
SupplyGuard Backend — Rate Limiting Middleware
================================================

What:  Applies the general "api" limiter to every request.
Why:   Protects the API from abuse before any handler, cache or DB work runs.
How:   RateLimiter.admit() per client key; allowed requests continue with
       X-RateLimit-* headers added, denied ones get the 429 error envelope.
When:  After request ID / logging / security headers, before GZip, CORS and
       the response cache.

Excluded paths:
    /health, /docs, /openapi.json, /redoc: probes and API docs must stay
    reachable even for a throttled client.

Route-level limiters:
    Sensitive routes add require_rate_limit("strict" | "auth" | "webhook").
    Their headers are set first (inside the handler's response), and this
    middleware does not overwrite them, so clients see the tighter limit.

Client key:
    request.client.host, the transport-level remote address. Behind a proxy
    this is the proxy's address; configure uvicorn's --proxy-headers with a
    trusted forwarder list rather than reading X-Forwarded-For here.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import HTTPConnection, Request
from starlette.responses import Response
from starlette.types import ASGIApp

from supplyguard.exceptions import RateLimitExceededError
from supplyguard.responses import error_response
from supplyguard.services.rate_limiter import RateLimiter
from supplyguard.services.security_monitor import SecurityEvent, record_security_event

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def client_key(request: HTTPConnection) -> str:
    """Remote address of the connection, or "unknown" when the transport has none."""
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Global fixed-window limiter.

    Args:
        limiter: Usually the "api" limiter from app.state.rate_limiters
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app: ASGIApp, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        decision = self.limiter.admit(client_key(request))

        if not decision.allowed:
            record_security_event(
                request,
                SecurityEvent.RATE_LIMIT_EXCEEDED,
                {
                    "limiter": self.limiter.name,
                    "count": decision.count,
                    "limit": decision.limit,
                    "retry_after": decision.retry_after,
                },
            )
            return error_response(
                status_code=RateLimitExceededError.status_code,
                code=RateLimitExceededError.code,
                message="Too many requests, please try again later.",
                retry_after=decision.retry_after,
                headers=decision.headers(),
            )

        response = await call_next(request)
        for name, value in decision.headers().items():
            response.headers.setdefault(name, value)
        return response

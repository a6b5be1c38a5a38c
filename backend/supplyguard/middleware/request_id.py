"""
SupplyGuard Backend — Request ID Middleware
=============================================

What:  Assigns a short ID to each incoming request and returns it in a header.
Why:   Every log line, security event and error body for one request carries
       the same ID, so support can go from a client's 429 body straight to
       the matching server logs.
How:   Reuses the client's X-Request-ID or generates one, stores it in a
       ContextVar and request.state, and echoes it on the response.
When:  Outermost middleware: it must run before the rate limiter, whose 429
       body includes requestId.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID header when present
        2. Otherwise generate an 8-character ID (short enough to read in logs)
        3. Store in request_id_var and request.state.request_id
        4. Add X-Request-ID to the response
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response

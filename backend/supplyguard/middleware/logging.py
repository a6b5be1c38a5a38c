"""
SupplyGuard Backend — Request Logging Middleware
==================================================

What:  One structured access-log line per HTTP request.
Why:   Monitoring, alerting and performance analysis; the request ID ties the
       line to security events and audit records for the same request.
How:   Times the request, then logs method, path, status and duration on the
       `supplyguard.access` logger. Slow requests get an extra warning.
When:  After RequestIDMiddleware, so the request ID is available.

Log levels by status:
    5xx → ERROR, 4xx → WARNING (429s show up here too), else INFO

What we log vs what we DON'T log (privacy):
    ✅ Log: method, path, status, duration, IP, request ID
    ❌ Don't log: request body, query values, Authorization / Cookie headers
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from supplyguard.middleware.request_id import request_id_var

logger = logging.getLogger("supplyguard.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request with its status and duration.

    Args:
        slow_request_threshold_ms: Requests slower than this also log a
            "Slow request detected" warning
    """

    # Health probes run every few seconds; logging them buries real traffic
    QUIET_PATHS = {"/health"}

    def __init__(self, app: ASGIApp, slow_request_threshold_ms: float = 1000):
        super().__init__(app)
        self.slow_request_threshold_ms = slow_request_threshold_ms

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        if duration_ms > self.slow_request_threshold_ms:
            logger.warning(
                "Slow request detected: %s %s took %.0fms [%s]",
                method,
                path,
                duration_ms,
                rid,
            )

        return response

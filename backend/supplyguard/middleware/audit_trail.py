"""
SupplyGuard Backend — Audit Trail Middleware
==============================================

What:  Records an API_CALL audit event for every mutating API request.
Why:   Tenants need a compliance record of who changed what, including
       rejected writes.
How:   After the handler responds, AuditLogger.submit() schedules the write
       as a background task; the response is never held for it. A route that
       crashes reaches this layer as the 500 from UnhandledErrorMiddleware and
       is recorded as a failure.

Identity:
    user_id / company_id come from request.state, set by the upstream
    authenticator. Anonymous calls are recorded with both left empty.
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from supplyguard.schemas.audit import API_CALL_ACTION, AuditEvent
from supplyguard.services.audit_logger import AuditLogger
from supplyguard.services.response_cache import is_under_prefix

READ_ONLY_METHODS = {"GET", "HEAD", "OPTIONS"}


class AuditTrailMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, audit_logger: AuditLogger, path_prefix: str = "/api"):
        super().__init__(app)
        self.audit_logger = audit_logger
        self.path_prefix = path_prefix

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        method = request.method.upper()
        path = request.url.path
        if method in READ_ONLY_METHODS or not is_under_prefix(path, self.path_prefix):
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

        self.audit_logger.submit(
            AuditEvent(
                action=API_CALL_ACTION,
                success=response.status_code < 400,
                user_id=getattr(request.state, "user_id", None),
                company_id=getattr(request.state, "company_id", None),
                details={
                    "endpoint": path,
                    "method": method,
                    "response_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            ),
            request,
        )
        return response

"""
SupplyGuard Backend — Unhandled Error Middleware
==================================================

What:  Turns any exception a route lets escape into the standard 500 envelope.
Why:   Starlette runs the app-level Exception handler from ServerErrorMiddleware,
       which sits outside every user middleware. A response built there skips
       the request id echo, the security headers, the access log and the audit
       trail.
How:   Registered innermost, so the 500 it returns travels back out through the
       whole chain like any other response.

SupplyGuardError subclasses and HTTPException never get here: FastAPI's
ExceptionMiddleware (inside this one) renders them first.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from supplyguard.middleware.request_id import request_id_var
from supplyguard.responses import error_response

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again or contact support."


def unexpected_error_response(request: Request, exc: Exception) -> Response:
    """Log the stack trace and build the generic 500 envelope."""
    rid = request_id_var.get("")
    logger.error(
        "[%s] Unexpected error on %s %s: %s",
        rid,
        request.method,
        request.url.path,
        str(exc),
        exc_info=exc,
    )
    return error_response(
        status_code=500,
        code="INTERNAL_SERVER_ERROR",
        message=UNEXPECTED_ERROR_MESSAGE,
    )


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return unexpected_error_response(request, exc)

"""
SupplyGuard Backend — Error Response Builder
==============================================

What:  Builds the standard error envelope as a JSONResponse.
Why:   The rate-limit middleware (which answers before any route runs) and the
       global exception handlers must produce byte-for-byte the same shape.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi.responses import JSONResponse

from supplyguard.middleware.request_id import request_id_var
from supplyguard.schemas.rate_limit import ErrorDetail, ErrorEnvelope


def current_request_id() -> str:
    """Request ID set by RequestIDMiddleware, or a fresh one outside a request."""
    rid = request_id_var.get("")
    if not rid:
        rid = str(uuid.uuid4())[:8]
    return rid


def error_response(
    status_code: int,
    code: str,
    message: str,
    retry_after: Optional[int] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Args:
        status_code: HTTP status
        code:        Machine-readable code, e.g. RATE_LIMIT_EXCEEDED
        message:     Human-readable, safe for clients
        retry_after: Included as error.retryAfter when given
        headers:     Extra response headers (X-RateLimit-*, Retry-After)
    """
    envelope = ErrorEnvelope(
        error=ErrorDetail(code=code, message=message, retryAfter=retry_after),
        timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        requestId=current_request_id(),
    )
    return JSONResponse(status_code=status_code, content=envelope.to_content(), headers=headers)

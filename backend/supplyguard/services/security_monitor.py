"""
SupplyGuard Backend — Security Event Monitor
==============================================

What:  Operational log channel for security-relevant events.
Why:   Rate-limit denials need to be visible to the on-call engineer and to
       log-based alerting right away, independent of the audit database.
How:   One WARNING line per event on the `supplyguard.security` logger, with
       the structured fields in `extra` for JSON formatters.
Who:   RateLimitMiddleware, require_rate_limit, and any code that spots abuse.

Difference from the audit log:
    The audit log is the durable, per-tenant compliance record.
    Security events are operational signals and may be dropped or sampled
    by the log pipeline.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from starlette.requests import HTTPConnection

from supplyguard.middleware.request_id import request_id_var

logger = logging.getLogger("supplyguard.security")


class SecurityEvent:
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


def record_security_event(
    request: Optional[HTTPConnection],
    event: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Log one security event and return the structured record.

    Args:
        request: Originating request (for ip, user agent, path)
        event:   Event name, usually a SecurityEvent constant
        details: Event-specific fields

    Returns:
        The record as logged (handy for tests and for forwarding).
    """
    record: Dict[str, Any] = {
        "event": event,
        "details": details or {},
        "ip": request.client.host if request is not None and request.client else None,
        "user_agent": request.headers.get("user-agent") if request is not None else None,
        "path": request.url.path if request is not None else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id_var.get(""),
    }
    logger.warning(
        "Security event %s from %s on %s [%s]",
        event,
        record["ip"],
        record["path"],
        record["request_id"],
        extra={"security_event": record},
    )
    return record

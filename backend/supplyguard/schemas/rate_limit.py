"""
SupplyGuard Backend — Rate Limit Schemas
==========================================

What:  Pydantic models for limiter decisions and the 429 response body.
Why:   One place defines both the header set and the denial envelope, so the
       global middleware and route-level dependencies answer identically.
"""

import math
from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field


def to_iso8601(epoch_seconds: float) -> str:
    """Epoch seconds → ISO-8601 UTC with milliseconds and a Z suffix."""
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RateLimitDecision(BaseModel):
    """
    What:  Outcome of RateLimiter.admit() for one request.

    Invariants:
        - remaining == max(0, limit - count), never negative
        - retry_after is set only when allowed is False, and is >= 1
    """

    allowed: bool = Field(description="Whether the request may reach the handler")
    limit: int = Field(description="Maximum requests per window")
    remaining: int = Field(ge=0, description="Requests left in the current window")
    count: int = Field(ge=0, description="Requests counted in the current window")
    reset_at: float = Field(description="Epoch seconds when the window resets")
    retry_after: Optional[int] = Field(
        default=None, description="Seconds to wait before retrying (denials only)"
    )

    def headers(self) -> Dict[str, str]:
        """X-RateLimit-* headers, plus Retry-After on denial."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": to_iso8601(self.reset_at),
        }
        if not self.allowed and self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def retry_after_seconds(reset_at: float, now: float) -> int:
    """Whole seconds until reset_at, rounded up, never below 1."""
    return max(1, math.ceil(reset_at - now))


class ErrorDetail(BaseModel):
    code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    retryAfter: Optional[int] = Field(default=None, description="Seconds until retry (429 only)")


class ErrorEnvelope(BaseModel):
    """
    What:  Standard error body for every handled failure.

    Example (429):
        {
            "success": false,
            "error": {
                "code": "RATE_LIMIT_EXCEEDED",
                "message": "Too many requests, please try again later.",
                "retryAfter": 42
            },
            "timestamp": "2024-01-15T12:00:00.000Z",
            "requestId": "a1b2c3d4"
        }
    """

    success: bool = False
    error: ErrorDetail
    timestamp: str
    requestId: str

    def to_content(self) -> Dict:
        """JSON-ready dict; retryAfter is omitted when not applicable."""
        content = self.model_dump()
        if content["error"]["retryAfter"] is None:
            del content["error"]["retryAfter"]
        return content

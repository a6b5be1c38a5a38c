"""
SupplyGuard Backend — Custom Exception Hierarchy
==================================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and machine-readable error codes.
How:   Each exception class carries a message, an optional context dict and a
       class-level `code`. Global exception handlers (registered in main.py)
       turn them into the standard error envelope.
Who:   Raised by services, dependencies and middleware; caught by global handlers.
When:  During request processing when recoverable errors occur.

Exception Hierarchy:
    SupplyGuardError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── DatabaseError            → 500 Internal Server Error
        └── AuditLogError        → never reaches HTTP (swallowed by AuditLogger)

Error envelope:
    {
        "success": false,
        "error": {"code": "VALIDATION_ERROR", "message": "..."},
        "timestamp": "2024-01-15T12:00:00.000Z",
        "requestId": "a1b2c3d4"
    }
"""

from typing import Any, Dict, Optional


class SupplyGuardError(Exception):
    """
    Base exception for all SupplyGuard application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
        code:     Machine-readable error code used in the response envelope
        status_code: HTTP status the global handler responds with
    """

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SupplyGuardError):
    """
    Raised when client input fails validation.

    When:    Empty backup code, malformed identifiers, invalid parameters.
    HTTP:    400 Bad Request
    """

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(SupplyGuardError):
    """
    Raised when a requested resource does not exist.

    HTTP:    404 Not Found
    """

    code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class RateLimitExceededError(SupplyGuardError):
    """
    Raised when a client exceeds a named rate limit.

    What:    Client sent too many requests within the limiter's window.
    When:    Raised by route-level limiter dependencies (require_rate_limit).
             The global API limiter answers directly from its middleware.
    HTTP:    429 Too Many Requests

    Attributes:
        retry_after: Seconds until the window resets (Retry-After header)
        decision:    The RateLimitDecision that denied the request, used by the
                     handler to emit the X-RateLimit-* headers
    """

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(
        self,
        retry_after: int = 60,
        decision: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = "Too many requests, please try again later."
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
        self.decision = decision


class DatabaseError(SupplyGuardError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error

    Security Note:
        The message returned to the client is always generic; the detailed
        context is logged server-side only.
    """

    code = "DATABASE_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuditLogError(DatabaseError):
    """
    Raised by DatabaseAuditSink when a record cannot be persisted.

    Never reaches a client: AuditLogger.log() catches it, reports it to the
    operational log, and drops the record.
    """

    code = "AUDIT_LOG_ERROR"

    def __init__(
        self,
        message: str = "Audit record could not be written",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

"""
SupplyGuard Backend — Audit Logger
====================================

What:  Structured recorder for security and business events.
Why:   Compliance and incident review need to know who did what, from where,
       and whether it worked.
How:   Every typed wrapper (log_auth, log_billing, ...) builds an AuditEvent
       and funnels into log(), which fills in request context and hands the
       record to the injected AuditSink.
Who:   Route handlers, auth/2FA/billing services, and AuditTrailMiddleware.
When:  After the audited action has succeeded or failed.

Best-effort contract:
    Audit logging must never fail the primary request.
    - log() catches every exception (sink down, serialization failure,
      invalid event) and reports it with logger.error; it never raises.
    - submit() schedules log() on the event loop without awaiting, so the
      response is not held open by the write. Pending writes are tracked and
      drained at shutdown.

Request context:
    ip_address  = explicit value → request.client.host → None
    user_agent  = explicit value → User-Agent header → "Unknown"

Redaction:
    None. Callers must leave passwords, tokens and secrets out of `details`.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Set, Union

from starlette.requests import HTTPConnection

from supplyguard.schemas.audit import (
    API_CALL_ACTION,
    ERROR_ACTION,
    AdminAction,
    AuditEvent,
    AuthAction,
    BillingAction,
    DataOperation,
    SecurityAction,
    SSOAction,
    TwoFactorAction,
    WhiteLabelAction,
)
from supplyguard.services.audit_sink import AuditSink

logger = logging.getLogger(__name__)

UNKNOWN_USER_AGENT = "Unknown"

Details = Optional[Dict[str, Any]]


def _action_name(action: Union[Enum, str]) -> str:
    return action.value if isinstance(action, Enum) else str(action)


def with_request_context(event: AuditEvent, request: Optional[HTTPConnection]) -> AuditEvent:
    """Fill ip_address and user_agent from the request where the event left them empty."""
    ip_address = event.ip_address
    if ip_address is None and request is not None and request.client is not None:
        ip_address = request.client.host

    user_agent = event.user_agent
    if not user_agent and request is not None:
        user_agent = request.headers.get("user-agent")

    return event.model_copy(
        update={
            "ip_address": ip_address,
            "user_agent": user_agent or UNKNOWN_USER_AGENT,
        }
    )


class AuditLogger:
    """
    Best-effort audit recorder over an AuditSink.

    Constructed once in create_app() and shared through app.state.audit_logger.
    """

    def __init__(self, sink: AuditSink):
        self.sink = sink
        self._pending: Set["asyncio.Task[None]"] = set()

    # ══════════════════════════════════════════════════════════════════════
    # Core primitive
    # ══════════════════════════════════════════════════════════════════════

    async def log(self, event: AuditEvent, request: Optional[HTTPConnection] = None) -> None:
        """
        Persist one event. Never raises.

        Args:
            event:   The audit event; missing ip/user-agent are taken from request
            request: Originating request, if any
        """
        try:
            await self.sink.append(with_request_context(event, request))
        except Exception as e:
            logger.error(
                "Error logging audit event %s: %s",
                event.action,
                str(e),
                exc_info=True,
            )

    def submit(self, event: AuditEvent, request: Optional[HTTPConnection] = None) -> None:
        """
        Fire-and-forget variant of log().

        Request context is captured now, while the request is still valid;
        the write runs later as its own task. Never raises.
        """
        try:
            populated = with_request_context(event, request)
            task = asyncio.get_running_loop().create_task(self.log(populated))
        except Exception as e:
            logger.error("Could not schedule audit event %s: %s", event.action, str(e))
            return
        # Keep a strong reference until done; the loop only holds weak ones
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait (bounded) for scheduled writes. Called at shutdown."""
        if not self._pending:
            return
        count = len(self._pending)
        _, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if still_pending:
            logger.warning(
                "Shutdown with %d of %d audit writes still pending",
                len(still_pending),
                count,
            )

    async def _record(
        self,
        action: Union[Enum, str],
        success: bool,
        user_id: Optional[str],
        company_id: Optional[str],
        request: Optional[HTTPConnection],
        details: Details,
    ) -> None:
        # Building the event can fail too (e.g. a non-dict details payload)
        try:
            event = AuditEvent(
                action=_action_name(action),
                success=success,
                user_id=user_id,
                company_id=company_id,
                details=details,
            )
        except Exception as e:
            logger.error("Invalid audit event %s: %s", _action_name(action), str(e))
            return
        await self.log(event, request)

    # ══════════════════════════════════════════════════════════════════════
    # Typed wrappers
    # ══════════════════════════════════════════════════════════════════════

    async def log_auth(
        self,
        action: AuthAction,
        *,
        success: bool,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        """Login, logout and failed login attempts. Adds an ISO timestamp to details."""
        payload = dict(details or {})
        payload["timestamp"] = datetime.now(timezone.utc).isoformat()
        await self._record(action, success, user_id, company_id, request, payload)

    async def log_sso(
        self,
        action: SSOAction,
        *,
        success: bool,
        provider: Optional[str] = None,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        payload = {"provider": provider, **(details or {})}
        await self._record(action, success, user_id, company_id, request, payload)

    async def log_two_factor(
        self,
        action: TwoFactorAction,
        *,
        success: bool,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        await self._record(action, success, user_id, company_id, request, details)

    async def log_billing(
        self,
        action: BillingAction,
        *,
        success: bool,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        await self._record(action, success, user_id, company_id, request, details)

    async def log_white_label(
        self,
        action: WhiteLabelAction,
        *,
        success: bool,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        await self._record(action, success, user_id, company_id, request, details)

    async def log_data_access(
        self,
        resource: str,
        operation: DataOperation,
        *,
        success: bool,
        resource_id: Optional[str] = None,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        """View/create/update/delete/export of a tenant resource → DATA_<OPERATION>."""
        payload = {"resource": resource, "resource_id": resource_id, **(details or {})}
        action = f"DATA_{_action_name(operation)}"
        await self._record(action, success, user_id, company_id, request, payload)

    async def log_security(
        self,
        action: SecurityAction,
        *,
        success: bool,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        await self._record(action, success, user_id, company_id, request, details)

    async def log_admin(
        self,
        action: AdminAction,
        *,
        success: bool,
        target_user_id: Optional[str] = None,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        payload = {"target_user_id": target_user_id, **(details or {})}
        await self._record(action, success, user_id, company_id, request, payload)

    async def log_api(
        self,
        endpoint: str,
        method: str,
        *,
        success: bool,
        response_code: int,
        duration_ms: Optional[float] = None,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        payload = {
            "endpoint": endpoint,
            "method": method,
            "response_code": response_code,
            "duration_ms": duration_ms,
            **(details or {}),
        }
        await self._record(API_CALL_ACTION, success, user_id, company_id, request, payload)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        *,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        request: Optional[HTTPConnection] = None,
        details: Details = None,
    ) -> None:
        """Errors are always recorded with success=False."""
        payload = {
            "error_type": error_type,
            "error_message": error_message,
            **(details or {}),
        }
        await self._record(ERROR_ACTION, False, user_id, company_id, request, payload)

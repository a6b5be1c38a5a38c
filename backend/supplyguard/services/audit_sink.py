"""
SupplyGuard Backend — Audit Sinks
===================================

What:  Abstract destination for audit records and its database implementation.
Why:   AuditLogger only knows "append this record". The destination can change
       (database, message queue, SIEM forwarder) and tests can use a fake.
How:   Concrete sinks inherit from AuditSink and implement append().
Who:   Called by AuditLogger.log().

Contract:
    - append() may raise anything. AuditLogger catches it, so sinks do not
      need their own best-effort wrappers.
    - Sinks never read records back.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supplyguard.exceptions import AuditLogError
from supplyguard.models.audit_log import AuditLog
from supplyguard.schemas.audit import AuditEvent


def serialize_details(event: AuditEvent) -> Optional[str]:
    """JSON-encode the open details payload; non-JSON values fall back to str()."""
    if event.details is None:
        return None
    return json.dumps(event.details, default=str)


class AuditSink(ABC):
    """Append-only destination for audit records."""

    @abstractmethod
    async def append(self, event: AuditEvent) -> None:
        """
        Persist one fully-populated event.

        Raises:
            Any exception on failure. The caller treats every failure the same.
        """
        ...


class DatabaseAuditSink(AuditSink):
    """
    Writes each event as one row in audit_logs, in its own short transaction.

    Why a session per record:
        Audit writes run after the response has been handed off, outside any
        request-scoped session. Sharing the request's session would tie the
        audit row to the handler's commit/rollback.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, event: AuditEvent) -> None:
        details = serialize_details(event)
        try:
            async with self._session_factory() as session:
                session.add(
                    AuditLog(
                        user_id=event.user_id,
                        company_id=event.company_id,
                        action=event.action,
                        ip_address=event.ip_address,
                        user_agent=event.user_agent or "Unknown",
                        success=event.success,
                        details=details,
                        created_at=event.timestamp,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise AuditLogError(
                message="Audit record could not be written",
                context={"action": event.action, "error_type": type(e).__name__},
            ) from e

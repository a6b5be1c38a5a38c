"""
SupplyGuard Backend — Audit Log SQLAlchemy Model
==================================================

What:  ORM model representing the `audit_logs` table.
Why:   Compliance and forensic review need a durable, append-only record of
       security and business actions.
How:   Inherits from DeclarativeBase; Alembic reads this for migrations.
Who:   Written by DatabaseAuditSink. Nothing in this service reads it back.
When:  One row per AuditLogger.log() call that reaches the database.

Table Design Rationale:
    - UUID primary key: non-sequential, safe to expose to support staff
    - user_id / company_id nullable: failed logins and anonymous webhook calls
      have no authenticated principal
    - action VARCHAR(64): enum-like string (LOGIN, DATA_EXPORT, API_CALL, ...)
    - details TEXT: JSON-serialized open payload; its shape differs per action
    - created_at: UTC with timezone, never naive

    Index on (company_id, created_at DESC):
        Tenant admins review "recent activity for my company"; the reader
        lives in another service but the index belongs with the table.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from supplyguard.database import Base


class AuditLog(Base):
    """
    One audited action.

    Lifecycle:
        Inserted once, never updated or deleted by this service.
        Retention and archival are handled by the database owner.
    """

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier",
    )

    user_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Acting user, when authenticated",
    )

    company_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Tenant the action belongs to",
    )

    action: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Action name, e.g. LOGIN, DATA_EXPORT, API_CALL",
    )

    ip_address: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Client address of the originating request",
    )

    user_agent: Mapped[str] = mapped_column(
        String(512),
        nullable=False,
        default="Unknown",
        comment="User-Agent of the originating request, or 'Unknown'",
    )

    success: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        comment="Whether the audited action succeeded",
    )

    details: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="JSON-serialized action-specific payload",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="When the action happened (UTC)",
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, action='{self.action}', "
            f"success={self.success}, created_at='{self.created_at}')>"
        )


# Tenant activity feed: WHERE company_id = ? ORDER BY created_at DESC
Index(
    "idx_audit_logs_company_created",
    AuditLog.company_id,
    AuditLog.created_at.desc(),
)

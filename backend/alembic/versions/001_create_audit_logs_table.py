"""Create audit_logs table

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Creates the append-only `audit_logs` table written by DatabaseAuditSink.
How:   UUID primary key generated by the application, TIMESTAMP WITH TIME ZONE,
       JSON details stored as TEXT.

Rollback: downgrade() drops the table. Audit history is a compliance record;
never run it against a production database.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Column rationale lives in supplyguard/models/audit_log.py."""
    op.create_table(
        "audit_logs",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Unique identifier",
        ),
        sa.Column(
            "user_id",
            sa.String(64),
            nullable=True,
            comment="Acting user, when authenticated",
        ),
        sa.Column(
            "company_id",
            sa.String(64),
            nullable=True,
            comment="Tenant the action belongs to",
        ),
        sa.Column(
            "action",
            sa.String(64),
            nullable=False,
            comment="Action name, e.g. LOGIN, DATA_EXPORT, API_CALL",
        ),
        sa.Column(
            "ip_address",
            sa.String(64),
            nullable=True,
            comment="Client address of the originating request",
        ),
        sa.Column(
            "user_agent",
            sa.String(512),
            nullable=False,
            server_default=sa.text("'Unknown'"),
            comment="User-Agent of the originating request, or 'Unknown'",
        ),
        sa.Column(
            "success",
            sa.Boolean(),
            nullable=False,
            comment="Whether the audited action succeeded",
        ),
        sa.Column(
            "details",
            sa.Text(),
            nullable=True,
            comment="JSON-serialized action-specific payload",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="When the action happened (UTC)",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # Tenant activity feed: WHERE company_id = ? ORDER BY created_at DESC
    op.create_index(
        "idx_audit_logs_company_created",
        "audit_logs",
        ["company_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_audit_logs_company_created", table_name="audit_logs")
    op.drop_table("audit_logs")

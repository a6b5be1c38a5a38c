"""
SupplyGuard Backend — ORM Models Package

Import every model here so Base.metadata knows about it (Alembic, create_all).
"""

from supplyguard.models.audit_log import AuditLog

__all__ = ["AuditLog"]

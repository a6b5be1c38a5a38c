"""
SupplyGuard Backend — Audit Event Schemas
===========================================

What:  Action vocabularies and the in-process AuditEvent value.
Why:   Typed wrappers in AuditLogger accept only the actions of their own
       category; the persisted column stays a plain string.
How:   str-valued Enums, so `action.value` is what lands in audit_logs.action.

Details payload:
    `details` is an open Dict[str, Any]. Each action carries different data
    (provider for SSO, resource/resource_id for data access, endpoint and
    response_code for API calls), so no fixed schema is imposed. Callers must
    strip secrets (passwords, tokens) before building an event; nothing here
    redacts.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AuthAction(str, Enum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"


class SSOAction(str, Enum):
    SSO_ATTEMPT = "SSO_ATTEMPT"
    SSO_SUCCESS = "SSO_SUCCESS"
    SSO_FAILED = "SSO_FAILED"
    SSO_CONFIGURED = "SSO_CONFIGURED"
    SSO_DISABLED = "SSO_DISABLED"


class TwoFactorAction(str, Enum):
    ENABLED = "2FA_ENABLED"
    DISABLED = "2FA_DISABLED"
    VERIFIED = "2FA_VERIFIED"
    FAILED = "2FA_FAILED"


class BillingAction(str, Enum):
    SUBSCRIPTION_CREATED = "SUBSCRIPTION_CREATED"
    SUBSCRIPTION_UPDATED = "SUBSCRIPTION_UPDATED"
    SUBSCRIPTION_CANCELLED = "SUBSCRIPTION_CANCELLED"
    PAYMENT_SUCCEEDED = "PAYMENT_SUCCEEDED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


class WhiteLabelAction(str, Enum):
    WHITELABEL_UPDATED = "WHITELABEL_UPDATED"
    LOGO_UPLOADED = "LOGO_UPLOADED"
    FAVICON_UPLOADED = "FAVICON_UPLOADED"
    DOMAIN_CONFIGURED = "DOMAIN_CONFIGURED"


class DataOperation(str, Enum):
    VIEW = "VIEW"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    EXPORT = "EXPORT"


class SecurityAction(str, Enum):
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    SECURITY_SETTINGS_UPDATED = "SECURITY_SETTINGS_UPDATED"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    ACCOUNT_UNLOCKED = "ACCOUNT_UNLOCKED"


class AdminAction(str, Enum):
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    ROLE_CHANGED = "ROLE_CHANGED"
    COMPANY_SETTINGS_UPDATED = "COMPANY_SETTINGS_UPDATED"


API_CALL_ACTION = "API_CALL"
ERROR_ACTION = "ERROR"


class AuditEvent(BaseModel):
    """
    What:  One audit record before persistence.
    Who:   Built by AuditLogger wrappers (or directly by callers of log()).

    ip_address / user_agent may be left empty; AuditLogger fills them from the
    originating request.
    """

    action: str = Field(description="Action name, e.g. LOGIN or DATA_EXPORT")
    success: bool = Field(description="Whether the audited action succeeded")
    user_id: Optional[str] = Field(default=None)
    company_id: Optional[str] = Field(default=None)
    ip_address: Optional[str] = Field(default=None)
    user_agent: Optional[str] = Field(default=None)
    details: Optional[Dict[str, Any]] = Field(default=None)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

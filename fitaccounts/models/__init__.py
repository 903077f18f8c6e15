"""
Data Models Package.

Re-exports all Pydantic models:
    from fitaccounts.models import UserRecord, UserView, Session
    from fitaccounts.models import MembershipType, AccountErrorCode
"""

from __future__ import annotations

from fitaccounts.models.account_models import (
    AccountErrorCode,
    AccountExport,
    AccountResult,
    DemoCloudStatus,
    LockoutDecision,
    SessionValidation,
    SyncResult,
    UserDocument,
    UserPresence,
    ValidationResult,
)
from fitaccounts.models.enums import ActivityAction, MembershipType, SessionInvalidReason
from fitaccounts.models.session import ClientState, Session
from fitaccounts.models.user import UserRecord, UserView, normalize_email

__all__ = [
    "AccountErrorCode",
    "AccountExport",
    "AccountResult",
    "ActivityAction",
    "ClientState",
    "DemoCloudStatus",
    "LockoutDecision",
    "MembershipType",
    "Session",
    "SessionInvalidReason",
    "SessionValidation",
    "SyncResult",
    "UserDocument",
    "UserPresence",
    "UserRecord",
    "UserView",
    "ValidationResult",
    "normalize_email",
]

"""
Account Pipeline Models.

Pydantic models and enumerations for the request/response contracts
between ``AccountService`` and its callers, and between the sync
coordinator and whoever schedules it.

Every account operation returns a structured, inspectable result
carrying both a machine-checkable ``error_code`` and a human-readable
``error_message`` rather than raw strings or exception side-channels.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from fitaccounts.models.enums import SessionInvalidReason
from fitaccounts.models.user import UserView


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AccountErrorCode(StrEnum):
    """Exhaustive enumeration of account failure categories."""

    VALIDATION_ERROR = "validation_error"
    DUPLICATE_EMAIL = "duplicate_email"
    NOT_FOUND = "not_found"
    ACCOUNT_INACTIVE = "account_inactive"
    LOCKED_OUT = "locked_out"
    BAD_PASSWORD = "bad_password"
    BAD_CURRENT_PASSWORD = "bad_current_password"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    CORRUPT_STATE = "corrupt_state"
    SESSION_INVALID = "session_invalid"


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single input validation check.

    Attributes
    ----------
    is_valid:
        ``True`` when the value passes the validation rule.
    error_message:
        Human-readable description of the failure, or ``None`` on success.
    """

    is_valid: bool
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Unified account response
# ---------------------------------------------------------------------------

class AccountResult(BaseModel):
    """Unified response for every ``AccountService`` operation.

    Attributes
    ----------
    success:
        ``True`` when the operation completed without error.
    error_code:
        Structured failure category (``None`` on success).
    error_message:
        Human-readable failure description (``None`` on success).
    user:
        Safe view of the affected user, when there is one.
    users:
        Safe views returned by listing operations.
    session_id:
        Session issued by ``login``.
    attempts_remaining:
        Failed attempts left before lockout (``bad_password`` only).
    locked_until:
        End of the lockout window (``locked_out`` only).
    presence:
        Cross-device lookup returned by ``check_user_exists``.
    export:
        Portable account copy returned by ``export_account_data``.
    degraded:
        ``True`` when any store call in this operation was served by a
        fallback backend.
    """

    success: bool
    error_code: Optional[AccountErrorCode] = None
    error_message: Optional[str] = None
    user: Optional[UserView] = None
    users: list[UserView] = Field(default_factory=list)
    session_id: Optional[str] = None
    attempts_remaining: Optional[int] = None
    locked_until: Optional[datetime] = None
    presence: Optional[UserPresence] = None
    export: Optional[AccountExport] = None
    degraded: bool = False


class LockoutDecision(BaseModel):
    """Outcome of ``LockoutPolicy.evaluate``."""

    allowed: bool
    locked_until: Optional[datetime] = None


class SessionValidation(BaseModel):
    """Outcome of ``SessionManager.validate``."""

    valid: bool
    user: Optional[UserView] = None
    reason: Optional[SessionInvalidReason] = None
    message: Optional[str] = None


class UserPresence(BaseModel):
    """Cross-device lookup for a single email."""

    exists: bool
    devices: list[str] = Field(default_factory=list)
    last_login: Optional[datetime] = None


class SyncResult(BaseModel):
    """Outcome of a single reconciliation pass."""

    success: bool
    merged: int = 0
    appended: int = 0
    error_message: Optional[str] = None


class DemoCloudStatus(BaseModel):
    """Snapshot of the demo cloud store."""

    total_users: int
    last_sync: Optional[str] = None
    is_demo: bool = True


# ---------------------------------------------------------------------------
# Remote document shape
# ---------------------------------------------------------------------------

class UserDocument(BaseModel):
    """The single JSON document holding the whole user collection.

    ``users`` stays as raw dicts so a malformed entry can be quarantined
    without rejecting the whole document.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    users: list[Any] = Field(default_factory=list)
    last_updated: Optional[datetime] = None

    @field_validator("users", mode="before")
    @classmethod
    def _null_users_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class AccountExport(BaseModel):
    """Portable copy of an account without sensitive fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user: UserView
    exported_at: datetime


AccountResult.model_rebuild()

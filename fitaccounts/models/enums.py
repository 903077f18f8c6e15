"""
Shared Enumerations for account models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so stored documents can keep plain strings.
"""

from __future__ import annotations
from enum import StrEnum


class MembershipType(StrEnum):
    """Membership tiers offered by the gym directory."""

    BASIC = "basic"
    PREMIUM = "premium"
    ELITE = "elite"


class SessionInvalidReason(StrEnum):
    """Why a session id did not validate."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    USER_INACTIVE = "user_inactive"


class ActivityAction(StrEnum):
    """Event names written to the ``user_activity`` collection."""

    USER_REGISTERED = "USER_REGISTERED"
    USER_LOGIN = "USER_LOGIN"
    FAILED_LOGIN = "FAILED_LOGIN"
    USER_LOGOUT = "USER_LOGOUT"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    ACCOUNT_DELETED = "ACCOUNT_DELETED"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"

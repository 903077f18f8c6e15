"""
User Record Model.

Pydantic model for a stored account.  Field names are snake_case in
Python and camelCase in the JSON documents written by the remote and
demo stores, matching the shape the browser client has always written.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from fitaccounts.models.enums import MembershipType

DeviceInfo = Union[str, dict[str, Any]]


def normalize_email(email: str) -> str:
    """Normalise an email address: strip whitespace and lowercase."""
    return email.strip().lower()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserRecord(BaseModel):
    """A single account as persisted by a record store.

    ``login_attempts`` and ``locked_until`` are derived state owned by
    the lockout policy; callers outside the account service never set
    them directly.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: str
    full_name: str
    email: str
    # Older documents stored the digest under ``password``.
    password_digest: str = Field(
        validation_alias=AliasChoices("passwordDigest", "password_digest", "password"),
    )
    registration_date: datetime
    last_login: Optional[datetime] = None
    is_active: bool = True
    login_attempts: int = Field(default=0, ge=0)
    locked_until: Optional[datetime] = None
    membership_type: MembershipType = MembershipType.BASIC
    device_info: Optional[DeviceInfo] = None
    last_device: Optional[str] = None
    password_changed_at: Optional[datetime] = None
    synced_from_local: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        # Browser-generated ids were numbers (Date.now()).
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator(
        "registration_date", "last_login", "locked_until", "password_changed_at",
    )
    @classmethod
    def _ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    def to_document(self) -> dict[str, Any]:
        """Serialise to the camelCase JSON shape used by document stores."""
        return self.model_dump(mode="json", by_alias=True)


class UserView(BaseModel):
    """Safe projection of a ``UserRecord``; never carries the digest."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    full_name: str
    email: str
    registration_date: datetime
    last_login: Optional[datetime] = None
    membership_type: MembershipType = MembershipType.BASIC
    is_active: bool = True
    device_info: Optional[DeviceInfo] = None
    last_device: Optional[str] = None

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserView":
        return cls(
            id=record.id,
            full_name=record.full_name,
            email=record.email,
            registration_date=record.registration_date,
            last_login=record.last_login,
            membership_type=record.membership_type,
            is_active=record.is_active,
            device_info=record.device_info,
            last_device=record.last_device,
        )

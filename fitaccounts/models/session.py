"""
Session and Client-State Models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from fitaccounts.models.enums import MembershipType


class Session(BaseModel):
    """A login session tied to a user id.

    The session references the user; it does not own it.  Once
    ``is_active`` is cleared by logout it is never set again.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    user_id: str
    created_at: datetime
    expires_at: datetime
    is_active: bool = True


class ClientState(BaseModel):
    """Advisory "last known user" cache kept outside the record store.

    Used for quick re-display on the next start; never consulted for
    authorisation decisions.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_session_id: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    membership_type: Optional[MembershipType] = None
    cached_at: str  # ISO-8601 UTC

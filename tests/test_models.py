from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from fitaccounts.models import AccountResult, MembershipType, UserDocument, UserRecord, UserView

BROWSER_ENTRY = {
    "id": 1709294400000,
    "fullName": "John Smith",
    "email": " John@Demo.com ",
    "password": "a" * 64,
    "registrationDate": "2024-03-01T12:00:00.000Z",
    "lastLogin": None,
    "isActive": True,
    "loginAttempts": 0,
    "lockedUntil": None,
    "membershipType": "premium",
    "deviceInfo": {"userAgent": "Mozilla/5.0", "platform": "MacIntel"},
}


def test_browser_entry_is_accepted() -> None:
    record = UserRecord.model_validate(BROWSER_ENTRY)

    assert record.id == "1709294400000"
    assert record.email == "john@demo.com"
    assert record.password_digest == "a" * 64
    assert record.membership_type == MembershipType.PREMIUM
    assert record.registration_date == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)


def test_document_uses_camel_case() -> None:
    document = UserRecord.model_validate(BROWSER_ENTRY).to_document()

    assert document["fullName"] == "John Smith"
    assert document["passwordDigest"] == "a" * 64
    assert document["syncedFromLocal"] is False
    assert "password" not in document


def test_naive_timestamps_are_treated_as_utc() -> None:
    record = UserRecord.model_validate({**BROWSER_ENTRY, "registrationDate": "2024-03-01T12:00:00"})
    assert record.registration_date.tzinfo is not None


@pytest.mark.parametrize(
    "broken",
    [
        {k: v for k, v in BROWSER_ENTRY.items() if k != "email"},
        {**BROWSER_ENTRY, "membershipType": "platinum"},
        {**BROWSER_ENTRY, "loginAttempts": -1},
    ],
)
def test_invalid_entries_are_rejected(broken: dict) -> None:
    with pytest.raises(ValidationError):
        UserRecord.model_validate(broken)


def test_view_has_no_digest() -> None:
    view = UserView.from_record(UserRecord.model_validate(BROWSER_ENTRY))
    assert "password_digest" not in UserView.model_fields
    assert view.device_info == {"userAgent": "Mozilla/5.0", "platform": "MacIntel"}


def test_result_defaults() -> None:
    result = AccountResult(success=True)
    assert result.users == []
    assert not result.degraded
    assert result.error_code is None


def test_document_with_null_users_is_empty() -> None:
    assert UserDocument.model_validate({"users": None}).users == []

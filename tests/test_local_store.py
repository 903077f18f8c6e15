from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fitaccounts.database import DatabaseManager
from fitaccounts.errors import ConstraintViolationError
from fitaccounts.models.enums import MembershipType
from fitaccounts.models.user import UserRecord
from fitaccounts.repositories.local_store import LocalRecordStore

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(record_id: str, email: str, **overrides: object) -> UserRecord:
    data: dict[str, object] = {
        "id": record_id,
        "full_name": "Test User",
        "email": email,
        "password_digest": "d" * 64,
        "registration_date": NOW,
    }
    data.update(overrides)
    return UserRecord(**data)


def test_empty_store_returns_empty_list(local_store: LocalRecordStore) -> None:
    assert local_store.get_all() == []
    assert not local_store.exists("nobody@example.com")


def test_save_and_read_back(local_store: LocalRecordStore) -> None:
    records = [
        _record("1", "a@example.com", device_info={"userAgent": "pytest"}),
        _record("2", "b@example.com", membership_type=MembershipType.ELITE, device_info="laptop"),
    ]

    assert local_store.save_all(records)
    loaded = local_store.get_all()

    assert [r.email for r in loaded] == ["a@example.com", "b@example.com"]
    assert loaded[0].device_info == {"userAgent": "pytest"}
    assert loaded[1].device_info == "laptop"
    assert loaded[1].membership_type == MembershipType.ELITE
    assert loaded[0].registration_date == NOW
    assert local_store.exists("A@Example.com")


def test_save_all_replaces_the_set(local_store: LocalRecordStore) -> None:
    local_store.save_all([_record("1", "a@example.com"), _record("2", "b@example.com")])
    local_store.save_all([_record("2", "b@example.com")])

    assert [r.id for r in local_store.get_all()] == ["2"]


def test_duplicate_emails_rejected_before_write(local_store: LocalRecordStore) -> None:
    local_store.save_all([_record("1", "a@example.com")])

    with pytest.raises(ConstraintViolationError):
        local_store.save_all([_record("1", "a@example.com"), _record("2", "a@example.com")])

    assert [r.id for r in local_store.get_all()] == ["1"]


def test_corrupt_row_is_quarantined_and_preserved(
    db: DatabaseManager, local_store: LocalRecordStore,
) -> None:
    local_store.save_all([_record("1", "a@example.com")])
    with db.write_lock:
        db.sqlite.execute(
            "INSERT INTO users (id, full_name, email, password_digest, "
            "registration_date, membership_type) VALUES (?, ?, ?, ?, ?, ?)",
            ("99", "Broken", "broken@example.com", "x", "not-a-date", "basic"),
        )
        db.sqlite.commit()

    loaded = local_store.get_all()
    assert [r.id for r in loaded] == ["1"]
    assert [q["id"] for q in local_store.quarantined] == ["99"]

    local_store.save_all([*loaded, _record("2", "b@example.com")])

    ids = {row["id"] for row in db.sqlite.execute("SELECT id FROM users").fetchall()}
    assert ids == {"1", "2", "99"}


def test_unique_index_violation_against_quarantined_row(
    db: DatabaseManager, local_store: LocalRecordStore,
) -> None:
    with db.write_lock:
        db.sqlite.execute(
            "INSERT INTO users (id, full_name, email, password_digest, "
            "registration_date, membership_type) VALUES (?, ?, ?, ?, ?, ?)",
            ("99", "Broken", "taken@example.com", "x", "not-a-date", "basic"),
        )
        db.sqlite.commit()
    assert local_store.get_all() == []

    with pytest.raises(ConstraintViolationError):
        local_store.save_all([_record("1", "taken@example.com")])


def test_mirror_upserts_and_keeps_local_only(local_store: LocalRecordStore) -> None:
    local_store.save_all([
        _record("1", "a@example.com", full_name="Old Name"),
        _record("2", "local-only@example.com"),
        _record("3", "gone@example.com"),
    ])

    local_store.mirror(
        [_record("1", "a@example.com", full_name="New Name"), _record("4", "new@example.com")],
        removed_emails={"gone@example.com"},
    )

    by_email = {r.email: r for r in local_store.get_all()}
    assert set(by_email) == {"a@example.com", "local-only@example.com", "new@example.com"}
    assert by_email["a@example.com"].full_name == "New Name"

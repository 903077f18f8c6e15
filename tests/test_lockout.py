from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fitaccounts.models.user import UserRecord
from fitaccounts.services.lockout import LockoutPolicy

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(**overrides: object) -> UserRecord:
    data: dict[str, object] = {
        "id": "1",
        "full_name": "John Smith",
        "email": "john@demo.com",
        "password_digest": "x" * 64,
        "registration_date": NOW,
    }
    data.update(overrides)
    return UserRecord(**data)


def test_unlocked_record_is_allowed() -> None:
    decision = LockoutPolicy().evaluate(_record(), NOW)
    assert decision.allowed
    assert decision.locked_until is None


def test_future_lock_is_refused() -> None:
    until = NOW + timedelta(minutes=1)
    decision = LockoutPolicy().evaluate(_record(locked_until=until), NOW)
    assert not decision.allowed
    assert decision.locked_until == until


def test_lock_ending_now_is_allowed() -> None:
    decision = LockoutPolicy().evaluate(_record(locked_until=NOW), NOW)
    assert decision.allowed


def test_fifth_failure_locks_for_fifteen_minutes() -> None:
    policy = LockoutPolicy()
    record = _record()
    for _ in range(4):
        record = policy.register_failure(record, NOW)
        assert record.locked_until is None

    record = policy.register_failure(record, NOW)
    assert record.login_attempts == 5
    assert record.locked_until == NOW + timedelta(minutes=15)
    assert policy.attempts_remaining(record) == 0


def test_success_resets_counters() -> None:
    policy = LockoutPolicy()
    record = _record(login_attempts=3, locked_until=NOW - timedelta(minutes=1))

    reset = policy.register_success(record, NOW)

    assert reset.login_attempts == 0
    assert reset.locked_until is None
    assert record.login_attempts == 3


def test_custom_thresholds() -> None:
    policy = LockoutPolicy(max_attempts=2, lockout_duration=timedelta(seconds=30))
    record = policy.register_failure(policy.register_failure(_record(), NOW), NOW)
    assert record.locked_until == NOW + timedelta(seconds=30)


def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        LockoutPolicy(max_attempts=0)

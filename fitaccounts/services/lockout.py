"""
Lockout Policy.

Pure decision logic over a record's ``login_attempts`` and
``locked_until`` fields.  Nothing here performs I/O; every method
returns a new record and leaves persistence to the account service.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from fitaccounts.models.account_models import LockoutDecision
from fitaccounts.models.user import UserRecord

DEFAULT_MAX_ATTEMPTS: int = 5
DEFAULT_LOCKOUT_DURATION: timedelta = timedelta(minutes=15)


class LockoutPolicy:
    """Failed-attempt counter with a time-boxed lock.

    Parameters
    ----------
    max_attempts:
        Failures that trigger a lock (``>= 1``).
    lockout_duration:
        How long the lock lasts once triggered.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        lockout_duration: timedelta = DEFAULT_LOCKOUT_DURATION,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts: int = max_attempts
        self.lockout_duration: timedelta = lockout_duration

    def evaluate(self, record: UserRecord, now: datetime) -> LockoutDecision:
        """Locked iff ``locked_until`` is set and strictly after *now*."""
        if record.locked_until is not None and record.locked_until > now:
            return LockoutDecision(allowed=False, locked_until=record.locked_until)
        return LockoutDecision(allowed=True)

    def register_failure(self, record: UserRecord, now: datetime) -> UserRecord:
        attempts = record.login_attempts + 1
        update: dict[str, object] = {"login_attempts": attempts}
        if attempts >= self.max_attempts:
            update["locked_until"] = now + self.lockout_duration
        return record.model_copy(update=update)

    def register_success(self, record: UserRecord, now: datetime) -> UserRecord:
        return record.model_copy(update={"login_attempts": 0, "locked_until": None})

    def attempts_remaining(self, record: UserRecord) -> int:
        return max(0, self.max_attempts - record.login_attempts)

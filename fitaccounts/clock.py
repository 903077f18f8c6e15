"""
Clock and Identifier Sources.

Wall-clock time and id generation are injected rather than read from
``datetime.now()`` at each call site, so tests can move time forward
and ids stay collision-free inside a single store.
"""

from __future__ import annotations

import secrets
import string
import threading
from datetime import datetime, timezone
from typing import Optional, Protocol

_BASE36: str = string.digits + string.ascii_lowercase


class Clock(Protocol):
    """Anything that can tell the current UTC time."""

    def now(self) -> datetime: ...  # noqa: E704


class SystemClock:
    """Real UTC wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class IdGenerator:
    """Time-derived, strictly increasing identifiers.

    Ids are the epoch-millisecond timestamp rendered as a decimal string.
    When two ids are requested within the same millisecond (or the clock
    goes backwards) the previous value is bumped by one, so a single
    generator never hands out the same id twice.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock: Clock = clock or SystemClock()
        self._lock: threading.Lock = threading.Lock()
        self._last: int = 0

    def new_id(self) -> str:
        candidate = int(self._clock.now().timestamp() * 1000)
        with self._lock:
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
        return str(candidate)

    def new_session_id(self) -> str:
        """Return ``session_<epoch-ms>_<9 random base36 chars>``."""
        millis = int(self._clock.now().timestamp() * 1000)
        suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
        return f"session_{millis}_{suffix}"

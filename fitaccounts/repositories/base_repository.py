"""
Base Record Store.

Shared infrastructure for every user-record backend:

- The ``get_all`` / ``save_all`` / ``exists`` contract.
- A re-entrant ``write_lock`` that callers hold across a
  ``get_all``-then-``save_all`` pair so in-process writers never lose
  updates.
- Shape validation of raw stored entries with quarantine of anything
  that does not parse (the record is skipped, logged, and written back
  untouched on the next save).
- The one-record-per-email check applied before every write.
"""

from __future__ import annotations

import threading
from typing import Any, Iterable, Sequence

from pydantic import ValidationError

from fitaccounts.errors import ConstraintViolationError
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.user import UserRecord, normalize_email


class BaseRecordStore:
    """Base class for all record stores. Receives dependencies via __init__."""

    NAME: str = "base"

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger
        self._lock: threading.RLock = threading.RLock()
        self._quarantined: list[dict[str, Any]] = []
        self._degraded: bool = False

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def get_all(self) -> list[UserRecord]:
        """Return every valid record.  An empty list is not an error."""
        raise NotImplementedError

    def save_all(self, records: Sequence[UserRecord]) -> bool:
        """Replace the entire record set.

        Raises
        ------
        ConstraintViolationError
            If two records share a normalised email.
        BackendUnavailableError
            If the backend cannot be read or written.
        """
        raise NotImplementedError

    def exists(self, email: str) -> bool:
        normalized = normalize_email(email)
        return any(record.email == normalized for record in self.get_all())

    # ------------------------------------------------------------------
    # Shared state
    # ------------------------------------------------------------------

    @property
    def write_lock(self) -> threading.RLock:
        """Lock serialising read-modify-write pairs on this store."""
        return self._lock

    @property
    def degraded(self) -> bool:
        """``True`` when the last operation was served by a fallback."""
        return self._degraded

    @property
    def quarantined(self) -> list[dict[str, Any]]:
        """Raw entries rejected by the most recent read."""
        return list(self._quarantined)

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _parse_entries(self, entries: Iterable[Any]) -> list[UserRecord]:
        """Validate raw entries, quarantining the ones that fail.

        Corrupt entries never raise: they are logged and remembered so
        the next ``save_all`` can write them back unchanged.
        """
        records: list[UserRecord] = []
        quarantined: list[dict[str, Any]] = []
        for entry in entries:
            try:
                records.append(UserRecord.model_validate(entry))
            except ValidationError as exc:
                raw = entry if isinstance(entry, dict) else {"value": entry}
                quarantined.append(raw)
                self._logger.warning(
                    "Quarantined corrupt record in %s store: %s",
                    self.NAME,
                    exc.errors()[0].get("msg", "invalid") if exc.errors() else exc,
                    extra={"event": "CORRUPT_STATE", "store": self.NAME},
                )
        self._quarantined = quarantined
        return records

    @staticmethod
    def _check_unique(records: Sequence[UserRecord]) -> None:
        seen: set[str] = set()
        for record in records:
            if record.email in seen:
                raise ConstraintViolationError(record.email)
            seen.add(record.email)

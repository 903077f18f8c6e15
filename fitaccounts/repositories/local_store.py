"""
Local Record Store.

User records in the on-device SQLite database.  The unique index on
``users.email`` enforces the one-record-per-email invariant at the
storage layer; a violation surfaces as ``ConstraintViolationError``,
every other SQLite failure as ``BackendUnavailableError``.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from typing import Any, Iterable, Optional, Sequence

from fitaccounts.database import DatabaseManager
from fitaccounts.errors import BackendUnavailableError, ConstraintViolationError
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.user import UserRecord
from fitaccounts.repositories.base_repository import BaseRecordStore

_COLUMNS: tuple[str, ...] = (
    "id",
    "full_name",
    "email",
    "password_digest",
    "registration_date",
    "last_login",
    "is_active",
    "login_attempts",
    "locked_until",
    "membership_type",
    "device_info",
    "last_device",
    "password_changed_at",
    "synced_from_local",
)

_INSERT_SQL: str = (
    f"INSERT INTO users ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
)


class LocalRecordStore(BaseRecordStore):
    """SQLite-backed record store.

    ``save_all`` replaces the table contents inside a single transaction,
    so readers see either the old set or the new one.  Rows quarantined
    by the last read are left in place.
    """

    NAME = "local"
    TABLE = "users"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._db = db

    @property
    def write_lock(self) -> threading.RLock:
        return self._db.write_lock

    def get_all(self) -> list[UserRecord]:
        try:
            with self._db.write_lock:
                rows = self._db.sqlite.execute(
                    f"SELECT * FROM {self.TABLE} ORDER BY registration_date, id"
                ).fetchall()
        except sqlite3.Error as exc:
            self._logger.error("Local store read failed: %s", exc)
            raise BackendUnavailableError("Local store read failed", exc) from exc

        return self._parse_entries(self._row_to_entry(row) for row in rows)

    def save_all(self, records: Sequence[UserRecord]) -> bool:
        self._check_unique(records)
        kept_ids: list[str] = [
            str(entry["id"]) for entry in self._quarantined if entry.get("id")
        ]

        try:
            with self._db.batch_write():
                if kept_ids:
                    placeholders = ", ".join("?" for _ in kept_ids)
                    self._db.sqlite.execute(
                        f"DELETE FROM {self.TABLE} WHERE id NOT IN ({placeholders})",
                        kept_ids,
                    )
                else:
                    self._db.sqlite.execute(f"DELETE FROM {self.TABLE}")
                self._db.sqlite.executemany(
                    _INSERT_SQL, [self._record_to_params(r) for r in records],
                )
        except sqlite3.IntegrityError as exc:
            raise self._classify_integrity_error(exc, records) from exc
        except sqlite3.Error as exc:
            raise BackendUnavailableError("Local store write failed", exc) from exc

        self._logger.debug("Local store saved %d records.", len(records))
        return True

    def mirror(
        self,
        records: Sequence[UserRecord],
        removed_emails: Iterable[str] = (),
    ) -> None:
        """Apply a remote write to the local copy without a full replace.

        Records are upserted by email, *removed_emails* are deleted and
        every other local row (including records that only exist locally
        and are waiting for reconciliation) is kept.
        """
        update_columns = ", ".join(
            f"{column} = excluded.{column}" for column in _COLUMNS if column != "email"
        )
        removed = list(removed_emails)
        try:
            with self._db.batch_write():
                self._db.sqlite.executemany(
                    f"{_INSERT_SQL} ON CONFLICT(email) DO UPDATE SET {update_columns}",
                    [self._record_to_params(r) for r in records],
                )
                if removed:
                    placeholders = ", ".join("?" for _ in removed)
                    self._db.sqlite.execute(
                        f"DELETE FROM {self.TABLE} WHERE email IN ({placeholders})",
                        removed,
                    )
        except sqlite3.Error as exc:
            raise BackendUnavailableError("Local mirror write failed", exc) from exc

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> dict[str, Any]:
        entry: dict[str, Any] = dict(row)
        raw_device: Optional[str] = entry.get("device_info")
        if raw_device is not None:
            try:
                entry["device_info"] = json.loads(raw_device)
            except (json.JSONDecodeError, TypeError):
                entry["device_info"] = raw_device
        entry["is_active"] = bool(entry.get("is_active", 1))
        entry["synced_from_local"] = bool(entry.get("synced_from_local", 0))
        return entry

    @staticmethod
    def _record_to_params(record: UserRecord) -> tuple[object, ...]:
        def _iso(value: Any) -> Optional[str]:
            return value.isoformat() if value is not None else None

        return (
            record.id,
            record.full_name,
            record.email,
            record.password_digest,
            _iso(record.registration_date),
            _iso(record.last_login),
            int(record.is_active),
            record.login_attempts,
            _iso(record.locked_until),
            str(record.membership_type),
            json.dumps(record.device_info) if record.device_info is not None else None,
            record.last_device,
            _iso(record.password_changed_at),
            int(record.synced_from_local),
        )

    @staticmethod
    def _classify_integrity_error(
        exc: sqlite3.IntegrityError,
        records: Sequence[UserRecord],
    ) -> Exception:
        message = str(exc)
        if "users.email" in message:
            emails = ", ".join(sorted({r.email for r in records}))
            return ConstraintViolationError(emails or "unknown", exc)
        return BackendUnavailableError(f"Local store write failed: {message}", exc)

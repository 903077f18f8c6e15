"""
Session Repository.

Data access for the ``sessions`` collection in the local SQLite
database.  Sessions are per-device state and are never written to the
remote document.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from fitaccounts.database import DatabaseManager
from fitaccounts.errors import BackendUnavailableError
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.session import Session


class SessionRepository:
    """CRUD over the ``sessions`` table."""

    TABLE = "sessions"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    def insert(self, session: Session) -> Session:
        try:
            with self._db.batch_write():
                self._db.sqlite.execute(
                    f"INSERT INTO {self.TABLE} "
                    "(session_id, user_id, created_at, expires_at, is_active) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        session.session_id,
                        session.user_id,
                        session.created_at.isoformat(timespec="microseconds"),
                        session.expires_at.isoformat(timespec="microseconds"),
                        int(session.is_active),
                    ),
                )
        except sqlite3.Error as exc:
            raise BackendUnavailableError("Could not persist session", exc) from exc
        return session

    def get(self, session_id: str) -> Optional[Session]:
        try:
            with self._db.write_lock:
                row = self._db.sqlite.execute(
                    f"SELECT * FROM {self.TABLE} WHERE session_id = ?", (session_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise BackendUnavailableError("Could not read session", exc) from exc
        if row is None:
            return None
        data = dict(row)
        data["is_active"] = bool(data["is_active"])
        return Session.model_validate(data)

    def deactivate(self, session_id: str) -> bool:
        """Clear ``is_active``.  Returns ``True`` if a row was changed."""
        try:
            with self._db.batch_write():
                cursor = self._db.sqlite.execute(
                    f"UPDATE {self.TABLE} SET is_active = 0 "
                    "WHERE session_id = ? AND is_active = 1",
                    (session_id,),
                )
        except sqlite3.Error as exc:
            raise BackendUnavailableError("Could not deactivate session", exc) from exc
        return cursor.rowcount > 0

    def list_active_for_user(self, user_id: str) -> list[Session]:
        try:
            with self._db.write_lock:
                rows = self._db.sqlite.execute(
                    f"SELECT * FROM {self.TABLE} WHERE user_id = ? AND is_active = 1 "
                    "ORDER BY created_at",
                    (user_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise BackendUnavailableError("Could not list sessions", exc) from exc
        return [
            Session.model_validate({**dict(row), "is_active": bool(row["is_active"])})
            for row in rows
        ]

    def delete_expired(self, now: datetime) -> int:
        """Delete sessions that expired before *now*; return the count."""
        try:
            with self._db.batch_write():
                cursor = self._db.sqlite.execute(
                    f"DELETE FROM {self.TABLE} WHERE expires_at < ?",
                    (now.isoformat(timespec="microseconds"),),
                )
        except sqlite3.Error as exc:
            raise BackendUnavailableError("Could not purge sessions", exc) from exc
        if cursor.rowcount:
            self._logger.info("Purged %d expired sessions.", cursor.rowcount)
        return cursor.rowcount

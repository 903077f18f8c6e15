"""
Activity Repository.

Data access for the per-user ``user_activity`` collection in SQLite.
"""

from __future__ import annotations

import json
import sqlite3

from fitaccounts.database import DatabaseManager
from fitaccounts.errors import BackendUnavailableError
from fitaccounts.logger import StructuredLogger
from fitaccounts.utils.activity import ActivityEvent


class ActivityRepository:
    """Append-only store of ``ActivityEvent`` rows."""

    TABLE = "user_activity"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    def insert(self, event: ActivityEvent) -> None:
        try:
            with self._db.batch_write():
                self._db.sqlite.execute(
                    f"""
                    INSERT INTO {self.TABLE} (user_id, action, details, timestamp, device_info)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        event.user_id,
                        str(event.action),
                        event.details,
                        event.timestamp,
                        json.dumps(event.device_info, default=str)
                        if event.device_info is not None else None,
                    ),
                )
        except sqlite3.Error as exc:
            raise BackendUnavailableError("Could not write activity event", exc) from exc

    def get_user_activity(self, user_id: str, limit: int = 50) -> list[ActivityEvent]:
        """Return the newest *limit* events for *user_id*, newest first."""
        try:
            with self._db.write_lock:
                rows = self._db.sqlite.execute(
                    f"SELECT * FROM {self.TABLE} WHERE user_id = ? "
                    "ORDER BY id DESC LIMIT ?",
                    (user_id, limit),
                ).fetchall()
        except sqlite3.Error as exc:
            raise BackendUnavailableError("Could not read activity log", exc) from exc

        events: list[ActivityEvent] = []
        for row in rows:
            data = dict(row)
            if data.get("device_info"):
                try:
                    data["device_info"] = json.loads(data["device_info"])
                except json.JSONDecodeError:
                    pass
            events.append(ActivityEvent.model_validate(data))
        return events

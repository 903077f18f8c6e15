"""
Demo Cloud Record Store.

A JSON file standing in for the browser's localStorage "cloud" used by
the cross-device login demo.  The file holds two keys::

    {"cloudUsers": [...], "lastSync": "<ISO-8601>"}

Writes go to a sibling temp file that is then moved over the original,
so a crash mid-write never leaves a truncated document behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Sequence

from fitaccounts.clock import Clock, SystemClock
from fitaccounts.errors import BackendUnavailableError
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.account_models import DemoCloudStatus
from fitaccounts.models.user import UserRecord
from fitaccounts.repositories.base_repository import BaseRecordStore

USERS_KEY: str = "cloudUsers"
SYNC_KEY: str = "lastSync"


class DemoCloudRecordStore(BaseRecordStore):
    """File-backed record store for the cross-device demo."""

    NAME = "demo"

    def __init__(
        self,
        path: Path | str,
        logger: StructuredLogger,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(logger)
        self._path = Path(path)
        self._clock: Clock = clock or SystemClock()

    @property
    def path(self) -> Path:
        return self._path

    def get_all(self) -> list[UserRecord]:
        with self._lock:
            document = self._read_document()
        entries = document.get(USERS_KEY) or []
        if not isinstance(entries, list):
            raise BackendUnavailableError(
                f"Demo store key {USERS_KEY!r} is not a list."
            )
        return self._parse_entries(entries)

    def save_all(self, records: Sequence[UserRecord]) -> bool:
        self._check_unique(records)
        with self._lock:
            self._write_document({
                USERS_KEY: [r.to_document() for r in records] + self._quarantined,
                SYNC_KEY: self._clock.now().isoformat(),
            })
        self._logger.info(
            "Demo cloud synced %d users.", len(records),
            extra={"event": "DEMO_SYNC", "store": self.NAME},
        )
        return True

    def reset(self) -> None:
        """Remove all demo data, like clearing localStorage."""
        with self._lock:
            try:
                self._path.unlink(missing_ok=True)
            except OSError as exc:
                raise BackendUnavailableError("Could not reset demo store", exc) from exc
            self._quarantined = []
        self._logger.info("Demo data reset.", extra={"store": self.NAME})

    def status(self) -> DemoCloudStatus:
        with self._lock:
            document = self._read_document()
        users = document.get(USERS_KEY) or []
        return DemoCloudStatus(
            total_users=len(users) if isinstance(users, list) else 0,
            last_sync=document.get(SYNC_KEY),
        )

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def _read_document(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise BackendUnavailableError("Demo store is unreadable", exc) from exc
        if not raw.strip():
            return {}
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            self._logger.error(
                "Demo store file is not valid JSON: %s", self._path,
                extra={"event": "CORRUPT_STATE", "store": self.NAME},
            )
            raise BackendUnavailableError("Demo store is malformed", exc) from exc
        if not isinstance(document, dict):
            raise BackendUnavailableError("Demo store root is not an object.")
        return document

    def _write_document(self, document: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", dir=str(self._path.parent),
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise BackendUnavailableError("Demo store write failed", exc) from exc

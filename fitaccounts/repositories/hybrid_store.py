"""
Hybrid Record Store.

Remote-first store with the local SQLite copy as a fallback.  Every
call goes to the remote document first; when the remote backend is
unavailable the same call is served from the local store, a warning is
logged and ``degraded`` is raised so the account service can report it.

After a successful remote write the new record set is mirrored into the
local store.  The mirror is an upsert by email plus deletion of emails
that were present in the last remote snapshot and are gone now; records
that exist only locally are left alone until the sync coordinator
appends them to the remote.  Mirror failures never fail the write.

A record set that was read from the local copy is only ever written back
to the local copy, even if the remote has recovered in the meantime;
the sync coordinator pushes the local-only records later.
"""

from __future__ import annotations

from typing import Optional, Sequence

from fitaccounts.errors import BackendUnavailableError, StoreError
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.user import UserRecord
from fitaccounts.repositories.base_repository import BaseRecordStore
from fitaccounts.repositories.local_store import LocalRecordStore
from fitaccounts.repositories.remote_store import RemoteRecordStore


class HybridRecordStore(BaseRecordStore):
    """Remote-first record store with automatic local failover."""

    NAME = "hybrid"

    def __init__(
        self,
        remote: RemoteRecordStore,
        local: LocalRecordStore,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._remote = remote
        self._local = local
        self._last_source: Optional[str] = None
        self._last_remote_emails: Optional[set[str]] = None

    @property
    def remote(self) -> RemoteRecordStore:
        return self._remote

    @property
    def local(self) -> LocalRecordStore:
        return self._local

    def get_all(self) -> list[UserRecord]:
        try:
            records = self._remote.get_all()
        except BackendUnavailableError as exc:
            self._enter_degraded("read", exc)
            records = self._local.get_all()
            self._last_source = self._local.NAME
            self._quarantined = self._local.quarantined
            return records

        self._degraded = False
        self._last_source = self._remote.NAME
        self._last_remote_emails = {r.email for r in records}
        self._quarantined = self._remote.quarantined
        return records

    def save_all(self, records: Sequence[UserRecord]) -> bool:
        self._check_unique(records)
        if self._last_source == self._local.NAME:
            # A set read from the local copy must not replace the remote document.
            self._degraded = True
            self._logger.warning(
                "Write deferred to local store until the next sync.",
                extra={"event": "REMOTE_WRITE_DEFERRED", "store": self.NAME},
            )
            return self._local.save_all(records)
        try:
            self._remote.save_all(records)
        except BackendUnavailableError as exc:
            self._enter_degraded("write", exc)
            return self._save_local_fallback(records)

        self._degraded = False
        removed = self._removed_since_snapshot(records)
        self._last_remote_emails = {r.email for r in records}
        try:
            self._local.mirror(records, removed)
        except StoreError as exc:
            self._logger.warning(
                "Local mirror of remote write failed: %s", exc,
                extra={"event": "MIRROR_FAILED", "store": self.NAME},
            )
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _save_local_fallback(self, records: Sequence[UserRecord]) -> bool:
        # A set read from the remote must not wipe local-only records.
        if self._last_source == self._remote.NAME:
            self._local.mirror(records, self._removed_since_snapshot(records))
            return True
        return self._local.save_all(records)

    def _removed_since_snapshot(self, records: Sequence[UserRecord]) -> set[str]:
        if self._last_remote_emails is None:
            return set()
        return self._last_remote_emails - {r.email for r in records}

    def _enter_degraded(self, operation: str, exc: BackendUnavailableError) -> None:
        self._degraded = True
        self._logger.warning(
            "Remote %s failed, using local store: %s", operation, exc.message,
            extra={"event": "DEGRADED", "store": self.NAME},
        )

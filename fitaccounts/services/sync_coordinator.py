"""
Sync Coordinator.

One-directional, eventually consistent reconciliation of the local
store into the remote store.  Every local record whose email is absent
remotely is appended to the remote set with a fresh id and
``synced_from_local=True``; for emails present on both sides the remote
version wins untouched.  The local store is never written.
"""

from __future__ import annotations

from typing import Optional

from fitaccounts.clock import IdGenerator
from fitaccounts.errors import StoreError
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.account_models import SyncResult
from fitaccounts.repositories.base_repository import BaseRecordStore
from fitaccounts.repositories.hybrid_store import HybridRecordStore
from fitaccounts.services.base_service import BaseService


class SyncCoordinator(BaseService):
    """Appends local-only records to the remote set of record."""

    def __init__(
        self,
        logger: StructuredLogger,
        id_generator: Optional[IdGenerator] = None,
    ) -> None:
        super().__init__(logger)
        self._ids: IdGenerator = id_generator or IdGenerator()

    def reconcile(self, local: BaseRecordStore, remote: BaseRecordStore) -> SyncResult:
        """Merge *local* into *remote*.  Never raises."""
        try:
            with remote.write_lock:
                local_records = local.get_all()
                remote_records = remote.get_all()

                remote_emails = {r.email for r in remote_records}
                taken_ids = {r.id for r in remote_records}
                appended = []
                for record in local_records:
                    if record.email in remote_emails:
                        continue
                    new_id = self._ids.new_id()
                    while new_id in taken_ids:
                        new_id = self._ids.new_id()
                    taken_ids.add(new_id)
                    appended.append(record.model_copy(update={
                        "id": new_id, "synced_from_local": True,
                    }))

                merged = [*remote_records, *appended]
                remote.save_all(merged)
        except StoreError as exc:
            self._logger.warning(
                "Sync failed: %s", exc.message,
                extra={"event": "SYNC_FAILED"},
            )
            return SyncResult(success=False, error_message=exc.message)

        self._logger.info(
            "Local data synced to remote: %d appended, %d total.",
            len(appended), len(merged),
            extra={"event": "SYNC_COMPLETE"},
        )
        return SyncResult(success=True, merged=len(merged), appended=len(appended))

    def reconcile_hybrid(self, hybrid: HybridRecordStore) -> SyncResult:
        """Reconcile the two halves of *hybrid* while holding its lock."""
        with hybrid.write_lock:
            return self.reconcile(hybrid.local, hybrid.remote)

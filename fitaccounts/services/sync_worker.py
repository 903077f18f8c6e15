"""
Periodic background push of a hybrid store's local records to its remote half.

The worker sleeps ``SYNC_INTERVAL_S`` between passes.  Every failed pass
doubles the wait, up to ``SYNC_MAX_INTERVAL_S``; one successful pass
resets it.
"""

from __future__ import annotations

import threading
from typing import Optional

from fitaccounts.config import AppConfig
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.account_models import SyncResult
from fitaccounts.repositories.hybrid_store import HybridRecordStore
from fitaccounts.services.base_service import BaseService
from fitaccounts.services.sync_coordinator import SyncCoordinator

_JOIN_TIMEOUT_S: float = 10.0


class SyncWorkerService(BaseService):
    """Runs :meth:`SyncCoordinator.reconcile_hybrid` on a daemon thread."""

    _MAX_DOUBLINGS: int = 6

    def __init__(
        self,
        coordinator: SyncCoordinator,
        hybrid: HybridRecordStore,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._coordinator = coordinator
        self._hybrid = hybrid
        self._interval_s: float = config.SYNC_INTERVAL_S
        self._max_interval_s: float = config.SYNC_MAX_INTERVAL_S
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._failures: int = 0
        self._last_result: Optional[SyncResult] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def last_result(self) -> Optional[SyncResult]:
        return self._last_result

    def start(self) -> None:
        """Launch the thread; a second call while it runs does nothing."""
        if self.is_running:
            return
        self._wake.clear()
        self._failures = 0
        self._thread = threading.Thread(target=self._loop, name="fitaccounts-sync", daemon=True)
        self._thread.start()
        self._logger.info("Background sync started.", extra={"event": "SYNC_WORKER_STARTED"})

    def stop(self) -> None:
        if self._thread is None:
            return
        self._wake.set()
        self._thread.join(timeout=_JOIN_TIMEOUT_S)
        if self._thread.is_alive():
            self._logger.warning(
                f"Background sync did not exit within {_JOIN_TIMEOUT_S:.0f}s.",
                extra={"event": "SYNC_WORKER_STUCK"},
            )
        else:
            self._logger.info("Background sync stopped.", extra={"event": "SYNC_WORKER_STOPPED"})
        self._thread = None

    def run_once(self) -> SyncResult:
        """Reconcile now, on the calling thread, and update the backoff count."""
        result = self._coordinator.reconcile_hybrid(self._hybrid)
        self._failures = 0 if result.success else self._failures + 1
        self._last_result = result
        return result

    def calculate_backoff_interval(self) -> float:
        """Seconds to wait before the next pass."""
        if not self._failures:
            return self._interval_s
        doublings = min(self._failures, self._MAX_DOUBLINGS)
        return min(self._interval_s * 2 ** doublings, self._max_interval_s)

    def _loop(self) -> None:
        try:
            # Event.wait returns True once stop() has been requested.
            while not self._wake.wait(timeout=self.calculate_backoff_interval()):
                self.run_once()
        except Exception:
            self._logger.error(
                "Background sync thread died.",
                exc_info=True,
                extra={"event": "SYNC_WORKER_CRASHED"},
            )

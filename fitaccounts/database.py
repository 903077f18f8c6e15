"""
Connections used by the account stores.

``DatabaseManager`` holds the on-device SQLite connection, which is always
open, and an ``httpx.Client`` for the remote user document, which exists
only when both a base URL and an API key are configured.  Without them
the manager is offline and :attr:`DatabaseManager.remote` raises
``BackendUnavailableError``; the hybrid store reads that as "use the
local copy".

No queries live here.  Stores and repositories borrow the connection,
take :attr:`DatabaseManager.write_lock` around writes and may group
several writes with :meth:`DatabaseManager.batch_write`.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import httpx

from fitaccounts.errors import BackendUnavailableError
from fitaccounts.logger import StructuredLogger


class DatabaseManager:
    """Local SQLite connection plus the optional remote document client.

    ``transport`` is handed to ``httpx.Client`` so tests can serve the
    remote document from an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        sqlite_path: Path | str,
        logger: StructuredLogger,
        remote_base_url: str = "",
        remote_api_key: str = "",
        remote_key_header: str = "X-Master-Key",
        remote_timeout_s: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._logger = logger
        self._write_lock = threading.RLock()
        self._in_batch = False
        self._remote = self._build_remote_client(
            remote_base_url, remote_api_key, remote_key_header, remote_timeout_s, transport,
        )
        self._sqlite_conn = self._open_sqlite(sqlite_path)

    @property
    def remote(self) -> httpx.Client:
        if self._remote is None:
            raise BackendUnavailableError("remote user document is not configured (offline)")
        return self._remote

    @property
    def is_online(self) -> bool:
        return self._remote is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Re-entrant lock every SQLite writer holds while it writes and commits."""
        return self._write_lock

    @property
    def in_batch(self) -> bool:
        """Whether a :meth:`batch_write` block is open; repositories skip their own commit."""
        return self._in_batch

    @contextmanager
    def batch_write(self) -> Iterator[None]:
        """Run the enclosed SQLite writes as one transaction.

        Nested blocks join the outermost one.  An exception rolls the
        whole batch back and propagates.
        """
        if self._in_batch:
            yield
            return

        with self._write_lock:
            self._in_batch = True
            try:
                yield
            except BaseException:
                self._sqlite_conn.rollback()
                self._logger.warning("Local batch rolled back.", extra={"store": "local"})
                raise
            else:
                self._sqlite_conn.commit()
            finally:
                self._in_batch = False

    def close(self) -> None:
        """Release both connections.  Calling it twice is harmless."""
        with self._write_lock:
            if self._remote is not None:
                self._remote.close()
                self._remote = None
            try:
                self._sqlite_conn.close()
            except sqlite3.ProgrammingError:
                return
            self._logger.info("Account database closed.", extra={"store": "local"})

    def _build_remote_client(
        self,
        base_url: str,
        api_key: str,
        key_header: str,
        timeout_s: float,
        transport: Optional[httpx.BaseTransport],
    ) -> Optional[httpx.Client]:
        if not (base_url and api_key):
            self._logger.warning(
                "No remote endpoint or key configured; remote store is offline.",
                extra={"store": "remote"},
            )
            return None
        client = httpx.Client(
            base_url=base_url,
            headers={key_header: api_key, "Content-Type": "application/json"},
            timeout=timeout_s,
            transport=transport,
        )
        self._logger.info(f"Remote user document client ready for {base_url}.", extra={"store": "remote"})
        return client

    def _open_sqlite(self, path: Path | str) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
        except PermissionError as exc:
            message = f"Cannot open the local account database at '{path}': check its permissions."
            self._logger.error(message, extra={"store": "local"})
            raise PermissionError(message) from exc
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        self._logger.info(f"Local account database opened at {path}.", extra={"store": "local"})
        return conn

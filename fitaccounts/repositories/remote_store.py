"""
Remote Record Store.

The whole user collection lives in one JSON document behind an HTTP
document API (jsonbin-style).  Reads fetch the latest version of the
document, writes replace it.  There is no per-record endpoint, so every
mutation is a read-modify-write of the entire collection.

Document shape::

    {"users": [ {...camelCase UserRecord...}, ... ],
     "lastUpdated": "2024-03-01T12:00:00+00:00"}

Some APIs wrap the document as ``{"record": {...}}``; both forms are
accepted on read.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import httpx
from pydantic import ValidationError

from fitaccounts.clock import Clock, SystemClock
from fitaccounts.database import DatabaseManager
from fitaccounts.errors import BackendUnavailableError
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.account_models import UserDocument
from fitaccounts.models.user import UserRecord
from fitaccounts.repositories.base_repository import BaseRecordStore


class RemoteRecordStore(BaseRecordStore):
    """Record store backed by a single remote JSON document.

    Parameters
    ----------
    db:
        ``DatabaseManager`` owning the configured ``httpx.Client``.
    bin_id:
        Identifier of the document, appended to the client's base URL.
    logger:
        Structured logger.
    clock:
        Source of the ``lastUpdated`` timestamp written on save.
    """

    NAME = "remote"

    def __init__(
        self,
        db: DatabaseManager,
        bin_id: str,
        logger: StructuredLogger,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._bin_id = bin_id
        self._clock: Clock = clock or SystemClock()

    @property
    def document_path(self) -> str:
        return f"/{self._bin_id}"

    def get_all(self) -> list[UserRecord]:
        payload = self._request("GET", f"{self.document_path}/latest")
        document = self._unwrap(payload)
        return self._parse_entries(document.users)

    def save_all(self, records: Sequence[UserRecord]) -> bool:
        self._check_unique(records)
        body: dict[str, Any] = {
            "users": [record.to_document() for record in records] + self._quarantined,
            "lastUpdated": self._clock.now().isoformat(),
        }
        self._request("PUT", self.document_path, json=body)
        self._logger.debug("Remote store saved %d records.", len(records))
        return True

    def ping(self) -> bool:
        """Return ``True`` when the document can be fetched."""
        try:
            self._request("GET", f"{self.document_path}/latest")
        except BackendUnavailableError:
            return False
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Issue one HTTP call and return the decoded JSON body.

        Raises
        ------
        BackendUnavailableError
            On offline mode, transport errors, non-2xx statuses or a body
            that is not JSON.
        """
        if not self._bin_id:
            raise BackendUnavailableError("Remote document id is not configured.")
        client = self._db.remote
        try:
            response = client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            self._logger.warning(
                "Remote %s %s returned HTTP %d",
                method, path, exc.response.status_code,
                extra={"event": "BACKEND_UNAVAILABLE", "store": self.NAME},
            )
            raise BackendUnavailableError(
                f"Remote store returned HTTP {exc.response.status_code}", exc,
            ) from exc
        except httpx.HTTPError as exc:
            self._logger.warning(
                "Remote %s %s failed: %s", method, path, exc,
                extra={"event": "BACKEND_UNAVAILABLE", "store": self.NAME},
            )
            raise BackendUnavailableError("Remote store is unreachable", exc) from exc
        except ValueError as exc:
            raise BackendUnavailableError("Remote store returned invalid JSON", exc) from exc

    def _unwrap(self, payload: Any) -> UserDocument:
        if isinstance(payload, dict) and isinstance(payload.get("record"), dict):
            payload = payload["record"]
        try:
            return UserDocument.model_validate(payload)
        except ValidationError as exc:
            self._logger.error(
                "Remote document has an unexpected shape.",
                extra={"event": "CORRUPT_STATE", "store": self.NAME},
            )
            raise BackendUnavailableError("Remote document is malformed", exc) from exc

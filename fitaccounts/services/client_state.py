"""
Encrypted Client State Cache.

Keeps the "current session" id and the last-known user fields for quick
re-display on the next start, the way the browser client kept them in
localStorage.  The cache is advisory: it is never consulted for an
authorisation decision, reads that fail return ``None`` and writes that
fail are logged and return ``False``.

Security model
--------------
- Payloads are encrypted with AES-256-GCM (confidentiality and
  integrity).
- The key is derived with PBKDF2-HMAC-SHA256 from ``CLIENT_STATE_SECRET``
  when one is configured, otherwise from machine identity
  (``hostname:username``).  The PBKDF2 salt is 32 random bytes generated
  once per database and stored next to the ciphertext; the key itself is
  never persisted.

Storage layout (single-row table, ``id = 1``)::

    client_state
    ├── id                INTEGER PRIMARY KEY  (always 1)
    ├── kdf_salt          BLOB
    ├── encrypted_payload BLOB
    ├── nonce             BLOB
    └── tag               BLOB
"""

from __future__ import annotations

import getpass
import json
import os
import socket
import sqlite3
import threading
from typing import Optional

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2
from pydantic import ValidationError

from fitaccounts.clock import Clock, SystemClock
from fitaccounts.database import DatabaseManager
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.session import ClientState
from fitaccounts.models.user import UserView


class ClientStateCache:
    """Single-slot encrypted store for advisory client state.

    Architecture Note
    -----------------
    Like the session cache it replaces, this class talks to SQLite
    directly rather than through a repository: the row is device
    infrastructure state, not account data.

    Parameters
    ----------
    db:
        ``DatabaseManager`` providing the SQLite connection and write lock.
    logger:
        Structured JSON logger.
    secret:
        Optional passphrase for key derivation.  Empty means machine
        identity is used.
    iterations:
        PBKDF2 iteration count.
    clock:
        Source of ``cached_at``.
    """

    _KEY_LENGTH: int = 32  # 256 bits
    _SALT_LENGTH: int = 32

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        secret: str = "",
        iterations: int = 200_000,
        clock: Optional[Clock] = None,
    ) -> None:
        self._db: DatabaseManager = db
        self._logger: StructuredLogger = logger
        self._secret: str = secret
        self._iterations: int = iterations
        self._clock: Clock = clock or SystemClock()
        self._key: Optional[bytes] = None
        self._key_lock: threading.Lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set_current_session(self, session_id: Optional[str]) -> bool:
        """Point the current-session slot at *session_id* (``None`` clears it)."""
        state = self.load()
        if state is None:
            state = ClientState(cached_at=self._now_iso())
        return self._store(state.model_copy(update={
            "current_session_id": session_id,
            "cached_at": self._now_iso(),
        }))

    def set_last_user(self, user: UserView) -> bool:
        """Remember *user*'s display fields as the last-known user."""
        state = self.load()
        if state is None:
            state = ClientState(cached_at=self._now_iso())
        return self._store(state.model_copy(update={
            "user_id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "membership_type": user.membership_type,
            "cached_at": self._now_iso(),
        }))

    def load(self) -> Optional[ClientState]:
        """Decrypt and return the cached state, or ``None``."""
        try:
            with self._db.write_lock:
                row = self._db.sqlite.execute(
                    "SELECT kdf_salt, encrypted_payload, nonce, tag "
                    "FROM client_state WHERE id = 1",
                ).fetchone()
        except sqlite3.Error as exc:
            self._logger.warning("Failed to read client state: %s", exc)
            return None

        if row is None or row["encrypted_payload"] is None:
            return None

        try:
            key = self._derive_key(row["kdf_salt"])
            cipher = AES.new(key, AES.MODE_GCM, nonce=row["nonce"])
            plaintext: bytes = cipher.decrypt_and_verify(
                row["encrypted_payload"], row["tag"],
            )
        except (ValueError, KeyError, OSError) as exc:
            self._logger.warning(
                "Decryption of client state failed (corrupted data or "
                "key changed): %s",
                exc,
            )
            return None

        try:
            return ClientState.model_validate(json.loads(plaintext.decode("utf-8")))
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
            self._logger.warning("Client state payload is malformed: %s", exc)
            return None

    def clear(self) -> None:
        """Forget the cached state.  The KDF salt is kept."""
        try:
            with self._db.batch_write():
                self._db.sqlite.execute(
                    "UPDATE client_state SET encrypted_payload = NULL, "
                    "nonce = NULL, tag = NULL, updated_at = CURRENT_TIMESTAMP "
                    "WHERE id = 1",
                )
            self._logger.info("Client state cleared.")
        except sqlite3.Error as exc:
            self._logger.error("Failed to clear client state: %s", exc)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _store(self, state: ClientState) -> bool:
        plaintext = json.dumps(
            state.model_dump(mode="json"), ensure_ascii=False,
        ).encode("utf-8")

        try:
            with self._db.batch_write():
                salt = self._get_or_create_salt()
                key = self._derive_key(salt)
                cipher = AES.new(key, AES.MODE_GCM)
                ciphertext, tag = cipher.encrypt_and_digest(plaintext)
                self._db.sqlite.execute(
                    """
                    UPDATE client_state SET
                        encrypted_payload = ?,
                        nonce             = ?,
                        tag               = ?,
                        updated_at        = CURRENT_TIMESTAMP
                    WHERE id = 1
                    """,
                    (ciphertext, cipher.nonce, tag),
                )
        except (sqlite3.Error, ValueError, KeyError, OSError) as exc:
            self._logger.warning("Failed to write client state: %s", exc)
            return False
        return True

    def _get_or_create_salt(self) -> bytes:
        """Return the per-database KDF salt, creating the row on first use.

        Must be called inside ``batch_write``.
        """
        row = self._db.sqlite.execute(
            "SELECT kdf_salt FROM client_state WHERE id = 1",
        ).fetchone()
        if row is not None and len(row["kdf_salt"]) == self._SALT_LENGTH:
            return bytes(row["kdf_salt"])

        salt = os.urandom(self._SALT_LENGTH)
        self._db.sqlite.execute(
            """
            INSERT INTO client_state (id, kdf_salt) VALUES (1, ?)
            ON CONFLICT(id) DO UPDATE SET
                kdf_salt = excluded.kdf_salt,
                encrypted_payload = NULL, nonce = NULL, tag = NULL
            """,
            (salt,),
        )
        with self._key_lock:
            self._key = None
        self._logger.info("Client state key salt created.")
        return salt

    def _derive_key(self, salt: bytes) -> bytes:
        with self._key_lock:
            if self._key is None:
                password = self._secret or f"{socket.gethostname()}:{getpass.getuser()}"
                self._key = PBKDF2(
                    password=password,
                    salt=bytes(salt),
                    dkLen=self._KEY_LENGTH,
                    count=self._iterations,
                    hmac_hash_module=SHA256,
                )
            return self._key

    def _now_iso(self) -> str:
        return self._clock.now().isoformat()

"""
On-device SQLite schema for the account store.

``initialize_schema`` is called once per connection at startup.  A fresh
file gets every table from :data:`_TABLES`; a file written by an older
build is brought forward through :data:`_MIGRATIONS`.  The version lives
in the single-row ``schema_version`` table and is bumped in the same
transaction as the DDL, so a failed upgrade leaves the old version in
place and is retried on the next start.

Tables
~~~~~~
``users``          one row per account, unique on ``email``
``sessions``       login sessions, looked up by ``user_id``
``user_activity``  append-only account event log
``client_state``   one encrypted row (``id = 1``) for the signed-in client
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from fitaccounts.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 2

_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    version INTEGER NOT NULL,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

_TABLES: dict[str, str] = {
    "users": """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            full_name TEXT NOT NULL,
            email TEXT NOT NULL,
            password_digest TEXT NOT NULL,
            registration_date TEXT NOT NULL,
            last_login TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            login_attempts INTEGER NOT NULL DEFAULT 0,
            locked_until TEXT,
            membership_type TEXT NOT NULL DEFAULT 'basic',
            device_info TEXT,
            last_device TEXT,
            password_changed_at TEXT,
            synced_from_local INTEGER NOT NULL DEFAULT 0
        )
    """,
    "sessions": """
        CREATE TABLE IF NOT EXISTS sessions (
            session_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1
        )
    """,
    "user_activity": """
        CREATE TABLE IF NOT EXISTS user_activity (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            action TEXT NOT NULL,
            details TEXT NOT NULL DEFAULT '',
            timestamp TEXT NOT NULL,
            device_info TEXT
        )
    """,
    "client_state": """
        CREATE TABLE IF NOT EXISTS client_state (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            kdf_salt BLOB NOT NULL,
            encrypted_payload BLOB,
            nonce BLOB,
            tag BLOB,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
}

# (index name, table, columns, unique)
_INDEXES: list[tuple[str, str, str, bool]] = [
    ("idx_users_email", "users", "email", True),
    ("idx_users_full_name", "users", "full_name", False),
    ("idx_sessions_user_id", "sessions", "user_id", False),
    ("idx_sessions_expires_at", "sessions", "expires_at", False),
    ("idx_user_activity_user_id", "user_activity", "user_id", False),
    ("idx_user_activity_action", "user_activity", "action", False),
]


def _read_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return 0 if row is None else int(row[0])


def _write_version(conn: sqlite3.Connection, version: int) -> None:
    # No commit here: the bump belongs to the caller's upgrade transaction.
    conn.execute(
        "INSERT INTO schema_version (id, version) VALUES (1, ?) "
        "ON CONFLICT(id) DO UPDATE SET version = excluded.version, "
        "applied_at = CURRENT_TIMESTAMP",
        (version,),
    )


def _create_fresh(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    for ddl in _TABLES.values():
        conn.execute(ddl)
    for name, table, columns, unique in _INDEXES:
        kind = "UNIQUE INDEX" if unique else "INDEX"
        conn.execute(f"CREATE {kind} IF NOT EXISTS {name} ON {table}({columns})")
    logger.info(
        f"Created {len(_TABLES)} tables and {len(_INDEXES)} indexes.",
        extra={"event": "SCHEMA_CREATED", "store": "local"},
    )


def _user_columns(conn: sqlite3.Connection) -> set[str]:
    return {row[1] for row in conn.execute("PRAGMA table_info(users)").fetchall()}


def _migrate_to_v2(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Add password-change, sync and last-device columns; create ``client_state``."""
    present = _user_columns(conn)
    for column, ddl_type in (
        ("password_changed_at", "TEXT"),
        ("synced_from_local", "INTEGER NOT NULL DEFAULT 0"),
        ("last_device", "TEXT"),
    ):
        if column not in present:
            conn.execute(f"ALTER TABLE users ADD COLUMN {column} {ddl_type}")
    conn.execute(_TABLES["client_state"])
    logger.info("Migrated account schema to version 2.", extra={"event": "SCHEMA_MIGRATED"})


Migration = Callable[[sqlite3.Connection, StructuredLogger], None]

# Keyed by the version each migration produces.
_MIGRATIONS: dict[int, Migration] = {
    2: _migrate_to_v2,
}


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Bring *conn* up to :data:`CURRENT_SCHEMA_VERSION`.

    Safe to call on every start.  Raises whatever SQLite raised if the
    upgrade fails, after rolling it back.
    """
    conn.execute(_VERSION_TABLE)
    conn.commit()

    found = _read_version(conn)
    if found >= CURRENT_SCHEMA_VERSION:
        logger.debug(f"Account schema already at version {found}.")
        return

    try:
        if found == 0:
            _create_fresh(conn, logger)
        else:
            for target in sorted(v for v in _MIGRATIONS if found < v <= CURRENT_SCHEMA_VERSION):
                _MIGRATIONS[target](conn, logger)
        _write_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.error(
            f"Schema upgrade from version {found} failed; rolled back.",
            extra={"event": "SCHEMA_UPGRADE_FAILED"},
        )
        raise

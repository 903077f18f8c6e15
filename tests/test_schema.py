from __future__ import annotations

import sqlite3

import pytest

from fitaccounts.logger import StructuredLogger
from fitaccounts.schema import CURRENT_SCHEMA_VERSION, initialize_schema

_V1_DDL = [
    """
    CREATE TABLE schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE users (
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
        device_info TEXT
    )
    """,
    "CREATE UNIQUE INDEX idx_users_email ON users(email)",
    """
    CREATE TABLE sessions (
        session_id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE user_activity (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        action TEXT NOT NULL,
        details TEXT NOT NULL DEFAULT '',
        timestamp TEXT NOT NULL,
        device_info TEXT
    )
    """,
    "INSERT INTO schema_version (id, version) VALUES (1, 1)",
]


def _tables(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


def _columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def _version(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()[0]


def test_fresh_database_gets_every_table(logger: StructuredLogger) -> None:
    conn = sqlite3.connect(":memory:")
    initialize_schema(conn, logger)

    assert {"users", "sessions", "user_activity", "client_state"} <= _tables(conn)
    assert _version(conn) == CURRENT_SCHEMA_VERSION


def test_initialize_is_idempotent(logger: StructuredLogger) -> None:
    conn = sqlite3.connect(":memory:")
    initialize_schema(conn, logger)
    initialize_schema(conn, logger)

    assert _version(conn) == CURRENT_SCHEMA_VERSION


def test_v1_database_is_migrated_in_place(logger: StructuredLogger) -> None:
    conn = sqlite3.connect(":memory:")
    for ddl in _V1_DDL:
        conn.execute(ddl)
    conn.execute(
        "INSERT INTO users (id, full_name, email, password_digest, registration_date) "
        "VALUES ('1', 'Old User', 'old@example.com', 'x', '2023-01-01T00:00:00+00:00')"
    )
    conn.commit()

    initialize_schema(conn, logger)

    assert _version(conn) == 2
    assert {"password_changed_at", "synced_from_local", "last_device"} <= _columns(conn, "users")
    assert "client_state" in _tables(conn)
    row = conn.execute("SELECT email, synced_from_local FROM users").fetchone()
    assert row == ("old@example.com", 0)


def test_email_index_is_unique(logger: StructuredLogger) -> None:
    conn = sqlite3.connect(":memory:")
    initialize_schema(conn, logger)
    insert = (
        "INSERT INTO users (id, full_name, email, password_digest, registration_date) "
        "VALUES (?, 'U', 'same@example.com', 'x', '2024-01-01')"
    )
    conn.execute(insert, ("1",))

    with pytest.raises(sqlite3.IntegrityError, match="users.email"):
        conn.execute(insert, ("2",))

from __future__ import annotations

from datetime import datetime, timezone

from fitaccounts.database import DatabaseManager
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.enums import MembershipType
from fitaccounts.models.user import UserView
from fitaccounts.services.client_state import ClientStateCache

from .conftest import ManualClock

USER = UserView(
    id="u1",
    full_name="John Smith",
    email="john@demo.com",
    registration_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
    membership_type=MembershipType.PREMIUM,
)


def test_empty_cache_loads_none(client_state: ClientStateCache) -> None:
    assert client_state.load() is None


def test_session_and_user_round_trip(client_state: ClientStateCache, clock: ManualClock) -> None:
    assert client_state.set_current_session("session_1_abc")
    assert client_state.set_last_user(USER)

    state = client_state.load()
    assert state is not None
    assert state.current_session_id == "session_1_abc"
    assert state.email == "john@demo.com"
    assert state.membership_type == MembershipType.PREMIUM
    assert state.cached_at == clock.now().isoformat()


def test_payload_is_not_stored_in_plaintext(
    client_state: ClientStateCache, db: DatabaseManager,
) -> None:
    client_state.set_last_user(USER)

    row = db.sqlite.execute("SELECT encrypted_payload FROM client_state").fetchone()
    assert b"john@demo.com" not in bytes(row["encrypted_payload"])


def test_clear_forgets_state(client_state: ClientStateCache) -> None:
    client_state.set_last_user(USER)
    client_state.clear()

    assert client_state.load() is None


def test_tampered_payload_loads_none(
    client_state: ClientStateCache, db: DatabaseManager,
) -> None:
    client_state.set_current_session("session_1_abc")
    with db.write_lock:
        db.sqlite.execute("UPDATE client_state SET tag = ? WHERE id = 1", (b"\x00" * 16,))
        db.sqlite.commit()

    assert client_state.load() is None


def test_different_secret_cannot_read(
    client_state: ClientStateCache,
    db: DatabaseManager,
    logger: StructuredLogger,
) -> None:
    client_state.set_current_session("session_1_abc")

    other = ClientStateCache(db, logger, secret="another-secret", iterations=1_000)
    assert other.load() is None

"""
Session Manager.

Creates, validates and invalidates login sessions.  Sessions live in the
local ``sessions`` collection and reference a user by id; the owning
record is looked up in whichever record store the account service uses.

Validation order: not found, logged out, expired, then the owner check
(missing or deactivated user).  Validation never mutates state.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fitaccounts.clock import Clock, IdGenerator, SystemClock
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.account_models import SessionValidation
from fitaccounts.models.enums import SessionInvalidReason
from fitaccounts.models.session import Session
from fitaccounts.models.user import UserView
from fitaccounts.repositories.base_repository import BaseRecordStore
from fitaccounts.repositories.session_repository import SessionRepository
from fitaccounts.services.base_service import BaseService
from fitaccounts.services.client_state import ClientStateCache

DEFAULT_SESSION_TTL: timedelta = timedelta(hours=24)

_INVALID_MESSAGES: dict[SessionInvalidReason, str] = {
    SessionInvalidReason.NOT_FOUND: "Session not found",
    SessionInvalidReason.INACTIVE: "Session has been logged out",
    SessionInvalidReason.EXPIRED: "Session expired",
    SessionInvalidReason.USER_INACTIVE: "User account inactive",
}


class SessionManager(BaseService):
    """Session lifecycle over ``SessionRepository``.

    Parameters
    ----------
    repository:
        Persistence for ``Session`` rows.
    store:
        Record store used to resolve the session owner.
    logger:
        Structured JSON logger.
    client_state:
        Optional advisory cache holding the current-session slot.
    clock / id_generator:
        Injected time and id sources.
    ttl:
        Session lifetime.
    """

    def __init__(
        self,
        repository: SessionRepository,
        store: BaseRecordStore,
        logger: StructuredLogger,
        client_state: Optional[ClientStateCache] = None,
        clock: Optional[Clock] = None,
        id_generator: Optional[IdGenerator] = None,
        ttl: timedelta = DEFAULT_SESSION_TTL,
    ) -> None:
        super().__init__(logger)
        self._repository = repository
        self._store = store
        self._client_state = client_state
        self._clock: Clock = clock or SystemClock()
        self._ids: IdGenerator = id_generator or IdGenerator(self._clock)
        self._ttl = ttl

    def create(self, user_id: str) -> Session:
        """Persist a new active session for *user_id*.

        Raises
        ------
        BackendUnavailableError
            If the session row cannot be written.
        """
        now = self._clock.now()
        session = Session(
            session_id=self._ids.new_session_id(),
            user_id=user_id,
            created_at=now,
            expires_at=now + self._ttl,
            is_active=True,
        )
        self._repository.insert(session)
        if self._client_state is not None:
            self._client_state.set_current_session(session.session_id)
        self._logger.info(
            "Session created for user %s", user_id,
            extra={"event": "SESSION_CREATED", "user_id": user_id},
        )
        return session

    def validate(self, session_id: str) -> SessionValidation:
        session = self._repository.get(session_id)
        if session is None:
            return self._invalid(SessionInvalidReason.NOT_FOUND)
        if not session.is_active:
            return self._invalid(SessionInvalidReason.INACTIVE)
        if self._clock.now() > session.expires_at:
            return self._invalid(SessionInvalidReason.EXPIRED)

        owner = next(
            (r for r in self._store.get_all() if r.id == session.user_id), None,
        )
        if owner is None or not owner.is_active:
            return self._invalid(SessionInvalidReason.USER_INACTIVE)
        return SessionValidation(valid=True, user=UserView.from_record(owner))

    def invalidate(self, session_id: str) -> bool:
        """Log *session_id* out.  Missing or already-inactive is not an error."""
        changed = self._repository.deactivate(session_id)
        if self._client_state is not None and self.current_session_id() == session_id:
            self._client_state.set_current_session(None)
        if changed:
            self._logger.info(
                "Session invalidated", extra={"event": "SESSION_INVALIDATED"},
            )
        return True

    def lookup(self, session_id: str) -> Optional[Session]:
        return self._repository.get(session_id)

    def sessions_for_user(self, user_id: str) -> list[Session]:
        """Logged-in, unexpired sessions of *user_id*, oldest first."""
        now = self._clock.now()
        return [
            s for s in self._repository.list_active_for_user(user_id) if now <= s.expires_at
        ]

    def current_session_id(self) -> Optional[str]:
        if self._client_state is None:
            return None
        state = self._client_state.load()
        return state.current_session_id if state is not None else None

    def clean_expired_sessions(self) -> int:
        return self._repository.delete_expired(self._clock.now())

    @staticmethod
    def _invalid(reason: SessionInvalidReason) -> SessionValidation:
        return SessionValidation(
            valid=False, reason=reason, message=_INVALID_MESSAGES[reason],
        )

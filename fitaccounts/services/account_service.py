"""
Account Service.

Single orchestrator for every account concern of the gym directory:
registration, authentication with lockout, password change, deletion,
deactivation, listing, login sessions and the cross-device lookup.

The service is the sole entry point for callers.  It calls the hasher
and the lockout policy synchronously and the record store / session
manager as blocking I/O.  Every method returns an ``AccountResult``;
storage exceptions are caught here and never reach the caller.

Every read-modify-write of the record set runs under the store's
``write_lock`` so two in-process callers cannot lose each other's
updates.
"""

from __future__ import annotations

import re
from typing import Any, Optional, Sequence

from fitaccounts.clock import Clock, IdGenerator, SystemClock
from fitaccounts.errors import ConstraintViolationError, StoreError
from fitaccounts.hashing import CredentialHasher
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.account_models import (
    AccountErrorCode,
    AccountExport,
    AccountResult,
    UserPresence,
    ValidationResult,
)
from fitaccounts.models.enums import ActivityAction, MembershipType
from fitaccounts.models.user import DeviceInfo, UserRecord, UserView, normalize_email
from fitaccounts.repositories.base_repository import BaseRecordStore
from fitaccounts.services.base_service import BaseService
from fitaccounts.services.client_state import ClientStateCache
from fitaccounts.services.lockout import LockoutPolicy
from fitaccounts.services.session_manager import SessionManager
from fitaccounts.utils.activity import ActivityLog


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EMAIL_RE: re.Pattern[str] = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

MIN_NAME_LENGTH: int = 2
MIN_PASSWORD_LENGTH: int = 6

USER_NOT_FOUND: str = "User not found"
ACCOUNT_LOCKED: str = "Account temporarily locked. Try again later."
EMAIL_EXISTS: str = "Email already exists"


class _Operation:
    """Per-call bookkeeping: was any store call served by a fallback."""

    __slots__ = ("degraded",)

    def __init__(self) -> None:
        self.degraded: bool = False


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class AccountService(BaseService):
    """Centralised account service.

    Parameters
    ----------
    store:
        Record store holding the user collection (any backend).
    hasher:
        Password digest function.
    lockout:
        Failed-attempt policy.
    logger:
        Structured JSON logger.
    sessions:
        Session manager; required for ``login``/``logout``/``validate_session``.
    client_state:
        Advisory last-known-user cache updated on login.
    activity:
        Activity log receiving one event per state change.
    clock / id_generator:
        Injected time and id sources.
    """

    def __init__(
        self,
        store: BaseRecordStore,
        hasher: CredentialHasher,
        lockout: LockoutPolicy,
        logger: StructuredLogger,
        sessions: Optional[SessionManager] = None,
        client_state: Optional[ClientStateCache] = None,
        activity: Optional[ActivityLog] = None,
        clock: Optional[Clock] = None,
        id_generator: Optional[IdGenerator] = None,
    ) -> None:
        super().__init__(logger)
        self._store: BaseRecordStore = store
        self._hasher: CredentialHasher = hasher
        self._lockout: LockoutPolicy = lockout
        self._sessions: Optional[SessionManager] = sessions
        self._client_state: Optional[ClientStateCache] = client_state
        self._activity: Optional[ActivityLog] = activity
        self._clock: Clock = clock or SystemClock()
        self._ids: IdGenerator = id_generator or IdGenerator(self._clock)

    @property
    def store(self) -> BaseRecordStore:
        return self._store

    @property
    def hasher(self) -> CredentialHasher:
        return self._hasher

    # ==================================================================
    # Validation helpers
    # ==================================================================

    @staticmethod
    def validate_email(email: str) -> ValidationResult:
        if not email or not email.strip():
            return ValidationResult(
                is_valid=False, error_message="Email address is required.",
            )
        if not _EMAIL_RE.match(email.strip()):
            return ValidationResult(
                is_valid=False, error_message="Please enter a valid email address.",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_password(password: str) -> ValidationResult:
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            return ValidationResult(
                is_valid=False,
                error_message=(
                    f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
                ),
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_name(full_name: str) -> ValidationResult:
        if not full_name or len(full_name.strip()) < MIN_NAME_LENGTH:
            return ValidationResult(
                is_valid=False,
                error_message=(
                    f"Full name must be at least {MIN_NAME_LENGTH} characters long."
                ),
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def password_strength(password: str) -> int:
        """Score 0-6: two length steps plus one point per character class."""
        score = 0
        if len(password) >= 6:
            score += 1
        if len(password) >= 8:
            score += 1
        for pattern in (r"[A-Z]", r"[a-z]", r"[0-9]", r"[^A-Za-z0-9]"):
            if re.search(pattern, password):
                score += 1
        return score

    # ==================================================================
    # Registration
    # ==================================================================

    def register(
        self,
        full_name: str,
        email: str,
        password: str,
        membership_type: MembershipType = MembershipType.BASIC,
        device_info: Optional[DeviceInfo] = None,
    ) -> AccountResult:
        """Create a new account.

        Returns
        -------
        AccountResult
            ``success=True`` with the new user's safe view, or
            ``validation_error`` / ``duplicate_email`` /
            ``backend_unavailable``.
        """
        for check in (
            self.validate_name(full_name),
            self.validate_email(email),
            self.validate_password(password),
        ):
            if not check.is_valid:
                return self._fail(AccountErrorCode.VALIDATION_ERROR, check.error_message)

        normalized = normalize_email(email)
        op = _Operation()
        try:
            with self._store.write_lock:
                records = self._read(op)
                if self._find(records, normalized) is not None:
                    return self._fail(
                        AccountErrorCode.DUPLICATE_EMAIL, EMAIL_EXISTS, op=op,
                    )
                record = UserRecord(
                    id=self._ids.new_id(),
                    full_name=full_name.strip(),
                    email=normalized,
                    password_digest=self._hasher.hash(password),
                    registration_date=self._clock.now(),
                    membership_type=membership_type,
                    device_info=device_info,
                )
                self._write(op, [*records, record])
        except ConstraintViolationError:
            return self._fail(AccountErrorCode.DUPLICATE_EMAIL, EMAIL_EXISTS, op=op)
        except StoreError as exc:
            return self._backend_failure("Registration", exc, op)

        self._logger.info(
            "User registered: %s", normalized,
            extra={"event": "USER_REGISTERED", "user_id": record.id},
        )
        self._record_activity(
            ActivityAction.USER_REGISTERED, record.id,
            "New user registration", device_info,
        )
        return AccountResult(
            success=True, user=UserView.from_record(record), degraded=op.degraded,
        )

    # ==================================================================
    # Authentication
    # ==================================================================

    def authenticate(
        self,
        email: str,
        password: str,
        device_info: Optional[DeviceInfo] = None,
    ) -> AccountResult:
        """Verify credentials and apply the lockout bookkeeping.

        The updated record is persisted whether the password matched or
        not, so attempt counters survive failed logins.  A locked or
        inactive account is rejected before the digest is compared.
        """
        if not email or not email.strip() or not password:
            return self._fail(
                AccountErrorCode.VALIDATION_ERROR, "Email and password are required.",
            )

        normalized = normalize_email(email)
        op = _Operation()
        try:
            with self._store.write_lock:
                records = self._read(op)
                index = self._find(records, normalized)
                if index is None:
                    return self._fail(AccountErrorCode.NOT_FOUND, USER_NOT_FOUND, op=op)

                record = records[index]
                if not record.is_active:
                    return self._fail(
                        AccountErrorCode.ACCOUNT_INACTIVE, "Account is inactive.", op=op,
                    )

                now = self._clock.now()
                decision = self._lockout.evaluate(record, now)
                if not decision.allowed:
                    self._logger.warning(
                        "Login refused for locked account %s", normalized,
                        extra={"event": "LOCKED_OUT", "user_id": record.id},
                    )
                    return self._fail(
                        AccountErrorCode.LOCKED_OUT, ACCOUNT_LOCKED,
                        op=op, locked_until=decision.locked_until,
                    )

                if self._hasher.verify(password, record.password_digest):
                    updated = self._lockout.register_success(record, now)
                    update: dict[str, Any] = {"last_login": now}
                    device = _device_label(device_info)
                    if device is not None:
                        update["last_device"] = device
                    updated = updated.model_copy(update=update)
                    records[index] = updated
                    self._write(op, records)
                    success = True
                else:
                    updated = self._lockout.register_failure(record, now)
                    records[index] = updated
                    self._write(op, records)
                    success = False
        except StoreError as exc:
            return self._backend_failure("Authentication", exc, op)

        if success:
            self._logger.info(
                "User authenticated: %s", normalized,
                extra={"event": "USER_LOGIN", "user_id": updated.id},
            )
            self._record_activity(
                ActivityAction.USER_LOGIN, updated.id, "User logged in", device_info,
            )
            return AccountResult(
                success=True, user=UserView.from_record(updated), degraded=op.degraded,
            )

        remaining = self._lockout.attempts_remaining(updated)
        self._logger.warning(
            "Failed login for %s (%d attempts remaining)", normalized, remaining,
            extra={"event": "FAILED_LOGIN", "user_id": updated.id},
        )
        self._record_activity(
            ActivityAction.FAILED_LOGIN, updated.id,
            f"Failed login attempt {updated.login_attempts}", device_info,
        )
        return self._fail(
            AccountErrorCode.BAD_PASSWORD,
            f"Invalid password. {remaining} attempts remaining.",
            op=op,
            attempts_remaining=remaining,
            locked_until=updated.locked_until,
        )

    # ==================================================================
    # Password change
    # ==================================================================

    def change_password(
        self,
        email: str,
        current_password: str,
        new_password: str,
    ) -> AccountResult:
        """Replace the digest after re-verifying the current password.

        A wrong current password is reported as ``bad_current_password``
        and leaves the stored digest unchanged (the failed attempt still
        counts towards the lockout).
        """
        if not self.validate_password(new_password).is_valid:
            return self._fail(
                AccountErrorCode.VALIDATION_ERROR,
                f"New password must be at least {MIN_PASSWORD_LENGTH} characters long.",
            )
        if current_password == new_password:
            return self._fail(
                AccountErrorCode.VALIDATION_ERROR,
                "New password must be different from current password.",
            )

        op = _Operation()
        try:
            with self._store.write_lock:
                verified = self.authenticate(email, current_password)
                op.degraded = verified.degraded
                if not verified.success:
                    if verified.error_code == AccountErrorCode.BAD_PASSWORD:
                        return verified.model_copy(update={
                            "error_code": AccountErrorCode.BAD_CURRENT_PASSWORD,
                            "error_message": "Current password is incorrect.",
                        })
                    return verified

                records = self._read(op)
                index = self._find(records, normalize_email(email))
                if index is None:
                    return self._fail(AccountErrorCode.NOT_FOUND, USER_NOT_FOUND, op=op)
                updated = records[index].model_copy(update={
                    "password_digest": self._hasher.hash(new_password),
                    "password_changed_at": self._clock.now(),
                })
                records[index] = updated
                self._write(op, records)
        except StoreError as exc:
            return self._backend_failure("Password update", exc, op)

        self._logger.info(
            "Password changed for %s", updated.email,
            extra={"event": "PASSWORD_CHANGED", "user_id": updated.id},
        )
        self._record_activity(
            ActivityAction.PASSWORD_CHANGED, updated.id, "Password changed",
        )
        return AccountResult(
            success=True, user=UserView.from_record(updated), degraded=op.degraded,
        )

    # ==================================================================
    # Deletion / deactivation
    # ==================================================================

    def delete_account(self, email: str) -> AccountResult:
        """Remove the account from the record set.

        Outstanding sessions are left as they are; validating one later
        reports ``user_inactive`` because its owner no longer exists.
        """
        normalized = normalize_email(email)
        op = _Operation()
        try:
            with self._store.write_lock:
                records = self._read(op)
                index = self._find(records, normalized)
                if index is None:
                    return self._fail(AccountErrorCode.NOT_FOUND, USER_NOT_FOUND, op=op)
                removed = records.pop(index)
                self._write(op, records)
        except StoreError as exc:
            return self._backend_failure("Account deletion", exc, op)

        self._logger.info(
            "Account deleted: %s", normalized,
            extra={"event": "ACCOUNT_DELETED", "user_id": removed.id},
        )
        self._record_activity(ActivityAction.ACCOUNT_DELETED, removed.id, "Account deleted")
        return AccountResult(
            success=True, user=UserView.from_record(removed), degraded=op.degraded,
        )

    def deactivate_account(self, email: str) -> AccountResult:
        normalized = normalize_email(email)
        op = _Operation()
        try:
            with self._store.write_lock:
                records = self._read(op)
                index = self._find(records, normalized)
                if index is None:
                    return self._fail(AccountErrorCode.NOT_FOUND, USER_NOT_FOUND, op=op)
                updated = records[index].model_copy(update={"is_active": False})
                records[index] = updated
                self._write(op, records)
        except StoreError as exc:
            return self._backend_failure("Account deactivation", exc, op)

        self._logger.info(
            "Account deactivated: %s", normalized,
            extra={"event": "ACCOUNT_DEACTIVATED", "user_id": updated.id},
        )
        self._record_activity(
            ActivityAction.ACCOUNT_DEACTIVATED, updated.id, "Account deactivated",
        )
        return AccountResult(
            success=True, user=UserView.from_record(updated), degraded=op.degraded,
        )

    # ==================================================================
    # Queries
    # ==================================================================

    def list_users(self) -> AccountResult:
        """Safe views of every active user, in store order."""
        op = _Operation()
        try:
            records = self._read(op)
        except StoreError as exc:
            return self._backend_failure("Listing users", exc, op)
        return AccountResult(
            success=True,
            users=[UserView.from_record(r) for r in records if r.is_active],
            degraded=op.degraded,
        )

    def check_user_exists(self, email: str) -> AccountResult:
        """Cross-device lookup: does *email* have an account, and where was it used."""
        op = _Operation()
        try:
            records = self._read(op)
        except StoreError as exc:
            return self._backend_failure("User lookup", exc, op)

        index = self._find(records, normalize_email(email))
        if index is None:
            presence = UserPresence(exists=False)
        else:
            record = records[index]
            devices = [
                d for d in (_device_label(record.device_info), record.last_device) if d
            ]
            presence = UserPresence(
                exists=True, devices=devices, last_login=record.last_login,
            )
        return AccountResult(success=True, presence=presence, degraded=op.degraded)

    def export_account_data(self, email: str) -> AccountResult:
        op = _Operation()
        try:
            records = self._read(op)
        except StoreError as exc:
            return self._backend_failure("Account export", exc, op)

        index = self._find(records, normalize_email(email))
        if index is None:
            return self._fail(AccountErrorCode.NOT_FOUND, USER_NOT_FOUND, op=op)
        view = UserView.from_record(records[index])
        return AccountResult(
            success=True,
            user=view,
            export=AccountExport(user=view, exported_at=self._clock.now()),
            degraded=op.degraded,
        )

    # ==================================================================
    # Sessions
    # ==================================================================

    def login(
        self,
        email: str,
        password: str,
        device_info: Optional[DeviceInfo] = None,
    ) -> AccountResult:
        """Authenticate and open a session.

        The session id is returned on the result and also written to the
        client-state "current session" slot.
        """
        sessions = self._require_sessions()
        result = self.authenticate(email, password, device_info)
        if not result.success or result.user is None:
            return result

        try:
            session = sessions.create(result.user.id)
        except StoreError as exc:
            return self._backend_failure("Session creation", exc, _Operation())

        if self._client_state is not None:
            self._client_state.set_last_user(result.user)
        return result.model_copy(update={"session_id": session.session_id})

    def logout(self, session_id: str) -> AccountResult:
        """Invalidate *session_id*.  Unknown or already-closed ids succeed."""
        sessions = self._require_sessions()
        try:
            session = sessions.lookup(session_id)
            sessions.invalidate(session_id)
        except StoreError as exc:
            return self._backend_failure("Logout", exc, _Operation())

        if session is not None and session.is_active:
            self._record_activity(
                ActivityAction.USER_LOGOUT, session.user_id, "User logged out",
            )
        return AccountResult(success=True, session_id=session_id)

    def validate_session(self, session_id: str) -> AccountResult:
        sessions = self._require_sessions()
        try:
            validation = sessions.validate(session_id)
        except StoreError as exc:
            return self._backend_failure("Session validation", exc, _Operation())

        degraded = self._store.degraded
        if not validation.valid:
            return AccountResult(
                success=False,
                error_code=AccountErrorCode.SESSION_INVALID,
                error_message=validation.message,
                session_id=session_id,
                degraded=degraded,
            )
        return AccountResult(
            success=True, user=validation.user, session_id=session_id, degraded=degraded,
        )

    # ==================================================================
    # Private helpers
    # ==================================================================

    def _read(self, op: _Operation) -> list[UserRecord]:
        records = self._store.get_all()
        op.degraded = op.degraded or self._store.degraded
        return records

    def _write(self, op: _Operation, records: Sequence[UserRecord]) -> None:
        self._store.save_all(records)
        op.degraded = op.degraded or self._store.degraded

    @staticmethod
    def _find(records: Sequence[UserRecord], email: str) -> Optional[int]:
        for index, record in enumerate(records):
            if record.email == email:
                return index
        return None

    def _require_sessions(self) -> SessionManager:
        if self._sessions is None:
            raise RuntimeError("AccountService was created without a SessionManager.")
        return self._sessions

    def _record_activity(
        self,
        action: ActivityAction,
        user_id: str,
        details: str,
        device_info: Optional[DeviceInfo] = None,
    ) -> None:
        if self._activity is not None:
            self._activity.record(action, user_id, details, device_info)

    def _backend_failure(
        self,
        operation: str,
        exc: StoreError,
        op: _Operation,
    ) -> AccountResult:
        # Only a quarantined entry can collide on a write that adds no email.
        code = (
            AccountErrorCode.CORRUPT_STATE
            if isinstance(exc, ConstraintViolationError)
            else AccountErrorCode.BACKEND_UNAVAILABLE
        )
        self._logger.error(
            "%s failed: %s", operation, exc.message,
            extra={"event": code.value.upper()},
        )
        return self._fail(
            code,
            f"{operation} failed: {exc.message}",
            op=op,
        )

    @staticmethod
    def _fail(
        code: AccountErrorCode,
        message: Optional[str],
        op: Optional[_Operation] = None,
        **fields: Any,
    ) -> AccountResult:
        return AccountResult(
            success=False,
            error_code=code,
            error_message=message,
            degraded=op.degraded if op is not None else False,
            **fields,
        )


def _device_label(device_info: Optional[DeviceInfo]) -> Optional[str]:
    """Short human-readable label for an opaque device fingerprint."""
    if device_info is None:
        return None
    if isinstance(device_info, str):
        return device_info[:100] or None
    for key in ("userAgent", "platform", "lastLoginDevice"):
        value = device_info.get(key)
        if value:
            return str(value)[:100]
    return None

"""
Storage-Layer Exceptions.

Record stores raise these; the Account Service and Sync Coordinator
catch them at their boundary and turn them into structured results.
Business outcomes (not found, bad password, lockout) are never
exceptions: they are ``AccountErrorCode`` tags on an ``AccountResult``.
"""

from __future__ import annotations

from typing import Optional


class StoreError(Exception):
    """Base class for record-store failures."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class BackendUnavailableError(StoreError):
    """The storage backend could not be reached or returned garbage.

    Raised for network errors, non-2xx responses, malformed documents
    and local I/O failures.  Triggers fallback in the hybrid store.
    """


class ConstraintViolationError(StoreError):
    """A write would break the one-record-per-email invariant."""

    def __init__(self, email: str, original_error: Optional[Exception] = None) -> None:
        self.email: str = email
        super().__init__(f"Email already exists: {email}", original_error)

"""
Structured Activity Logging Utility.

Every account state change (registration, login, failed login, logout,
password change, deletion, deactivation) is emitted as a structured JSON
log line and, when an ``ActivityRepository`` is wired, persisted to the
``user_activity`` collection.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import BaseModel

from fitaccounts.clock import Clock, SystemClock
from fitaccounts.errors import StoreError
from fitaccounts.logger import StructuredLogger
from fitaccounts.models.enums import ActivityAction

if TYPE_CHECKING:
    from fitaccounts.repositories.activity_repository import ActivityRepository

__all__ = ["ActivityEvent", "ActivityLog"]


class ActivityEvent(BaseModel):
    """Schema-validated representation of a single activity entry."""

    id: Optional[int] = None
    user_id: str
    action: ActivityAction
    details: str = ""
    timestamp: str
    device_info: Optional[Union[str, dict[str, Any]]] = None


class ActivityLog:
    """Dual logger for account activity.

    Always writes an ``ACTIVITY`` log line.  Persistence failures are
    logged and never propagated: an account operation must not fail
    because its activity row could not be written.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        repository: Optional["ActivityRepository"] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._logger = logger
        self._repository = repository
        self._clock: Clock = clock or SystemClock()

    def record(
        self,
        action: ActivityAction,
        user_id: str,
        details: str = "",
        device_info: Optional[Union[str, dict[str, Any]]] = None,
    ) -> ActivityEvent:
        event = ActivityEvent(
            user_id=user_id,
            action=action,
            details=details,
            timestamp=self._clock.now().isoformat(),
            device_info=device_info,
        )
        self._logger.info(
            "ACTIVITY: %s", json.dumps(event.model_dump(mode="json"), default=str),
            extra={"event": str(action)},
        )

        if self._repository is not None:
            try:
                self._repository.insert(event)
            except StoreError as exc:
                self._logger.warning("Failed to persist activity event: %s", exc)
        return event

    def get_user_activity(self, user_id: str, limit: int = 50) -> list[ActivityEvent]:
        if self._repository is None:
            return []
        return self._repository.get_user_activity(user_id, limit)

"""Shared utilities for the fitaccounts package.

Convenience re-exports so consumers can import directly from
``fitaccounts.utils`` (e.g. ``from fitaccounts.utils import ActivityLog``).
"""

from fitaccounts.utils.activity import ActivityEvent, ActivityLog

__all__ = [
    "ActivityEvent",
    "ActivityLog",
]

"""
Base Service Class.

Standardises the injected-logger pattern for the account services.
Services extend this and take their stores and collaborators via __init__.
"""

from __future__ import annotations

from fitaccounts.logger import StructuredLogger


class BaseService:
    """Base class for all service classes. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

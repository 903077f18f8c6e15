"""
Structured JSON Logging Module.

Every account component logs through a ``StructuredLogger``.  Lines are
single JSON objects so account events (registrations, logins, lockouts,
backend degradation, quarantined records) can be filtered by field.

The well-known account fields ``event``, ``store`` and ``user_id`` passed
via ``extra`` are lifted to the top level of the JSON line; anything
else lands under ``extra``.  Keys that look like credentials are masked
before they are written.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, TextIO

if TYPE_CHECKING:
    from fitaccounts.config import AppConfig

_TOP_LEVEL_FIELDS: tuple[str, ...] = ("event", "store", "user_id")
_SENSITIVE_MARKERS: tuple[str, ...] = ("password", "digest", "secret", "api_key", "token")
_MASK: str = "***"


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


class JSONFormatter(logging.Formatter):
    """Render a ``LogRecord`` as one JSON object.

    Keys: ``timestamp`` (UTC ISO-8601), ``level``, ``logger_name``,
    ``message``, the account fields present on the record, ``extra`` for
    the remaining custom attributes and ``exception`` when one is attached.
    """

    _STANDARD_ATTRS: frozenset[str] = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__.keys()
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra: dict[str, str] = {}
        for key, value in record.__dict__.items():
            if key in self._STANDARD_ATTRS:
                continue
            rendered = _MASK if _is_sensitive(key) else str(value)
            if key in _TOP_LEVEL_FIELDS:
                entry[key] = rendered
            else:
                extra[key] = rendered
        if extra:
            entry["extra"] = extra

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


class StructuredLogger:
    """Injectable wrapper around a named ``logging.Logger``.

    Handlers are attached once per logger name: a JSON stream handler and,
    unless the file cannot be opened, a size-rotated JSON file handler.
    Rotation settings and the default log file come from *config* (or
    ``get_config()`` when none is injected); explicit arguments win.

    Usage::

        log = StructuredLogger(name="accounts")
        log.info("User registered", extra={"event": "USER_REGISTERED", "user_id": "1"})
    """

    def __init__(
        self,
        name: str = "fitaccounts",
        level: int = logging.INFO,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
        config: Optional["AppConfig"] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)

        if self._logger.handlers:
            return

        if config is None:
            from fitaccounts.config import get_config
            config = get_config()

        formatter = JSONFormatter()
        stream_handler = logging.StreamHandler(stream or sys.stdout)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        self._logger.addHandler(stream_handler)

        path = Path(log_file or config.LOG_FILE)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(path),
                maxBytes=max_bytes if max_bytes is not None else config.LOG_MAX_BYTES,
                backupCount=backup_count if backup_count is not None else config.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Could not open log file '%s': %s. Logging to the console only.",
                path, exc,
            )
            return
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        self._logger.addHandler(file_handler)

    @property
    def logger(self) -> logging.Logger:
        """The underlying ``logging.Logger``."""
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "fitaccounts", config: Optional["AppConfig"] = None) -> StructuredLogger:
    """Return a ``StructuredLogger`` for *name*."""
    return StructuredLogger(name=name, config=config)

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

from fitaccounts.config import AppConfig
from fitaccounts.logger import JSONFormatter, StructuredLogger


def _format(**extra: object) -> dict:
    record = logging.LogRecord(
        name="fitaccounts.test", level=logging.INFO, pathname=__file__, lineno=1,
        msg="User %s registered", args=("john@demo.com",), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(JSONFormatter().format(record))


def test_account_fields_are_top_level() -> None:
    line = _format(event="USER_REGISTERED", user_id="1", store="local", attempt=2)

    assert line["message"] == "User john@demo.com registered"
    assert line["event"] == "USER_REGISTERED"
    assert line["user_id"] == "1"
    assert line["store"] == "local"
    assert line["extra"] == {"attempt": "2"}


def test_credential_like_fields_are_masked() -> None:
    line = _format(password="john123", password_digest="abc", remote_api_key="k")

    assert set(line["extra"].values()) == {"***"}


def test_logger_writes_json_lines(tmp_path: Path) -> None:
    stream = io.StringIO()
    log = StructuredLogger(
        name="fitaccounts.test.stream",
        stream=stream,
        log_file=str(tmp_path / "out.log"),
        config=AppConfig(),
    )

    log.warning("Remote read failed", extra={"event": "DEGRADED", "store": "hybrid"})

    line = json.loads(stream.getvalue().splitlines()[-1])
    assert line["level"] == "WARNING"
    assert line["event"] == "DEGRADED"
    assert (tmp_path / "out.log").read_text(encoding="utf-8").strip()

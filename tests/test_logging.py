"""Tests for console and JSON log output."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator

import pytest

from wallet_chat.core.config import LoggingSettings
from wallet_chat.core.logging import JsonFormatter, configure_logging


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """Remove the console handler installed by the test and reset the level."""

    root = logging.getLogger()
    before, level = set(root.handlers), root.level
    yield
    for handler in set(root.handlers) - before:
        root.removeHandler(handler)
    root.setLevel(level)


def test_plain_mode_sets_levels_and_quiets_http_libraries() -> None:
    configure_logging(LoggingSettings(level="DEBUG", structured=False))

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert not isinstance(root.handlers[-1].formatter, JsonFormatter)
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("aiohttp.access").level == logging.WARNING


def test_structured_mode_installs_json_formatter() -> None:
    configure_logging(LoggingSettings(level="INFO", structured=True))

    assert isinstance(logging.getLogger().handlers[-1].formatter, JsonFormatter)


def test_json_formatter_carries_sync_context() -> None:
    record = logging.makeLogRecord(
        {
            "name": "wallet_chat.transport.realtime",
            "levelno": logging.WARNING,
            "levelname": "WARNING",
            "msg": "Message %s was not confirmed in time",
            "args": ("temp_1_ab12cd34",),
            "message_id": "temp_1_ab12cd34",
            "session_state": "active",
        }
    )

    entry = json.loads(JsonFormatter().format(record))

    assert entry["level"] == "WARNING"
    assert entry["logger"] == "wallet_chat.transport.realtime"
    assert entry["message"] == "Message temp_1_ab12cd34 was not confirmed in time"
    assert entry["message_id"] == "temp_1_ab12cd34"
    assert entry["session_state"] == "active"
    assert "peer" not in entry


def test_json_formatter_includes_exception_text() -> None:
    try:
        raise RuntimeError("socket gone")
    except RuntimeError:
        record = logging.getLogger("wallet_chat").makeRecord(
            "wallet_chat", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
        )

    entry = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: socket gone" in entry["exception"]

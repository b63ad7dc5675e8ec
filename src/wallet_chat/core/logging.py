"""Logging configuration for the sync engine.

Two output modes exist: a single human readable line per record, or one JSON
object per record. The JSON mode carries the sync context that call sites
attach with ``extra=`` (session state, message id, peer, identity).
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import UTC, datetime
from typing import Any

from .config import LoggingSettings

CONTEXT_FIELDS = ("identity", "session_state", "message_id", "peer")

_QUIET_LIBRARIES = ("aiohttp.access", "httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """Render a record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter_config(structured: bool) -> dict[str, Any]:
    if structured:
        return {"()": JsonFormatter}
    return {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"}


def configure_logging(settings: LoggingSettings) -> None:
    """Install the console handler described by ``settings`` on the root logger."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"console": _formatter_config(settings.structured)},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "console",
                    "level": settings.level,
                },
            },
            # Library chatter stays at WARNING even when the engine runs at DEBUG.
            "loggers": {name: {"level": "WARNING"} for name in _QUIET_LIBRARIES},
            "root": {"handlers": ["console"], "level": settings.level},
        }
    )


__all__ = ["CONTEXT_FIELDS", "JsonFormatter", "configure_logging"]

"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class IdentitySettings(BaseModel):
    """Local identity used when none is supplied explicitly."""

    wallet_address: str | None = Field(
        default=None, description="Wallet address of the local party"
    )


class ApiSettings(BaseModel):
    """Settings for the request/response API collaborators."""

    base_url: str = Field(
        default="http://localhost:5000", description="Base URL of the HTTP API"
    )
    timeout_seconds: float = Field(
        default=10.0, gt=0, description="Request timeout for HTTP calls"
    )
    retries: int = Field(
        default=3, ge=1, description="Attempts made before giving up on a request"
    )


class HistorySettings(BaseModel):
    """Settings controlling the durable history fetch."""

    limit: int = Field(
        default=100, ge=1, description="Messages requested from history"
    )


class RealtimeSettings(BaseModel):
    """Settings for the realtime WebSocket session."""

    url: str = Field(
        default="ws://localhost:5000/ws", description="WebSocket endpoint"
    )
    heartbeat_seconds: float | None = Field(
        default=20.0, description="Ping interval used to detect dead peers"
    )
    reconnect_attempts: int = Field(
        default=0, ge=0, description="Reconnects tried after the transport drops"
    )
    reconnect_backoff_seconds: float = Field(
        default=0.5, gt=0, description="Initial delay between reconnects"
    )
    reconnect_backoff_max_seconds: float = Field(
        default=5.0, gt=0, description="Upper bound for the reconnect delay"
    )
    send_timeout_seconds: float | None = Field(
        default=None,
        description="Mark pending sends as failed when unconfirmed after this delay",
    )


class AttachmentSettings(BaseModel):
    """Limits applied to message attachments."""

    max_size_bytes: int = Field(
        default=10 * 1024 * 1024, ge=1, description="Largest accepted attachment"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False,
        description="Emit one JSON object per record with session and message context",
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    attachments: AttachmentSettings = Field(default_factory=AttachmentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "WALLET_CHAT_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _coerce_value(value: Any) -> Any:
    """Map empty strings to ``None`` and boolean words to booleans."""
    if not isinstance(value, str):
        return value
    if value == "":
        return None
    lowercase_value = value.lower()
    if lowercase_value == "true":
        return True
    if lowercase_value == "false":
        return False
    return value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, str] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        _merge_into_tree(collected, path, _coerce_value(value))

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "ApiSettings",
    "AppSettings",
    "AttachmentSettings",
    "HistorySettings",
    "IdentitySettings",
    "LoggingSettings",
    "RealtimeSettings",
    "load_app_settings",
]

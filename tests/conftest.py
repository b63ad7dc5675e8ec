"""Shared fixtures and fakes for the test-suite."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from wallet_chat.core.models import DeliveryState, Message
from wallet_chat.storage import MessageStore

LOCAL = "0x" + "a" * 40
PEER_B = "0x" + "b" * 40
PEER_C = "0x" + "c" * 40

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def at(minutes: int) -> datetime:
    """Return a timestamp ``minutes`` after the base time."""
    return BASE_TIME + timedelta(minutes=minutes)


def make_message(
    message_id: str,
    sender: str,
    recipient: str,
    body: str = "hello",
    *,
    minutes: int = 0,
    read: bool = False,
    state: DeliveryState = DeliveryState.DELIVERED,
) -> Message:
    """Build a confirmed message for tests."""
    return Message(
        id=message_id,
        sender=sender,
        recipient=recipient,
        body=body,
        sent_at=at(minutes),
        read_by_recipient=read,
        delivery_state=state,
    )


def frame(frame_type: str, **fields: Any) -> str:
    """Serialise an inbound frame the way the server would."""
    return json.dumps({"type": frame_type, **fields})


class FakeTransport:
    """In-memory transport recording outbound frames."""

    def __init__(self, events: list[str] | None = None) -> None:
        self.sent: list[dict[str, Any]] = []
        self.inbound: asyncio.Queue[str | None] = asyncio.Queue()
        self.connected = False
        self.connect_calls = 0
        self.close_calls = 0
        self.fail_connect = False
        self.fail_send = False
        self._events = events

    def push(self, raw: str) -> None:
        self.inbound.put_nowait(raw)

    async def connect(self) -> None:
        if self._events is not None:
            self._events.append("connect")
        if self.fail_connect:
            raise OSError("connection refused")
        self.connect_calls += 1
        self.connected = True

    async def send_json(self, payload: Mapping[str, Any]) -> None:
        if self.fail_send:
            raise ConnectionError("broken pipe")
        self.sent.append(dict(payload))

    async def receive(self) -> str | None:
        if not self.connected:
            return None
        return await self.inbound.get()

    async def close(self) -> None:
        self.close_calls += 1
        if self.connected:
            self.connected = False
            self.inbound.put_nowait(None)


@pytest.fixture()
def store() -> MessageStore:
    """Return an empty store owned by the local identity."""
    return MessageStore(LOCAL, clock=lambda: BASE_TIME)


@pytest.fixture()
def transport() -> FakeTransport:
    """Return a fresh fake transport."""
    return FakeTransport()

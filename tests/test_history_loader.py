"""Tests for the history loader."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import pytest
from conftest import LOCAL, PEER_B, PEER_C

from wallet_chat.core.models import DeliveryState
from wallet_chat.storage import MessageStore
from wallet_chat.sync import ConversationAggregator, HistoryLoader


class StubHistoryProvider:
    """Return canned rows and record each request."""

    def __init__(self, rows: Sequence[Mapping[str, Any]]) -> None:
        self.rows = list(rows)
        self.calls: list[tuple[str, int]] = []

    def fetch_history(self, identity: str, limit: int) -> Sequence[Mapping[str, Any]]:
        self.calls.append((identity, limit))
        return self.rows


def _row(message_id: Any, sender: str, recipient: str, **extra: Any) -> dict[str, Any]:
    row = {
        "id": message_id,
        "from": sender,
        "to": recipient,
        "content": f"body {message_id}",
        "timestamp": "2025-03-01T12:00:00Z",
    }
    row.update(extra)
    return row


def test_load_inserts_confirmed_messages_and_rebuilds_once(store: MessageStore) -> None:
    provider = StubHistoryProvider(
        [
            _row(1, PEER_B, LOCAL, read=True),
            _row(2, LOCAL, PEER_B, delivered=False),
            _row(3, PEER_C, LOCAL, read=False),
        ]
    )
    aggregator = ConversationAggregator(store)
    rebuilds: list[int] = []
    aggregator.subscribe(lambda conversations: rebuilds.append(len(conversations)))
    loader = HistoryLoader(provider, store, aggregator, limit=25)

    inserted = loader.load(LOCAL)

    assert provider.calls == [(LOCAL, 25)]
    assert [m.id for m in inserted] == ["1", "2", "3"]
    assert store.get("1").delivery_state is DeliveryState.READ
    assert store.get("2").delivery_state is DeliveryState.DELIVERED
    assert rebuilds == [2]
    assert aggregator.get(PEER_C).unread_count == 1
    assert loader.last_report is not None
    assert loader.last_report.inserted == 3


def test_empty_history_still_publishes_summaries(store: MessageStore) -> None:
    aggregator = ConversationAggregator(store)
    rebuilds: list[int] = []
    aggregator.subscribe(lambda conversations: rebuilds.append(len(conversations)))
    loader = HistoryLoader(StubHistoryProvider([]), store, aggregator)

    assert loader.load(LOCAL) == []
    assert rebuilds == [0]
    assert len(store) == 0


def test_malformed_and_duplicate_rows_are_skipped(store: MessageStore) -> None:
    provider = StubHistoryProvider(
        [
            _row(1, PEER_B, LOCAL),
            {"id": 2, "to": LOCAL},
            _row(3, PEER_B, LOCAL, timestamp="not a date"),
            _row(1, PEER_B, LOCAL),
            _row(4, PEER_B, PEER_C),
            _row("", PEER_B, LOCAL),
        ]
    )
    loader = HistoryLoader(provider, store)

    inserted = loader.load(LOCAL)

    assert [m.id for m in inserted] == ["1"]
    assert loader.last_report.fetched == 6
    assert loader.last_report.skipped == 5
    assert store.get("") is None


def test_identity_must_match_store(store: MessageStore) -> None:
    provider = StubHistoryProvider([])
    loader = HistoryLoader(provider, store)

    with pytest.raises(ValueError):
        loader.load(PEER_B)
    assert provider.calls == []


def test_limit_must_be_positive(store: MessageStore) -> None:
    with pytest.raises(ValueError):
        HistoryLoader(StubHistoryProvider([]), store, limit=0)

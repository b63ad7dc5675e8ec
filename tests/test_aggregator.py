"""Tests for conversation aggregation."""

from __future__ import annotations

import pytest
from conftest import LOCAL, PEER_B, PEER_C, make_message

from wallet_chat.core.models import Conversation
from wallet_chat.storage import MessageStore
from wallet_chat.sync import ConversationAggregator, rebuild


def test_rebuild_groups_by_counterpart_with_unread_counts() -> None:
    messages = [
        make_message("1", PEER_B, LOCAL, minutes=1),
        make_message("2", LOCAL, PEER_B, minutes=2),
        make_message("3", PEER_C, LOCAL, minutes=3),
        make_message("4", PEER_C, LOCAL, minutes=4, read=True),
        make_message("5", PEER_C, LOCAL, minutes=5),
    ]

    conversations = rebuild(messages, LOCAL)

    assert set(conversations) == {PEER_B, PEER_C}
    assert conversations[PEER_B].last_message.id == "2"
    assert conversations[PEER_B].unread_count == 1
    assert conversations[PEER_C].last_message.id == "5"
    assert conversations[PEER_C].unread_count == 2


def test_rebuild_ignores_outbound_for_unread_and_foreign_messages() -> None:
    messages = [
        make_message("1", LOCAL, PEER_B, minutes=1),
        make_message("2", PEER_B, PEER_C, minutes=2),
    ]

    conversations = rebuild(messages, LOCAL)

    assert list(conversations) == [PEER_B]
    assert conversations[PEER_B].unread_count == 0


def test_rebuild_breaks_timestamp_ties_by_insertion_order() -> None:
    messages = [
        make_message("first", PEER_B, LOCAL, minutes=1),
        make_message("second", LOCAL, PEER_B, minutes=1),
    ]

    assert rebuild(messages, LOCAL)[PEER_B].last_message.id == "second"


def test_rebuild_keys_are_normalised() -> None:
    upper = "0x" + "B" * 40
    messages = [
        make_message("1", upper, LOCAL, minutes=1),
        make_message("2", LOCAL, PEER_B, minutes=2),
    ]

    conversations = rebuild(messages, LOCAL.upper().replace("0X", "0x"))

    assert list(conversations) == [PEER_B]
    assert conversations[PEER_B].unread_count == 1


def test_aggregator_follows_store_and_mark_read(store: MessageStore) -> None:
    aggregator = ConversationAggregator(store)
    assert dict(aggregator.conversations) == {}

    store.insert_confirmed(make_message("7", PEER_C, LOCAL, "yo"))

    conversation = aggregator.get(PEER_C)
    assert conversation is not None
    assert conversation.unread_count == 1
    assert conversation.last_message.id == "7"
    assert aggregator.total_unread() == 1

    store.mark_read(PEER_C)

    conversation = aggregator.get(PEER_C)
    assert conversation.unread_count == 0
    assert conversation.last_message.read_by_recipient is True
    assert rebuild(store.messages(), LOCAL)[PEER_C].unread_count == 0


def test_open_conversation_creates_empty_summary_ordered_last(
    store: MessageStore,
) -> None:
    aggregator = ConversationAggregator(store)
    store.insert_confirmed(make_message("1", PEER_B, LOCAL, minutes=1))

    opened = aggregator.open(PEER_C.upper().replace("0X", "0x"))

    assert opened == Conversation(peer=PEER_C, last_message=None, unread_count=0)
    assert [c.peer for c in aggregator.ordered()] == [PEER_B, PEER_C]

    store.insert_confirmed(make_message("2", LOCAL, PEER_C, minutes=2))
    assert [c.peer for c in aggregator.ordered()] == [PEER_C, PEER_B]


def test_open_conversation_validates_address(store: MessageStore) -> None:
    aggregator = ConversationAggregator(store)

    with pytest.raises(ValueError):
        aggregator.open("not-a-wallet")
    with pytest.raises(ValueError):
        aggregator.open(LOCAL)


def test_listeners_receive_rebuilt_mapping_until_closed(store: MessageStore) -> None:
    aggregator = ConversationAggregator(store)
    seen: list[int] = []
    aggregator.subscribe(lambda conversations: seen.append(len(conversations)))

    store.insert_confirmed(make_message("1", PEER_B, LOCAL))
    store.insert_confirmed(make_message("2", PEER_C, LOCAL))
    aggregator.close()
    store.insert_confirmed(make_message("3", PEER_C, LOCAL))

    assert seen == [1, 2]
    assert aggregator.get(PEER_C).unread_count == 1


def test_search_matches_address_short_form_and_display_name(
    store: MessageStore,
) -> None:
    aggregator = ConversationAggregator(store)
    store.insert_confirmed(make_message("1", PEER_B, LOCAL, minutes=1))
    store.insert_confirmed(make_message("2", PEER_C, LOCAL, minutes=2))
    names = {PEER_B: "Bob Builder"}

    def display_name(peer: str) -> str:
        return names.get(peer, peer)

    assert [c.peer for c in aggregator.search("0XBBBBBB")] == [PEER_B]
    assert [c.peer for c in aggregator.search("0xcccc...cccc")] == [PEER_C]
    assert [c.peer for c in aggregator.search("builder", display_name)] == [PEER_B]
    assert aggregator.search("builder") == []
    assert [c.peer for c in aggregator.search("  ")] == [PEER_C, PEER_B]

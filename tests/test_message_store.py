"""Tests for the in-memory message store."""

from __future__ import annotations

import pytest
from conftest import BASE_TIME, LOCAL, PEER_B, PEER_C, make_message

from wallet_chat.core.models import DeliveryState, MessageDraft
from wallet_chat.storage import MessageStore, is_provisional_id


def _draft(body: str = "hi", recipient: str = PEER_B) -> MessageDraft:
    return MessageDraft(sender=LOCAL, recipient=recipient, body=body)


def test_insert_provisional_assigns_pending_temporary_id(store: MessageStore) -> None:
    first = store.insert_provisional(_draft())
    second = store.insert_provisional(_draft())

    assert is_provisional_id(first.id)
    assert first.id != second.id
    assert first.delivery_state is DeliveryState.PENDING
    assert first.read_by_recipient is False
    assert first.sent_at == BASE_TIME
    assert store.get(first.id) == first


def test_insert_provisional_rejects_invalid_drafts(store: MessageStore) -> None:
    with pytest.raises(ValueError):
        store.insert_provisional(MessageDraft(sender=PEER_B, recipient=PEER_C, body="x"))
    with pytest.raises(ValueError):
        store.insert_provisional(MessageDraft(sender=LOCAL, recipient=LOCAL, body="x"))
    with pytest.raises(ValueError):
        store.insert_provisional(_draft(body=""))
    assert len(store) == 0


def test_insert_confirmed_is_idempotent(store: MessageStore) -> None:
    message = make_message("7", PEER_C, LOCAL, "yo")

    assert store.insert_confirmed(message) is True
    before = store.query(PEER_C)
    assert store.insert_confirmed(message) is False

    assert store.query(PEER_C) == before
    assert len(store) == 1


def test_insert_confirmed_ignores_messages_not_involving_local_identity(
    store: MessageStore,
) -> None:
    assert store.insert_confirmed(make_message("1", PEER_B, PEER_C)) is False
    assert store.insert_confirmed(make_message("2", LOCAL, LOCAL)) is False
    assert len(store) == 0


def test_promote_rewrites_id_and_state(store: MessageStore) -> None:
    pending = store.insert_provisional(_draft("hi"))

    promoted = store.promote(LOCAL, PEER_B, "hi", "42")

    assert promoted is not None
    assert promoted.id == "42"
    assert promoted.delivery_state is DeliveryState.DELIVERED
    assert store.get(pending.id) is None
    assert [m.id for m in store.query(PEER_B)] == ["42"]


def test_promote_matches_identical_messages_in_fifo_order() -> None:
    ticks = iter(range(10))
    store = MessageStore(LOCAL, clock=lambda: BASE_TIME.replace(second=next(ticks)))
    first = store.insert_provisional(_draft("same"))
    second = store.insert_provisional(_draft("same"))

    store.promote(LOCAL, PEER_B, "same", "100")
    assert store.get("100").sent_at == first.sent_at
    assert store.get(second.id).delivery_state is DeliveryState.PENDING

    store.promote(LOCAL, PEER_B, "same", "101")
    assert store.get("101").sent_at == second.sent_at
    assert [m.id for m in store.query(PEER_B)] == ["100", "101"]


def test_promote_compares_addresses_case_insensitively(store: MessageStore) -> None:
    store.insert_provisional(_draft("hi"))

    promoted = store.promote(LOCAL.upper().replace("0X", "0x"), PEER_B.upper(), "hi", "9")

    assert promoted is not None


def test_promote_without_match_leaves_store_untouched(store: MessageStore) -> None:
    pending = store.insert_provisional(_draft("hi"))

    assert store.promote(LOCAL, PEER_B, "different", "42") is None
    assert store.promote(LOCAL, PEER_C, "hi", "43") is None
    assert store.get(pending.id) == pending


def test_promote_ignores_confirmation_for_known_id(store: MessageStore) -> None:
    store.insert_confirmed(make_message("42", LOCAL, PEER_B, "hi"))
    pending = store.insert_provisional(_draft("hi"))

    assert store.promote(LOCAL, PEER_B, "hi", "42") is None
    assert store.get(pending.id).delivery_state is DeliveryState.PENDING


def test_mark_read_only_touches_inbound_from_peer(store: MessageStore) -> None:
    store.insert_confirmed(make_message("1", PEER_C, LOCAL, minutes=1))
    store.insert_confirmed(make_message("2", PEER_C, LOCAL, minutes=2))
    store.insert_confirmed(make_message("3", PEER_B, LOCAL, minutes=3))
    store.insert_confirmed(make_message("4", LOCAL, PEER_C, minutes=4))

    assert store.mark_read(PEER_C) == 2

    assert store.get("1").read_by_recipient is True
    assert store.get("1").delivery_state is DeliveryState.READ
    assert store.get("3").read_by_recipient is False
    assert store.get("4").read_by_recipient is False
    assert store.mark_read(PEER_C) == 0


def test_mark_failed_only_applies_to_pending(store: MessageStore) -> None:
    pending = store.insert_provisional(_draft())
    store.insert_confirmed(make_message("5", LOCAL, PEER_B))

    failed = store.mark_failed(pending.id)

    assert failed is not None
    assert failed.delivery_state is DeliveryState.FAILED
    assert store.mark_failed("5") is None
    assert store.mark_failed("missing") is None
    assert store.promote(LOCAL, PEER_B, "hi", "6") is None


def test_query_orders_by_timestamp_and_filters_peer(store: MessageStore) -> None:
    store.insert_confirmed(make_message("late", PEER_B, LOCAL, minutes=5))
    store.insert_confirmed(make_message("other", PEER_C, LOCAL, minutes=1))
    store.insert_confirmed(make_message("early", LOCAL, PEER_B, minutes=1))
    store.insert_confirmed(make_message("tie", LOCAL, PEER_B, minutes=5))

    assert [m.id for m in store.query(PEER_B.upper().replace("0X", "0x"))] == [
        "early",
        "late",
        "tie",
    ]


def test_subscribers_are_notified_once_per_mutation_or_batch(
    store: MessageStore,
) -> None:
    calls: list[int] = []
    unsubscribe = store.subscribe(lambda current: calls.append(len(current)))

    store.insert_confirmed(make_message("1", PEER_B, LOCAL))
    with store.batch():
        store.insert_confirmed(make_message("2", PEER_B, LOCAL))
        store.insert_confirmed(make_message("3", PEER_B, LOCAL))
    store.insert_confirmed(make_message("3", PEER_B, LOCAL))

    assert calls == [1, 3]

    unsubscribe()
    store.insert_confirmed(make_message("4", PEER_B, LOCAL))
    assert calls == [1, 3]


def test_failing_subscriber_does_not_break_store(store: MessageStore) -> None:
    def explode(current: MessageStore) -> None:
        raise RuntimeError("boom")

    store.subscribe(explode)

    assert store.insert_confirmed(make_message("1", PEER_B, LOCAL)) is True
    assert len(store) == 1

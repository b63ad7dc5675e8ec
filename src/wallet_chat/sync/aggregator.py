"""Derive per-peer conversation summaries from the message log."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from types import MappingProxyType

from ..core.identity import is_valid_identity, normalize_identity, short_identity
from ..core.models import Conversation, Message
from ..storage.message_store import MessageStore

LOGGER = logging.getLogger(__name__)

ConversationListener = Callable[[Mapping[str, Conversation]], None]


def rebuild(messages: Iterable[Message], local_identity: str) -> dict[str, Conversation]:
    """Group ``messages`` by counterpart into :class:`Conversation` records.

    ``messages`` must be in store insertion order: when two messages share
    the greatest ``sent_at`` the later one becomes ``last_message``.
    """
    local = normalize_identity(local_identity)
    latest: dict[str, Message] = {}
    unread: dict[str, int] = {}

    for message in messages:
        sender = normalize_identity(message.sender)
        recipient = normalize_identity(message.recipient)
        if sender == local and recipient != local:
            peer = recipient
        elif recipient == local and sender != local:
            peer = sender
        else:
            continue

        current = latest.get(peer)
        if current is None or message.sent_at >= current.sent_at:
            latest[peer] = message
        count = unread.setdefault(peer, 0)
        if recipient == local and not message.read_by_recipient:
            unread[peer] = count + 1

    return {
        peer: Conversation(peer=peer, last_message=message, unread_count=unread[peer])
        for peer, message in latest.items()
    }


class ConversationAggregator:
    """Keep conversation summaries in step with a :class:`MessageStore`."""

    def __init__(self, store: MessageStore) -> None:
        """Subscribe to ``store`` and compute the initial summaries."""
        self._store = store
        self._opened: dict[str, None] = {}
        self._conversations: dict[str, Conversation] = {}
        self._listeners: list[ConversationListener] = []
        self._unsubscribe: Callable[[], None] | None = store.subscribe(self._on_change)
        self.refresh()

    @property
    def conversations(self) -> Mapping[str, Conversation]:
        """Return a read-only view keyed by normalised peer address."""
        return MappingProxyType(self._conversations)

    def get(self, peer: str) -> Conversation | None:
        """Return the conversation with ``peer`` if one exists."""
        return self._conversations.get(normalize_identity(peer))

    def refresh(self) -> Mapping[str, Conversation]:
        """Recompute every summary from the store."""
        rebuilt = rebuild(self._store.messages(), self._store.local_identity)
        for peer in self._opened:
            rebuilt.setdefault(
                peer, Conversation(peer=peer, last_message=None, unread_count=0)
            )
        self._conversations = rebuilt
        LOGGER.debug("Rebuilt %s conversation(s)", len(rebuilt))
        for listener in list(self._listeners):
            try:
                listener(self.conversations)
            except Exception:  # pylint: disable=broad-except
                LOGGER.error("Conversation listener failed", exc_info=True)
        return self.conversations

    def open(self, peer: str) -> Conversation:
        """Start an empty conversation with ``peer`` unless one already exists."""
        if not is_valid_identity(peer):
            raise ValueError(f"Invalid wallet address: {peer!r}")
        normalized = normalize_identity(peer)
        if normalized == normalize_identity(self._store.local_identity):
            raise ValueError("Cannot open a conversation with the local identity")
        self._opened[normalized] = None
        if normalized not in self._conversations:
            self.refresh()
        return self._conversations[normalized]

    def ordered(self) -> list[Conversation]:
        """Return conversations with the most recent activity first."""
        dated: list[tuple[datetime, Conversation]] = []
        empty: list[Conversation] = []
        for conversation in self._conversations.values():
            if conversation.last_message is None:
                empty.append(conversation)
            else:
                dated.append((conversation.last_message.sent_at, conversation))
        dated.sort(key=lambda item: item[0], reverse=True)
        return [conversation for _, conversation in dated] + empty

    def search(
        self, term: str, display_name: Callable[[str], str] | None = None
    ) -> list[Conversation]:
        """Return :meth:`ordered` conversations whose peer matches ``term``.

        The term is matched case-insensitively against the address, its short
        ``0x1234...abcd`` form and, when ``display_name`` is given, the name it
        returns for the peer. A blank term matches every conversation.
        """
        needle = term.strip().lower()
        conversations = self.ordered()
        if not needle:
            return conversations
        return [
            conversation
            for conversation in conversations
            if any(
                needle in candidate.lower()
                for candidate in _search_keys(conversation.peer, display_name)
            )
        ]

    def total_unread(self) -> int:
        """Return the unread count summed over every conversation."""
        return sum(c.unread_count for c in self._conversations.values())

    def subscribe(self, listener: ConversationListener) -> Callable[[], None]:
        """Register ``listener`` to receive every rebuilt mapping."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        """Stop following the store."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self, store: MessageStore) -> None:
        del store
        self.refresh()


def _search_keys(
    peer: str, display_name: Callable[[str], str] | None
) -> list[str]:
    keys = [peer, short_identity(peer)]
    if display_name is not None:
        keys.append(display_name(peer))
    return keys


__all__ = ["ConversationAggregator", "ConversationListener", "rebuild"]

"""Append-only in-memory log of messages for the local identity."""

from __future__ import annotations

import itertools
import logging
import secrets
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime

from ..core.datetime_utils import ensure_utc, utc_now
from ..core.identity import normalize_identity
from ..core.models import DeliveryState, Message, MessageDraft

LOGGER = logging.getLogger(__name__)

PROVISIONAL_PREFIX = "temp_"

StoreListener = Callable[["MessageStore"], None]


def is_provisional_id(message_id: str) -> bool:
    """Return ``True`` for identifiers minted locally before confirmation."""
    return message_id.startswith(PROVISIONAL_PREFIX)


class MessageStore:
    """Ordered message log with lookup by peer and identifier.

    Entries are never removed. Mutations replace the affected entry with an
    updated copy and notify subscribers once per mutation, or once per
    :meth:`batch` block.
    """

    def __init__(
        self,
        local_identity: str,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Create an empty store owned by ``local_identity``."""
        if not local_identity.strip():
            raise ValueError("local_identity must not be empty")
        self._local = normalize_identity(local_identity)
        self._local_raw = local_identity.strip()
        self._clock = clock
        self._entries: list[Message] = []
        self._index: dict[str, int] = {}
        self._counter = itertools.count(1)
        self._listeners: list[StoreListener] = []
        self._batch_depth = 0
        self._dirty = False

    # Properties ---------------------------------------------------------------
    @property
    def local_identity(self) -> str:
        """Return the address this store belongs to, as supplied."""
        return self._local_raw

    def __len__(self) -> int:
        return len(self._entries)

    # Observers ----------------------------------------------------------------
    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register ``listener`` for mutation notifications.

        Returns a callable that removes the subscription.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def batch(self) -> Iterator[MessageStore]:
        """Coalesce notifications for all mutations made inside the block."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._dirty:
                self._notify()

    # Mutations ----------------------------------------------------------------
    def insert_provisional(self, draft: MessageDraft) -> Message:
        """Append an optimistic outbound message in ``pending`` state."""
        if normalize_identity(draft.sender) != self._local:
            raise ValueError("Provisional messages must be sent by the local identity")
        if normalize_identity(draft.recipient) == self._local:
            raise ValueError("Cannot send a message to the local identity")
        if not draft.body and draft.attachment is None:
            raise ValueError("Message body and attachment are both empty")

        message = Message(
            id=self._next_provisional_id(),
            sender=draft.sender,
            recipient=draft.recipient,
            body=draft.body,
            sent_at=ensure_utc(self._clock()),
            read_by_recipient=False,
            delivery_state=DeliveryState.PENDING,
            attachment=draft.attachment,
        )
        self._append(message)
        LOGGER.debug(
            "Inserted provisional message %s",
            message.id,
            extra={"message_id": message.id},
        )
        return message

    def insert_confirmed(self, message: Message) -> bool:
        """Append a server-confirmed message unless its id is already known.

        Returns ``True`` when the message was added.
        """
        if message.id in self._index:
            LOGGER.debug("Ignoring duplicate confirmed message %s", message.id)
            return False
        if is_provisional_id(message.id):
            LOGGER.warning("Refusing confirmed message with provisional id %s", message.id)
            return False
        sender = normalize_identity(message.sender)
        recipient = normalize_identity(message.recipient)
        if (sender == self._local) == (recipient == self._local):
            LOGGER.warning(
                "Ignoring message %s not addressed between the local identity "
                "and a peer",
                message.id,
            )
            return False
        if not message.body and message.attachment is None:
            LOGGER.warning("Ignoring message %s with no body or attachment", message.id)
            return False

        self._append(replace(message, sent_at=ensure_utc(message.sent_at)))
        LOGGER.debug(
            "Inserted confirmed message %s", message.id, extra={"message_id": message.id}
        )
        return True

    def promote(
        self, sender: str, recipient: str, body: str, confirmed_id: str
    ) -> Message | None:
        """Confirm the oldest pending message matching the supplied content.

        Returns the promoted message, or ``None`` when nothing matched.
        """
        if confirmed_id in self._index:
            LOGGER.debug("Confirmation for known id %s ignored", confirmed_id)
            return None

        wanted_sender = normalize_identity(sender)
        wanted_recipient = normalize_identity(recipient)
        for position, entry in enumerate(self._entries):
            if (
                entry.delivery_state is DeliveryState.PENDING
                and is_provisional_id(entry.id)
                and entry.body == body
                and normalize_identity(entry.sender) == wanted_sender
                and normalize_identity(entry.recipient) == wanted_recipient
            ):
                promoted = replace(
                    entry, id=confirmed_id, delivery_state=DeliveryState.DELIVERED
                )
                del self._index[entry.id]
                self._replace(position, promoted)
                LOGGER.debug(
                    "Promoted %s to %s",
                    entry.id,
                    confirmed_id,
                    extra={"message_id": confirmed_id},
                )
                return promoted

        LOGGER.debug("No pending message matches confirmation %s", confirmed_id)
        return None

    def mark_read(self, peer: str) -> int:
        """Mark every inbound message from ``peer`` as read.

        Returns the number of messages that changed.
        """
        wanted = normalize_identity(peer)
        changed = 0
        with self.batch():
            for position, entry in enumerate(self._entries):
                if (
                    not entry.read_by_recipient
                    and normalize_identity(entry.sender) == wanted
                    and normalize_identity(entry.recipient) == self._local
                ):
                    self._replace(
                        position,
                        replace(
                            entry,
                            read_by_recipient=True,
                            delivery_state=DeliveryState.READ,
                        ),
                    )
                    changed += 1
        return changed

    def mark_failed(self, message_id: str) -> Message | None:
        """Move a still-pending message to ``failed``."""
        position = self._index.get(message_id)
        if position is None:
            return None
        entry = self._entries[position]
        if entry.delivery_state is not DeliveryState.PENDING:
            return None
        failed = replace(entry, delivery_state=DeliveryState.FAILED)
        self._replace(position, failed)
        LOGGER.info(
            "Message %s marked as failed", message_id, extra={"message_id": message_id}
        )
        return failed

    # Queries ------------------------------------------------------------------
    def get(self, message_id: str) -> Message | None:
        """Return the message currently stored under ``message_id``."""
        position = self._index.get(message_id)
        return None if position is None else self._entries[position]

    def messages(self) -> tuple[Message, ...]:
        """Return every message in insertion order."""
        return tuple(self._entries)

    def query(self, peer: str) -> list[Message]:
        """Return the conversation with ``peer`` ordered by ``sent_at``.

        Messages sharing a timestamp keep their insertion order.
        """
        wanted = normalize_identity(peer)
        selected = [
            entry for entry in self._entries if self.counterpart(entry) == wanted
        ]
        return sorted(selected, key=lambda entry: entry.sent_at)

    def counterpart(self, message: Message) -> str:
        """Return the normalised address of the party that is not local."""
        sender = normalize_identity(message.sender)
        if sender == self._local:
            return normalize_identity(message.recipient)
        return sender

    def is_inbound(self, message: Message) -> bool:
        """Return ``True`` when ``message`` was received by the local identity."""
        return normalize_identity(message.recipient) == self._local

    # Internal helpers ---------------------------------------------------------
    def _next_provisional_id(self) -> str:
        return f"{PROVISIONAL_PREFIX}{next(self._counter)}_{secrets.token_hex(4)}"

    def _append(self, message: Message) -> None:
        self._index[message.id] = len(self._entries)
        self._entries.append(message)
        self._changed()

    def _replace(self, position: int, message: Message) -> None:
        self._entries[position] = message
        self._index[message.id] = position
        self._changed()

    def _changed(self) -> None:
        if self._batch_depth:
            self._dirty = True
            return
        self._notify()

    def _notify(self) -> None:
        self._dirty = False
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:  # pylint: disable=broad-except
                LOGGER.error("Message store listener failed", exc_info=True)


__all__ = [
    "PROVISIONAL_PREFIX",
    "MessageStore",
    "StoreListener",
    "is_provisional_id",
]

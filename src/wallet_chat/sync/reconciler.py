"""Apply inbound realtime events to the message store."""

from __future__ import annotations

import logging

from ..codec.wire import MessageSentFrame, NewMessageFrame
from ..core.errors import ReconciliationMiss
from ..core.models import Message
from ..storage.message_store import MessageStore

LOGGER = logging.getLogger(__name__)


class DeliveryReconciler:
    """Match server events against optimistic local writes."""

    def __init__(self, store: MessageStore) -> None:
        """Bind the reconciler to the store it mutates."""
        self._store = store

    @property
    def store(self) -> MessageStore:
        """Return the store this reconciler writes to."""
        return self._store

    def apply_new_message(self, frame: NewMessageFrame) -> Message | None:
        """Insert an inbound message; returns ``None`` for duplicates."""
        message = frame.to_message()
        if self._store.insert_confirmed(message):
            return self._store.get(message.id)
        return None

    def apply_confirmation(self, frame: MessageSentFrame) -> Message:
        """Promote the oldest pending message matching ``frame``.

        Raises :class:`ReconciliationMiss` when no pending message matches.
        """
        if not frame.delivered:
            LOGGER.debug("Server stored message %s without live delivery", frame.id)
        promoted = self._store.promote(frame.sender, frame.to, frame.content, frame.id)
        if promoted is None:
            raise ReconciliationMiss(
                f"No pending message matches confirmation {frame.id} "
                f"({frame.sender} -> {frame.to})"
            )
        return promoted

    def expire(self, message_id: str) -> Message | None:
        """Fail a send that was never confirmed."""
        return self._store.mark_failed(message_id)


__all__ = ["DeliveryReconciler"]

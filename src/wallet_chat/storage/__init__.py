"""Message log storage."""

from .message_store import PROVISIONAL_PREFIX, MessageStore, is_provisional_id

__all__ = ["PROVISIONAL_PREFIX", "MessageStore", "is_provisional_id"]

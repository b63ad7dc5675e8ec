"""Exception hierarchy raised by the synchronization engine."""

from __future__ import annotations


class ChatSyncError(RuntimeError):
    """Base class for every error raised by this package."""


class SizeExceeded(ChatSyncError):
    """Raised when an attachment is larger than the configured maximum."""

    def __init__(self, size: int, limit: int) -> None:
        """Record the offending size alongside the limit."""
        super().__init__(f"Attachment of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class CodecError(ChatSyncError):
    """Raised when an attachment payload cannot be decoded."""


class NotConnected(ChatSyncError):
    """Raised when sending while the realtime session is not active."""


class MalformedEvent(ChatSyncError):
    """Raised for inbound frames that cannot be parsed."""


class ReconciliationMiss(ChatSyncError):
    """Raised when a delivery confirmation matches no pending message."""


class TransportError(ChatSyncError):
    """Wrap low level transport failures with additional context."""


class HistoryError(ChatSyncError):
    """Raised when durable history cannot be fetched."""


class CollaboratorError(ChatSyncError):
    """Raised when an auxiliary HTTP collaborator fails."""


__all__ = [
    "ChatSyncError",
    "CodecError",
    "CollaboratorError",
    "HistoryError",
    "MalformedEvent",
    "NotConnected",
    "ReconciliationMiss",
    "SizeExceeded",
    "TransportError",
]

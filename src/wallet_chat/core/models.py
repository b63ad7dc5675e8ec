"""Core domain models used across the synchronization engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DeliveryState(str, Enum):
    """Lifecycle stage of a message."""

    PENDING = "pending"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class SessionState(str, Enum):
    """Connection state of the realtime session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"


@dataclass(frozen=True, slots=True)
class Attachment:
    """Binary payload carried by a message in base64 text form."""

    name: str
    media_type: str
    size_bytes: int
    payload: str


@dataclass(frozen=True, slots=True)
class MessageDraft:
    """Outbound content before it is assigned an identifier."""

    sender: str
    recipient: str
    body: str
    attachment: Attachment | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class Message:
    """A single entry of the message log.

    ``sender`` and ``recipient`` keep the address exactly as received;
    comparisons always go through :func:`wallet_chat.core.identity.normalize_identity`.
    """

    id: str
    sender: str
    recipient: str
    body: str
    sent_at: datetime
    read_by_recipient: bool
    delivery_state: DeliveryState
    attachment: Attachment | None = None


@dataclass(frozen=True, slots=True)
class Conversation:
    """Derived per-peer summary of the message log."""

    peer: str
    last_message: Message | None
    unread_count: int


@dataclass(frozen=True, slots=True)
class Contact:
    """Address book entry supplied by the contact directory."""

    address: str
    name: str | None


@dataclass(slots=True)
class HistoryReport:
    """Outcome summary for a history load."""

    fetched: int
    inserted: int
    skipped: int


__all__ = [
    "Attachment",
    "Contact",
    "Conversation",
    "DeliveryState",
    "HistoryReport",
    "Message",
    "MessageDraft",
    "SessionState",
]

"""Protocol interfaces for decoupling components from collaborators."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from .models import Attachment, Contact


class HistoryProvider(Protocol):
    """Request/response source of durable message history."""

    def fetch_history(self, identity: str, limit: int) -> Sequence[Mapping[str, Any]]:
        """Return raw history records for ``identity``, oldest first if possible."""
        raise NotImplementedError


class ContactDirectory(Protocol):
    """Address book owned by the surrounding application."""

    def list_contacts(self, owner: str) -> Sequence[Contact]:
        """Return the contacts saved by ``owner``."""
        raise NotImplementedError


class DocumentStore(Protocol):
    """Permanent filing for attachments received in chat."""

    def upload(self, owner: str, attachment: Attachment, data: bytes) -> str | None:
        """File ``data`` for ``owner`` and return the stored document id."""
        raise NotImplementedError


class RealtimeTransport(Protocol):
    """Bidirectional JSON-framed connection used by the realtime session."""

    async def connect(self) -> None:
        """Open the underlying connection."""
        raise NotImplementedError

    async def send_json(self, payload: Mapping[str, Any]) -> None:
        """Transmit a single JSON frame."""
        raise NotImplementedError

    async def receive(self) -> str | None:
        """Return the next text frame, or ``None`` once the connection closed."""
        raise NotImplementedError

    async def close(self) -> None:
        """Tear the connection down; calling it twice must be harmless."""
        raise NotImplementedError


__all__ = [
    "ContactDirectory",
    "DocumentStore",
    "HistoryProvider",
    "RealtimeTransport",
]

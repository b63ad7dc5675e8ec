"""Identity activation and orchestration of the synchronization components."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from pathlib import Path

from .codec.attachment import AttachmentCodec
from .core.config import AppSettings
from .core.errors import NotConnected, SizeExceeded
from .core.identity import is_valid_identity, same_identity
from .core.interfaces import DocumentStore, HistoryProvider, RealtimeTransport
from .core.models import Attachment, Conversation, Message, SessionState
from .storage.message_store import MessageStore
from .sync.aggregator import ConversationAggregator
from .sync.history import HistoryLoader
from .sync.reconciler import DeliveryReconciler
from .transport.http_api import HttpDocumentStore, HttpHistoryProvider
from .transport.realtime import RealtimeSession
from .transport.websocket import WebSocketTransport

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[], RealtimeTransport]


class ChatClient:
    """Wire history, store, aggregation and the realtime session together.

    History is loaded once per identity and always completes before the
    realtime session authenticates. Deactivating keeps the store so that
    re-activating the same identity reconnects without refetching.
    """

    # pylint: disable=too-many-instance-attributes
    def __init__(
        self,
        history: HistoryProvider,
        transport_factory: TransportFactory,
        *,
        settings: AppSettings | None = None,
        documents: DocumentStore | None = None,
    ) -> None:
        """Initialise the client with its collaborators."""
        self._settings = settings or AppSettings()
        self._history = history
        self._transport_factory = transport_factory
        self._documents = documents
        self.codec = AttachmentCodec(self._settings.attachments.max_size_bytes)
        self._identity: str | None = None
        self._store: MessageStore | None = None
        self._aggregator: ConversationAggregator | None = None
        self._reconciler: DeliveryReconciler | None = None
        self._session: RealtimeSession | None = None
        self._session_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: AppSettings) -> ChatClient:
        """Build a client talking to the configured HTTP and WebSocket endpoints."""
        return cls(
            HttpHistoryProvider(settings.api),
            lambda: WebSocketTransport.from_settings(settings.realtime),
            settings=settings,
            documents=HttpDocumentStore(settings.api),
        )

    # Read-only views ----------------------------------------------------------
    @property
    def identity(self) -> str | None:
        """Return the active identity, if any."""
        return self._identity

    @property
    def store(self) -> MessageStore:
        """Return the message store of the active identity."""
        if self._store is None:
            raise NotConnected("No identity has been activated")
        return self._store

    @property
    def aggregator(self) -> ConversationAggregator:
        """Return the conversation aggregator of the active identity."""
        if self._aggregator is None:
            raise NotConnected("No identity has been activated")
        return self._aggregator

    @property
    def session(self) -> RealtimeSession | None:
        """Return the current realtime session."""
        return self._session

    @property
    def state(self) -> SessionState:
        """Return the realtime session state."""
        if self._session is None:
            return SessionState.DISCONNECTED
        return self._session.state

    def conversations(
        self, search: str = "", display_name: Callable[[str], str] | None = None
    ) -> list[Conversation]:
        """Return conversations most recent first, filtered by ``search``."""
        return self.aggregator.search(search, display_name)

    def messages(self, peer: str) -> list[Message]:
        """Return the ordered conversation with ``peer``."""
        return self.store.query(peer)

    # Lifecycle ----------------------------------------------------------------
    async def activate(self, identity: str, *, wait: float | None = None) -> None:
        """Make ``identity`` the local party and start the realtime session.

        When ``wait`` is given, block up to that many seconds for the session
        to become active.
        """
        if not identity.strip():
            raise ValueError("identity must not be empty")
        if self._identity is None or not same_identity(identity, self._identity):
            await self.deactivate()
            self._reset(identity)
            try:
                await self._load_history(identity)
            except Exception:
                await self.close()
                raise
        elif self._session is not None and not self._session.closed:
            LOGGER.debug("Identity %s already active", identity)
            return

        session = RealtimeSession(
            self._transport_factory(),
            self.store,
            reconciler=self._reconciler,
            settings=self._settings.realtime,
        )
        self._session = session
        self._session_task = asyncio.create_task(session.run())
        if wait is not None:
            await session.wait_active(wait)

    async def deactivate(self) -> None:
        """Close the realtime session; the store is kept for reuse."""
        session, self._session = self._session, None
        task, self._session_task = self._session_task, None
        if session is not None:
            await session.close()
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def close(self) -> None:
        """Deactivate and drop the per-identity state."""
        await self.deactivate()
        if self._aggregator is not None:
            self._aggregator.close()
        self._identity = None
        self._store = None
        self._aggregator = None
        self._reconciler = None

    # Operations ---------------------------------------------------------------
    async def send(
        self, peer: str, body: str = "", attachment: Attachment | None = None
    ) -> Message:
        """Send ``body`` (and optional attachment) to ``peer``."""
        if self._session is None:
            raise NotConnected("No realtime session; activate an identity first")
        return await self._session.send(peer, body, attachment)

    async def send_file(
        self,
        peer: str,
        path: Path,
        media_type: str = "application/octet-stream",
        body: str = "",
    ) -> Message:
        """Encode the file at ``path`` and send it.

        The size is checked from the file metadata so an oversized file is
        rejected without being read.
        """
        if not is_valid_identity(peer):
            raise ValueError(f"Invalid wallet address: {peer!r}")
        if self._session is None or self._session.state is not SessionState.ACTIVE:
            raise NotConnected("Cannot send while the session is not active")
        size = (await asyncio.to_thread(path.stat)).st_size
        if size > self.codec.max_size_bytes:
            raise SizeExceeded(size, self.codec.max_size_bytes)
        raw = await asyncio.to_thread(path.read_bytes)
        attachment = self.codec.encode(raw, path.name, media_type)
        return await self.send(peer, body, attachment)

    def mark_read(self, peer: str) -> int:
        """Mark the conversation with ``peer`` as read locally."""
        return self.store.mark_read(peer)

    def open_conversation(self, peer: str) -> Conversation:
        """Start an empty conversation with ``peer``."""
        return self.aggregator.open(peer)

    async def save_attachment(self, message_id: str) -> str | None:
        """File the attachment of ``message_id`` with the document store."""
        if self._documents is None:
            raise NotConnected("No document store configured")
        message = self.store.get(message_id)
        if message is None or message.attachment is None:
            raise ValueError(f"Message {message_id} has no attachment")
        data = self.codec.decode(message.attachment)
        return await asyncio.to_thread(
            self._documents.upload, self.store.local_identity, message.attachment, data
        )

    # Internal helpers ---------------------------------------------------------
    def _reset(self, identity: str) -> None:
        if self._aggregator is not None:
            self._aggregator.close()
        self._identity = identity
        self._store = MessageStore(identity)
        self._aggregator = ConversationAggregator(self._store)
        self._reconciler = DeliveryReconciler(self._store)

    async def _load_history(self, identity: str) -> None:
        loader = HistoryLoader(
            self._history,
            self.store,
            self.aggregator,
            limit=self._settings.history.limit,
        )
        records = await asyncio.to_thread(loader.fetch, identity)
        loader.apply(identity, records)


__all__ = ["ChatClient", "TransportFactory"]

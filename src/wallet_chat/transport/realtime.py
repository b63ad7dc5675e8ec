"""Realtime session state machine over a JSON-framed transport."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ..codec.wire import (
    AuthenticatedFrame,
    ErrorFrame,
    MessageSentFrame,
    NewMessageFrame,
    authenticate_payload,
    parse_inbound,
    send_message_payload,
)
from ..core.config import RealtimeSettings
from ..core.errors import (
    MalformedEvent,
    NotConnected,
    ReconciliationMiss,
    TransportError,
)
from ..core.identity import is_valid_identity, normalize_identity
from ..core.interfaces import RealtimeTransport
from ..core.models import Attachment, Message, MessageDraft, SessionState
from ..storage.message_store import MessageStore
from ..sync.reconciler import DeliveryReconciler

LOGGER = logging.getLogger(__name__)

StatusListener = Callable[[SessionState], None]


class RealtimeSession:
    """Own one transport connection and apply its events to a store.

    States move ``disconnected -> connecting -> authenticating -> active`` and
    fall back to ``disconnected`` on close or error from any state. Once
    :meth:`close` has been called no further event is applied.
    """

    # pylint: disable=too-many-instance-attributes
    def __init__(
        self,
        transport: RealtimeTransport,
        store: MessageStore,
        *,
        reconciler: DeliveryReconciler | None = None,
        settings: RealtimeSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Bind the session to its transport, store and settings."""
        self._transport = transport
        self._store = store
        self._reconciler = reconciler or DeliveryReconciler(store)
        self._settings = settings or RealtimeSettings()
        self._sleep = sleep
        self._state = SessionState.DISCONNECTED
        self._closed = False
        self._listeners: list[StatusListener] = []
        self._active_event = asyncio.Event()
        self._reached_active = False
        self._timeouts: dict[str, asyncio.TimerHandle] = {}
        self.last_error: str | None = None

    # Status -------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        """Return the current connection state."""
        return self._state

    @property
    def closed(self) -> bool:
        """Return ``True`` once :meth:`close` has been called."""
        return self._closed

    @property
    def local_identity(self) -> str:
        """Return the identity this session authenticates as."""
        return self._store.local_identity

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register ``listener`` for state changes; returns an unsubscribe hook."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_active(self, timeout: float | None = None) -> bool:
        """Wait until the session is authenticated; ``False`` on timeout."""
        try:
            await asyncio.wait_for(self._active_event.wait(), timeout)
        except TimeoutError:
            return False
        return self._state is SessionState.ACTIVE

    # Lifecycle ----------------------------------------------------------------
    async def open(self) -> None:
        """Connect the transport and send the authenticate intent."""
        if self._closed:
            raise NotConnected("Session has been closed")
        if self._state is not SessionState.DISCONNECTED:
            return

        self._set_state(SessionState.CONNECTING)
        try:
            await self._transport.connect()
        except Exception as exc:  # pylint: disable=broad-except
            await self._drop(exc)
            raise TransportError(f"Failed to connect: {exc}") from exc
        if self._closed:
            return

        self._set_state(SessionState.AUTHENTICATING)
        try:
            await self._transport.send_json(authenticate_payload(self.local_identity))
        except Exception as exc:  # pylint: disable=broad-except
            await self._drop(exc)
            raise TransportError(f"Failed to authenticate: {exc}") from exc
        LOGGER.debug("Authenticate intent sent for %s", self.local_identity)

    async def listen(self) -> None:
        """Apply inbound frames until the transport closes or fails.

        Transport failures are recorded in :attr:`last_error` and end the
        session; they are never raised from here.
        """
        try:
            while not self._closed and self._state is not SessionState.DISCONNECTED:
                raw = await self._transport.receive()
                if raw is None:
                    LOGGER.info("Realtime transport closed by peer")
                    break
                self.handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Realtime transport failed: %s", exc)
            self.last_error = str(exc)
        finally:
            if not self._closed:
                await self._drop(None)

    async def run(self) -> None:
        """Open and listen, reconnecting with backoff when configured.

        When the loop gives up, waiters blocked in :meth:`wait_active` are
        released and observe the ``disconnected`` state.
        """
        attempts = 0
        backoff = self._settings.reconnect_backoff_seconds
        try:
            while not self._closed:
                try:
                    await self.open()
                except TransportError as exc:
                    LOGGER.warning("Realtime connection failed: %s", exc)
                else:
                    await self.listen()
                if self._reached_active:
                    attempts = 0
                    backoff = self._settings.reconnect_backoff_seconds
                    self._reached_active = False
                if self._closed or attempts >= self._settings.reconnect_attempts:
                    break
                attempts += 1
                LOGGER.info(
                    "Reconnecting in %.1fs (attempt %s/%s)",
                    backoff,
                    attempts,
                    self._settings.reconnect_attempts,
                )
                await self._sleep(backoff)
                backoff = min(backoff * 2, self._settings.reconnect_backoff_max_seconds)
        finally:
            self._active_event.set()

    async def close(self) -> None:
        """Tear the session down; safe to call from any state, repeatedly."""
        if self._closed:
            return
        self._closed = True
        for handle in self._timeouts.values():
            handle.cancel()
        self._timeouts.clear()
        try:
            await self._transport.close()
        except Exception:  # pylint: disable=broad-except
            LOGGER.debug("Transport close raised; suppressing during shutdown")
        self._set_state(SessionState.DISCONNECTED)
        self._active_event.set()

    # Outbound -----------------------------------------------------------------
    async def send(
        self, peer: str, body: str = "", attachment: Attachment | None = None
    ) -> Message:
        """Insert an optimistic message and transmit it.

        Raises :class:`NotConnected` without touching the store when the
        session is not active, and ``ValueError`` for an invalid ``peer``.
        """
        if not is_valid_identity(peer):
            raise ValueError(f"Invalid wallet address: {peer!r}")
        if self._closed or self._state is not SessionState.ACTIVE:
            raise NotConnected(
                f"Cannot send while session is {self._state.value}; retry once connected"
            )
        message = self._store.insert_provisional(
            MessageDraft(
                sender=self.local_identity,
                recipient=peer,
                body=body,
                attachment=attachment,
            )
        )
        try:
            await self._transport.send_json(send_message_payload(message))
        except Exception as exc:  # pylint: disable=broad-except
            self._reconciler.expire(message.id)
            await self._drop(exc)
            raise TransportError(f"Failed to send message: {exc}") from exc

        self._schedule_timeout(message.id)
        LOGGER.debug(
            "Sent message %s to %s",
            message.id,
            peer,
            extra={"message_id": message.id, "peer": peer},
        )
        return self._store.get(message.id) or message

    # Inbound ------------------------------------------------------------------
    def handle_frame(self, raw: str | bytes) -> None:
        """Parse and apply a single inbound frame.

        Malformed frames and unmatched confirmations are logged and dropped.
        """
        if self._closed:
            LOGGER.debug("Dropping frame received after close")
            return
        try:
            frame = parse_inbound(raw)
            if frame is None:
                return
            if isinstance(frame, AuthenticatedFrame):
                self._on_authenticated(frame)
            elif isinstance(frame, ErrorFrame):
                LOGGER.warning("Server reported an error: %s", frame.message)
            elif self._state is not SessionState.ACTIVE:
                LOGGER.warning(
                    "Dropping '%s' frame received while %s",
                    frame.type,
                    self._state.value,
                )
            elif isinstance(frame, NewMessageFrame):
                if self._reconciler.apply_new_message(frame) is None:
                    LOGGER.debug("Duplicate message %s ignored", frame.id)
            elif isinstance(frame, MessageSentFrame):
                self._reconciler.apply_confirmation(frame)
        except MalformedEvent as exc:
            LOGGER.warning("Dropping malformed frame: %s", exc)
        except ReconciliationMiss as exc:
            LOGGER.warning("Dropping delivery confirmation: %s", exc)

    # Internal helpers ---------------------------------------------------------
    def _on_authenticated(self, frame: AuthenticatedFrame) -> None:
        if self._state is not SessionState.AUTHENTICATING:
            LOGGER.debug("Ignoring authentication ack while %s", self._state.value)
            return
        if frame.wallet_address is not None and normalize_identity(
            frame.wallet_address
        ) != normalize_identity(self.local_identity):
            LOGGER.warning(
                "Authentication acknowledged for %s, expected %s",
                frame.wallet_address,
                self.local_identity,
            )
            return
        self._set_state(SessionState.ACTIVE)
        self._reached_active = True
        self._active_event.set()
        LOGGER.info(
            "Realtime session active for %s",
            self.local_identity,
            extra={"identity": self.local_identity, "session_state": "active"},
        )

    def _schedule_timeout(self, message_id: str) -> None:
        timeout = self._settings.send_timeout_seconds
        if timeout is None:
            return
        loop = asyncio.get_running_loop()
        self._timeouts[message_id] = loop.call_later(
            timeout, self._expire, message_id
        )

    def _expire(self, message_id: str) -> None:
        self._timeouts.pop(message_id, None)
        if self._closed:
            return
        if self._reconciler.expire(message_id) is not None:
            LOGGER.warning(
                "Message %s was not confirmed in time",
                message_id,
                extra={"message_id": message_id},
            )

    async def _drop(self, error: BaseException | None) -> None:
        if error is not None:
            self.last_error = str(error)
        try:
            await self._transport.close()
        except Exception:  # pylint: disable=broad-except
            LOGGER.debug("Transport close raised; suppressing during shutdown")
        self._active_event.clear()
        self._set_state(SessionState.DISCONNECTED)

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        LOGGER.debug(
            "Session state %s -> %s",
            self._state.value,
            state.value,
            extra={"identity": self.local_identity, "session_state": state.value},
        )
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:  # pylint: disable=broad-except
                LOGGER.error("Session status listener failed", exc_info=True)


__all__ = ["RealtimeSession", "StatusListener"]

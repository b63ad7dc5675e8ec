"""aiohttp WebSocket adapter implementing :class:`RealtimeTransport`."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from ..core.config import RealtimeSettings
from ..core.errors import TransportError
from ..core.interfaces import RealtimeTransport

LOGGER = logging.getLogger(__name__)

_CLOSED_TYPES = (
    aiohttp.WSMsgType.CLOSE,
    aiohttp.WSMsgType.CLOSING,
    aiohttp.WSMsgType.CLOSED,
)


class WebSocketTransport(RealtimeTransport):
    """Thin wrapper around ``aiohttp`` client WebSockets.

    The transport may be connected again after :meth:`close`, which lets a
    session reconnect without building a new adapter.
    """

    def __init__(
        self,
        url: str,
        *,
        heartbeat: float | None = 20.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialise the adapter; no connection is made until :meth:`connect`."""
        self._url = url
        self._heartbeat = heartbeat
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    @classmethod
    def from_settings(cls, settings: RealtimeSettings) -> WebSocketTransport:
        """Build a transport from realtime settings."""
        return cls(settings.url, heartbeat=settings.heartbeat_seconds)

    @property
    def connected(self) -> bool:
        """Return ``True`` while the socket is open."""
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        """Open the WebSocket connection."""
        if self.connected:
            return
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        LOGGER.debug("Connecting to %s", self._url)
        try:
            self._ws = await self._session.ws_connect(
                self._url, heartbeat=self._heartbeat
            )
        except (aiohttp.ClientError, OSError) as exc:  # pragma: no cover - network dependent
            raise TransportError(f"Unable to connect to {self._url}") from exc

    async def send_json(self, payload: Mapping[str, Any]) -> None:
        """Transmit ``payload`` as a text frame."""
        ws = self._require_socket()
        try:
            await ws.send_json(dict(payload))
        except (aiohttp.ClientError, ConnectionError) as exc:
            raise TransportError("Failed to write to WebSocket") from exc

    async def receive(self) -> str | None:
        """Return the next text frame or ``None`` once the socket closed."""
        ws = self._ws
        if ws is None:
            return None
        while True:
            msg = await ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                return str(msg.data)
            if msg.type == aiohttp.WSMsgType.BINARY:
                try:
                    return bytes(msg.data).decode("utf-8")
                except UnicodeDecodeError:
                    LOGGER.warning("Dropping binary frame that is not UTF-8")
                    continue
            if msg.type in _CLOSED_TYPES:
                LOGGER.debug("WebSocket closed with code %s", ws.close_code)
                return None
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(f"WebSocket error: {ws.exception()}")

    async def close(self) -> None:
        """Close the socket and any session this adapter created."""
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        if self._owns_session and self._session is not None:
            session, self._session = self._session, None
            if not session.closed:
                await session.close()

    def _require_socket(self) -> aiohttp.ClientWebSocketResponse:
        if self._ws is None or self._ws.closed:
            raise TransportError("WebSocket connection has not been established")
        return self._ws


__all__ = ["WebSocketTransport"]

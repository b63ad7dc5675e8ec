"""Transport adapters for the realtime channel and HTTP collaborators."""

from .http_api import HttpContactDirectory, HttpDocumentStore, HttpHistoryProvider
from .realtime import RealtimeSession
from .websocket import WebSocketTransport

__all__ = [
    "HttpContactDirectory",
    "HttpDocumentStore",
    "HttpHistoryProvider",
    "RealtimeSession",
    "WebSocketTransport",
]

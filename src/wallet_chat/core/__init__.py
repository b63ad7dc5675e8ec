"""Core utilities for configuration, logging, models and errors."""

from .config import AppSettings, RealtimeSettings, load_app_settings
from .errors import (
    ChatSyncError,
    CodecError,
    MalformedEvent,
    NotConnected,
    ReconciliationMiss,
    SizeExceeded,
)
from .logging import configure_logging
from .models import Attachment, Conversation, DeliveryState, Message, SessionState

__all__ = [
    "AppSettings",
    "Attachment",
    "ChatSyncError",
    "CodecError",
    "Conversation",
    "DeliveryState",
    "MalformedEvent",
    "Message",
    "NotConnected",
    "RealtimeSettings",
    "ReconciliationMiss",
    "SessionState",
    "SizeExceeded",
    "configure_logging",
    "load_app_settings",
]

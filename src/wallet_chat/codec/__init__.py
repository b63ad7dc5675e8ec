"""Encoding of attachments, realtime frames and history records."""

from .attachment import (
    DEFAULT_MAX_SIZE_BYTES,
    AttachmentCodec,
    data_url,
    format_file_size,
    is_image,
)
from .wire import (
    HistoryRecord,
    MessageSentFrame,
    NewMessageFrame,
    authenticate_payload,
    parse_inbound,
    send_message_payload,
)

__all__ = [
    "DEFAULT_MAX_SIZE_BYTES",
    "AttachmentCodec",
    "HistoryRecord",
    "MessageSentFrame",
    "NewMessageFrame",
    "authenticate_payload",
    "data_url",
    "format_file_size",
    "is_image",
    "parse_inbound",
    "send_message_payload",
]

"""Base64 codec and preview helpers for message attachments."""

from __future__ import annotations

import base64
import binascii

from ..core.errors import CodecError, SizeExceeded
from ..core.models import Attachment

DEFAULT_MAX_SIZE_BYTES = 10 * 1024 * 1024

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


class AttachmentCodec:
    """Convert raw bytes to and from the transportable attachment form."""

    def __init__(self, max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES) -> None:
        """Initialise the codec with the largest accepted payload size."""
        if max_size_bytes <= 0:
            raise ValueError("max_size_bytes must be positive")
        self.max_size_bytes = max_size_bytes

    def encode(self, raw: bytes, name: str, media_type: str) -> Attachment:
        """Wrap ``raw`` into an :class:`Attachment` with a base64 payload."""
        size = len(raw)
        if size > self.max_size_bytes:
            raise SizeExceeded(size, self.max_size_bytes)
        payload = base64.b64encode(raw).decode("ascii")
        return Attachment(
            name=name,
            media_type=media_type or "application/octet-stream",
            size_bytes=size,
            payload=payload,
        )

    def decode(self, attachment: Attachment) -> bytes:
        """Return the raw bytes carried by ``attachment``."""
        payload = _strip_data_url(attachment.payload)
        try:
            raw = base64.b64decode(payload.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise CodecError(
                f"Attachment '{attachment.name}' payload is not valid base64"
            ) from exc
        if len(raw) != attachment.size_bytes:
            raise CodecError(
                f"Attachment '{attachment.name}' decoded to {len(raw)} bytes, "
                f"expected {attachment.size_bytes}"
            )
        return raw


def is_image(attachment: Attachment) -> bool:
    """Return ``True`` when the attachment can be rendered inline as an image."""
    return attachment.media_type.lower().startswith("image/")


def data_url(attachment: Attachment) -> str:
    """Return a ``data:`` URL suitable for inline previews."""
    return f"data:{attachment.media_type};base64,{_strip_data_url(attachment.payload)}"


def format_file_size(size_bytes: int) -> str:
    """Format a byte count as ``1.5 KB`` style text."""
    if size_bytes <= 0:
        return "0 Bytes"
    value = float(size_bytes)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[exponent]}"


def _strip_data_url(payload: str) -> str:
    if payload.startswith("data:") and "," in payload:
        return payload.split(",", 1)[1]
    return payload


__all__ = [
    "DEFAULT_MAX_SIZE_BYTES",
    "AttachmentCodec",
    "data_url",
    "format_file_size",
    "is_image",
]

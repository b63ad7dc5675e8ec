"""Pydantic models for realtime frames and history records."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.datetime_utils import ensure_utc, serialize_datetime
from ..core.errors import MalformedEvent
from ..core.models import Attachment, DeliveryState, Message

LOGGER = logging.getLogger(__name__)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _stringify_id(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _require_id(value: str) -> str:
    if not value.strip():
        raise ValueError("id must not be empty")
    return value


class AttachmentFrame(_WireModel):
    """Attachment as it travels inside ``send_message``/``new_message``."""

    name: str
    type: str = "application/octet-stream"
    size: int = Field(ge=0)
    data: str

    @classmethod
    def from_attachment(cls, attachment: Attachment) -> AttachmentFrame:
        """Build the wire form of a domain attachment."""
        return cls(
            name=attachment.name,
            type=attachment.media_type,
            size=attachment.size_bytes,
            data=attachment.payload,
        )

    def to_attachment(self) -> Attachment:
        """Return the domain attachment carried by this frame."""
        return Attachment(
            name=self.name,
            media_type=self.type,
            size_bytes=self.size,
            payload=self.data,
        )


# Outbound -----------------------------------------------------------------------
class AuthenticateFrame(_WireModel):
    """First frame sent after the transport opens."""

    type: Literal["authenticate"] = "authenticate"
    wallet_address: str = Field(alias="walletAddress")


class SendMessageFrame(_WireModel):
    """Outbound chat message."""

    type: Literal["send_message"] = "send_message"
    sender: str | None = Field(default=None, alias="from")
    to: str
    content: str
    timestamp: str | None = None
    attachment: AttachmentFrame | None = None


# Inbound ------------------------------------------------------------------------
class AuthenticatedFrame(_WireModel):
    """Server acknowledgement of the authenticate intent."""

    type: Literal["authenticated"]
    wallet_address: str | None = Field(default=None, alias="walletAddress")


class _ChatEventFrame(_WireModel):
    id: str
    sender: str = Field(alias="from", min_length=1)
    to: str = Field(min_length=1)
    content: str = ""
    timestamp: datetime

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        """Accept the integer ids issued by the server."""
        return _stringify_id(value)

    @field_validator("id")
    @classmethod
    def require_id(cls, value: str) -> str:
        """Reject blank identifiers."""
        return _require_id(value)


class NewMessageFrame(_ChatEventFrame):
    """A message addressed to the local identity."""

    type: Literal["new_message"]
    attachment: AttachmentFrame | None = None

    def to_message(self) -> Message:
        """Return the confirmed, unread message described by this frame."""
        return Message(
            id=self.id,
            sender=self.sender,
            recipient=self.to,
            body=self.content,
            sent_at=ensure_utc(self.timestamp),
            read_by_recipient=False,
            delivery_state=DeliveryState.DELIVERED,
            attachment=self.attachment.to_attachment() if self.attachment else None,
        )


class MessageSentFrame(_ChatEventFrame):
    """Delivery confirmation for content the local identity sent."""

    type: Literal["message_sent"]
    delivered: bool = True


class ErrorFrame(_WireModel):
    """Server-side error report."""

    type: Literal["error"]
    message: str | None = None


InboundFrame = AuthenticatedFrame | NewMessageFrame | MessageSentFrame | ErrorFrame

_INBOUND_MODELS: dict[str, type[BaseModel]] = {
    "authenticated": AuthenticatedFrame,
    "new_message": NewMessageFrame,
    "message_sent": MessageSentFrame,
    "error": ErrorFrame,
}


def parse_inbound(raw: str | bytes) -> InboundFrame | None:
    """Parse a raw text frame.

    Returns ``None`` for well-formed frames of a type this client does not
    handle; raises :class:`MalformedEvent` for anything unparseable.
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedEvent("Frame is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedEvent("Frame is not a JSON object")
    frame_type = payload.get("type")
    if not isinstance(frame_type, str):
        raise MalformedEvent("Frame has no 'type' field")
    model = _INBOUND_MODELS.get(frame_type)
    if model is None:
        LOGGER.debug("Ignoring frame of unhandled type %s", frame_type)
        return None
    try:
        return model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as exc:
        raise MalformedEvent(f"Invalid '{frame_type}' frame: {exc}") from exc


def authenticate_payload(identity: str) -> dict[str, Any]:
    """Return the JSON payload of the authenticate intent."""
    return AuthenticateFrame(wallet_address=identity).model_dump(by_alias=True)


def send_message_payload(message: Message) -> dict[str, Any]:
    """Return the JSON payload transmitting ``message``."""
    frame = SendMessageFrame(
        sender=message.sender,
        to=message.recipient,
        content=message.body,
        timestamp=serialize_datetime(message.sent_at),
        attachment=(
            AttachmentFrame.from_attachment(message.attachment)
            if message.attachment
            else None
        ),
    )
    return frame.model_dump(by_alias=True, exclude_none=True)


# History ------------------------------------------------------------------------
class HistoryRecord(_WireModel):
    """Row returned by the durable history endpoint."""

    id: str
    sender: str = Field(alias="from", min_length=1)
    to: str = Field(min_length=1)
    content: str = ""
    timestamp: datetime
    read: bool | None = False
    delivered: bool | None = True
    attachment_name: str | None = Field(default=None, alias="attachmentName")
    attachment_type: str | None = Field(default=None, alias="attachmentType")
    attachment_size: int | None = Field(default=None, alias="attachmentSize")
    attachment_data: str | None = Field(default=None, alias="attachmentData")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        """Accept the integer ids issued by the server."""
        return _stringify_id(value)

    @field_validator("id")
    @classmethod
    def require_id(cls, value: str) -> str:
        """Reject blank identifiers."""
        return _require_id(value)

    def to_message(self, *, inbound: bool) -> Message:
        """Return the confirmed message stored in history.

        ``inbound`` tells whether the local identity is the recipient.
        """
        attachment = None
        if self.attachment_name and self.attachment_data is not None:
            attachment = Attachment(
                name=self.attachment_name,
                media_type=self.attachment_type or "application/octet-stream",
                size_bytes=self.attachment_size or 0,
                payload=self.attachment_data,
            )
        read = bool(self.read)
        state = DeliveryState.READ if inbound and read else DeliveryState.DELIVERED
        return Message(
            id=self.id,
            sender=self.sender,
            recipient=self.to,
            body=self.content,
            sent_at=ensure_utc(self.timestamp),
            read_by_recipient=read,
            delivery_state=state,
            attachment=attachment,
        )


__all__ = [
    "AttachmentFrame",
    "AuthenticateFrame",
    "AuthenticatedFrame",
    "ErrorFrame",
    "HistoryRecord",
    "InboundFrame",
    "MessageSentFrame",
    "NewMessageFrame",
    "SendMessageFrame",
    "authenticate_payload",
    "parse_inbound",
    "send_message_payload",
]

"""Message-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MESSAGE_NOTIFICATION_TYPE = "message"


class Annotation(BaseModel):
    """Caption placed over the media at a relative position."""

    id: str
    type: Literal["caption"] = "caption"
    text: str
    x: float = Field(..., ge=0, le=1)
    y: float = Field(..., ge=0, le=1)
    font_size: float = Field(..., gt=0)
    color: str = "#FFFFFF"


class MessageContent(BaseModel):
    """Reference to an already-uploaded blob plus its rendering metadata."""

    content_ref: str = Field(..., min_length=1, description="Public URL of the uploaded media")
    content_key: str | None = Field(None, description="Storage key used to delete the media")
    kind: str | None = Field(None, description="MIME type, e.g. image/jpeg or video/mp4")
    thumbhash: str | None = Field(None, description="Base64 thumbhash preview")
    annotations: list[Annotation] | None = None


class MessageSendRequest(MessageContent):
    """Schema for sending one piece of media to a set of recipients."""

    recipients: list[str] = Field(..., min_length=1)

    @field_validator("recipients")
    @classmethod
    def recipients_must_be_distinct(cls, value: list[str]) -> list[str]:
        """Reject duplicate or blank recipient ids."""
        if any(not recipient for recipient in value):
            raise ValueError("recipient ids must be non-empty")
        if len(set(value)) != len(value):
            raise ValueError("recipient ids must be distinct")
        return value


class InboxItem(BaseModel):
    """An unread delivery addressed to the caller."""

    delivery_id: str
    message_id: str
    sender_id: str
    content_ref: str
    kind: str | None = None
    thumbhash: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OutboxRecipient(BaseModel):
    """Read state of one recipient of a sent message."""

    recipient_id: str
    delivery_id: str
    read_at: datetime | None


class OutboxItem(BaseModel):
    """A message sent by the caller."""

    message_id: str
    content_ref: str
    kind: str | None
    created_at: datetime
    deleted_at: datetime | None
    recipients: list[OutboxRecipient]


class MessageNotification(BaseModel):
    """Push payload rich enough to render a message without fetching the inbox."""

    type: Literal["message"] = MESSAGE_NOTIFICATION_TYPE
    sender_id: str
    message_id: str
    delivery_id: str
    content_ref: str
    kind: str | None = None
    thumbhash: str | None = None

    def to_inbox_item(self, received_at: datetime) -> InboxItem:
        """Build the inbox entry a client splices in on receipt."""
        return InboxItem(
            delivery_id=self.delivery_id,
            message_id=self.message_id,
            sender_id=self.sender_id,
            content_ref=self.content_ref,
            kind=self.kind,
            thumbhash=self.thumbhash,
            created_at=received_at,
        )


class CleanupResponse(BaseModel):
    """Outcome of a cleanup check for one message."""

    ok: bool
    reason: str | None = None

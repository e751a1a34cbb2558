"""Models describing ephemeral messages and their per-recipient deliveries."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ephemera.core.time import utcnow
from ephemera.db.session import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Message(Base):
    """One piece of media sent by one sender to one or more recipients.

    The row is immutable apart from ``deleted_at``, set once every delivery
    was read, and ``content_released_at``, set once the content store
    confirmed the blob is gone. A message can be deleted while its blob is
    still live when the store was unavailable; later cleanups retry it.
    """

    __tablename__ = "message"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    sender_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True
    )

    content_ref: Mapped[str] = mapped_column(Text, nullable=False)
    # Storage key used for deletion; derived from content_ref when absent.
    content_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    kind: Mapped[str | None] = mapped_column(String(128), nullable=True)
    thumbhash: Mapped[str | None] = mapped_column(Text, nullable=True)
    annotations: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    content_released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    deliveries: Mapped[list[MessageDelivery]] = relationship(
        "MessageDelivery",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class MessageDelivery(Base):
    """A single recipient's copy of a message, tracked independently for read state."""

    __tablename__ = "message_delivery"
    __table_args__ = (
        UniqueConstraint("message_id", "recipient_id", name="uq_delivery_message_recipient"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    message_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("message.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    message: Mapped[Message] = relationship("Message", back_populates="deliveries")

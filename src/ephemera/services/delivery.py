"""Message fan-out and per-recipient read tracking.

A send creates one ``Message`` and one ``MessageDelivery`` per recipient and
advances the streak of every affected friendship, all inside a single
transaction: either the whole fan-out becomes visible or none of it does.
Push notifications are produced here but dispatched by the caller after the
commit, so a failing push can never undo a send.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ephemera.core.settings import settings
from ephemera.core.time import ensure_utc, utcnow
from ephemera.models import Message, MessageDelivery, User
from ephemera.schemas.message import (
    InboxItem,
    MessageContent,
    MessageNotification,
    OutboxItem,
    OutboxRecipient,
)
from ephemera.services.cleanup import CleanupCoordinator
from ephemera.services.streak import update_streak

logger = logging.getLogger(__name__)


class MessagingError(ValueError):
    """Base exception for rejected messaging operations."""


class InvalidRecipientsError(MessagingError):
    """Raised when a send names no, duplicate, or unknown recipients."""


class UnknownRecipientsError(InvalidRecipientsError):
    """Raised when some recipient ids do not belong to any user."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Unknown recipients: {', '.join(self.missing)}")


@dataclass(frozen=True)
class SendResult:
    """A committed send and the push payload owed to each recipient."""

    message: Message
    notifications: dict[str, MessageNotification]


def _validate_recipients(db: Session, sender_id: str, recipients: Sequence[str]) -> list[str]:
    if not recipients:
        raise InvalidRecipientsError("At least one recipient is required")
    if len(set(recipients)) != len(recipients):
        raise InvalidRecipientsError("Recipients must be distinct")
    if sender_id in recipients and not settings.allow_self_messages:
        raise InvalidRecipientsError("Cannot send a message to yourself")

    known = set(
        db.execute(select(User.id).where(User.id.in_(recipients))).scalars().all()
    )
    missing = [recipient for recipient in recipients if recipient not in known]
    if missing:
        raise UnknownRecipientsError(missing)
    return list(recipients)


def send_message(
    db: Session,
    sender_id: str,
    recipients: Sequence[str],
    content: MessageContent,
    now: datetime | None = None,
) -> SendResult:
    """Create a message, fan it out to every recipient and update streaks.

    Raises:
        InvalidRecipientsError: If the recipient list is empty, repeats an id,
            names the sender, or names unknown users.
        SQLAlchemyError: If persisting fails; nothing of the send is kept.
    """
    recipient_ids = _validate_recipients(db, sender_id, recipients)
    now = now or utcnow()

    message = Message(
        sender_id=sender_id,
        content_ref=content.content_ref,
        content_key=content.content_key,
        kind=content.kind,
        thumbhash=content.thumbhash,
        annotations=(
            [annotation.model_dump() for annotation in content.annotations]
            if content.annotations
            else None
        ),
        created_at=now,
    )
    try:
        db.add(message)
        db.flush()

        deliveries = [
            MessageDelivery(message_id=message.id, recipient_id=recipient_id, created_at=now)
            for recipient_id in recipient_ids
        ]
        db.add_all(deliveries)
        db.flush()

        for recipient_id in recipient_ids:
            update_streak(db, sender_id, recipient_id, now)

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error("Send from %s failed; fan-out rolled back", sender_id, exc_info=True)
        raise

    notifications = {
        delivery.recipient_id: MessageNotification(
            sender_id=sender_id,
            message_id=message.id,
            delivery_id=delivery.id,
            content_ref=message.content_ref,
            kind=message.kind,
            thumbhash=message.thumbhash,
        )
        for delivery in deliveries
    }
    logger.info("Message %s sent by %s to %d recipients", message.id, sender_id, len(deliveries))
    return SendResult(message=message, notifications=notifications)


async def mark_read(
    db: Session,
    delivery_id: str,
    caller_id: str,
    coordinator: CleanupCoordinator,
    now: datetime | None = None,
) -> bool:
    """Mark the caller's own delivery as read and run the cleanup check.

    Deliveries that do not exist or belong to someone else are ignored without
    revealing whether they exist. Re-reading an already read delivery is a
    no-op for the delivery, though the cleanup check still runs so a
    previously failed cleanup gets another chance.

    Returns:
        True if this call performed the unread -> read transition.
    """
    delivery = db.get(MessageDelivery, delivery_id)
    if delivery is None or delivery.recipient_id != caller_id:
        return False

    transitioned = False
    if delivery.read_at is None:
        delivery.read_at = now or utcnow()
        db.commit()
        transitioned = True

    try:
        await coordinator.cleanup_if_all_read(db, delivery.message_id)
    except SQLAlchemyError:
        db.rollback()
        logger.error(
            "Cleanup after reading delivery %s failed", delivery_id, exc_info=True
        )
    return transitioned


def list_inbox(db: Session, user_id: str) -> list[InboxItem]:
    """Return every unread delivery addressed to ``user_id``, oldest first."""
    rows = db.execute(
        select(MessageDelivery, Message)
        .join(Message, Message.id == MessageDelivery.message_id)
        .where(
            MessageDelivery.recipient_id == user_id,
            MessageDelivery.read_at.is_(None),
        )
        .order_by(Message.created_at, MessageDelivery.id)
    ).all()
    return [
        InboxItem(
            delivery_id=delivery.id,
            message_id=message.id,
            sender_id=message.sender_id,
            content_ref=message.content_ref,
            kind=message.kind,
            thumbhash=message.thumbhash,
            created_at=ensure_utc(message.created_at),
        )
        for delivery, message in rows
    ]


def list_outbox(db: Session, user_id: str, limit: int = 50) -> list[OutboxItem]:
    """Return the most recent messages sent by ``user_id`` with per-recipient read state."""
    messages = db.execute(
        select(Message)
        .where(Message.sender_id == user_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
    ).scalars().all()
    return [
        OutboxItem(
            message_id=message.id,
            content_ref=message.content_ref,
            kind=message.kind,
            created_at=ensure_utc(message.created_at),
            deleted_at=ensure_utc(message.deleted_at),
            recipients=[
                OutboxRecipient(
                    recipient_id=delivery.recipient_id,
                    delivery_id=delivery.id,
                    read_at=ensure_utc(delivery.read_at),
                )
                for delivery in message.deliveries
            ],
        )
        for message in messages
    ]

"""Release of fully consumed media and retention purging.

A message's blob may only be deleted once every one of its deliveries has
been read. The check-then-delete sequence may run concurrently for the same
message (several recipients finishing at once, or a viewer closing while a
read acknowledgement is still being processed), so every step tolerates
being repeated: content deletion ignores missing blobs and both ``deleted_at``
and ``content_released_at`` are only ever written by conditional updates.

A blob whose deletion failed is retried by every later cleanup of the same
message and by the retention purge, which keeps the row until the content
store confirms the blob is gone.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ephemera.core.settings import settings
from ephemera.core.time import utcnow
from ephemera.models import Message, MessageDelivery
from ephemera.services.content_store import (
    ContentStore,
    ContentStoreError,
    derive_content_key,
    get_content_store,
)

logger = logging.getLogger(__name__)

REASON_UNREAD = "unread"
REASON_NOT_FOUND = "not_found"
REASON_ALREADY_DELETED = "already_deleted"


@dataclass(frozen=True)
class CleanupResult:
    """Outcome of one cleanup check."""

    ok: bool
    reason: str | None = None


@dataclass
class PurgeReport:
    """Row counts removed by a retention purge."""

    soft_deleted_messages: int = 0
    soft_deleted_deliveries: int = 0
    expired_messages: int = 0
    expired_deliveries: int = 0
    # Rows kept back because their blob could not be deleted yet.
    retained_messages: int = 0


class CleanupCoordinator:
    """Deletes media once consumed by every recipient and marks the message gone."""

    def __init__(self, content_store: ContentStore | None = None) -> None:
        self.content_store = content_store or get_content_store()

    async def release_content(self, message: Message) -> bool:
        """Ask the content store to drop a message's blob.

        Best-effort: failures are logged and reported as False, never raised.
        """
        key = derive_content_key(message.content_ref, message.content_key)
        if key is None:
            logger.warning("Message %s has no derivable content key", message.id)
            return False
        try:
            return await self.content_store.delete(key)
        except ContentStoreError as exc:
            logger.warning("Failed to delete content %s for message %s: %s", key, message.id, exc)
            return False
        except Exception:
            logger.error(
                "Unexpected error deleting content %s for message %s", key, message.id, exc_info=True
            )
            return False

    async def _retire_content(self, db: Session, message: Message, now: datetime) -> bool:
        """Release the blob unless already released; True once nothing is left live.

        A message without a derivable key has nothing the store could delete.
        """
        if message.content_released_at is not None:
            return True
        if derive_content_key(message.content_ref, message.content_key) is None:
            logger.warning("Message %s has no derivable content key", message.id)
            return True
        if not await self.release_content(message):
            return False
        db.execute(
            update(Message)
            .where(Message.id == message.id, Message.content_released_at.is_(None))
            .values(content_released_at=now)
        )
        return True

    async def cleanup_if_all_read(
        self,
        db: Session,
        message_id: str,
        now: datetime | None = None,
    ) -> CleanupResult:
        """Release a message's content if all of its deliveries are read.

        Safe to call any number of times and from concurrent requests. A
        message already marked deleted whose blob deletion failed earlier gets
        its deletion retried.
        """
        now = now or utcnow()
        message = db.get(Message, message_id, populate_existing=True)
        if message is None:
            return CleanupResult(ok=False, reason=REASON_NOT_FOUND)

        read_states = db.execute(
            select(MessageDelivery.read_at).where(MessageDelivery.message_id == message_id)
        ).scalars().all()
        if not read_states:
            return CleanupResult(ok=False, reason=REASON_NOT_FOUND)
        if any(read_at is None for read_at in read_states):
            return CleanupResult(ok=False, reason=REASON_UNREAD)

        if message.deleted_at is not None:
            if message.content_released_at is None and await self._retire_content(db, message, now):
                db.commit()
                logger.info("No live content left for deleted message %s", message_id)
            return CleanupResult(ok=True, reason=REASON_ALREADY_DELETED)

        # Content goes first so a deleted message never points at a live blob.
        await self._retire_content(db, message, now)

        result = db.execute(
            update(Message)
            .where(Message.id == message_id, Message.deleted_at.is_(None))
            .values(deleted_at=now)
        )
        db.commit()

        if result.rowcount == 0:
            logger.debug("Message %s was marked deleted by a concurrent cleanup", message_id)
            return CleanupResult(ok=True, reason=REASON_ALREADY_DELETED)

        logger.info("Message %s fully read; marked deleted", message_id)
        return CleanupResult(ok=True)

    async def cleanup_for_caller(
        self,
        db: Session,
        message_id: str,
        caller_id: str,
    ) -> CleanupResult:
        """Explicit cleanup trigger scoped to the sender or a recipient of the message."""
        message = db.get(Message, message_id)
        if message is None:
            return CleanupResult(ok=False, reason=REASON_NOT_FOUND)

        if message.sender_id != caller_id:
            delivery_id = db.execute(
                select(MessageDelivery.id).where(
                    MessageDelivery.message_id == message_id,
                    MessageDelivery.recipient_id == caller_id,
                )
            ).scalar_one_or_none()
            if delivery_id is None:
                return CleanupResult(ok=False, reason=REASON_NOT_FOUND)

        return await self.cleanup_if_all_read(db, message_id)

    async def _purgeable(self, db: Session, messages: Sequence[Message], now: datetime) -> list[str]:
        purgeable = []
        for message in messages:
            if await self._retire_content(db, message, now):
                purgeable.append(message.id)
            else:
                logger.warning("Keeping message %s until its content can be deleted", message.id)
        return purgeable

    async def purge_expired(self, db: Session, now: datetime | None = None) -> PurgeReport:
        """Hard-delete long-dead messages together with their delivery history.

        Messages soft-deleted more than the soft-delete retention ago go first;
        then messages that were never fully read within the unread retention.
        A row is only removed once its blob is confirmed gone, so the storage
        key is never lost while the blob is still live.
        """
        now = now or utcnow()
        report = PurgeReport()

        soft_cutoff = now - timedelta(days=settings.soft_deleted_retention_days)
        soft_deleted = db.execute(
            select(Message)
            .where(Message.deleted_at.is_not(None), Message.deleted_at < soft_cutoff)
            .execution_options(populate_existing=True)
        ).scalars().all()
        soft_ids = await self._purgeable(db, soft_deleted, now)
        report.retained_messages += len(soft_deleted) - len(soft_ids)
        if soft_ids:
            report.soft_deleted_deliveries, report.soft_deleted_messages = self._delete_rows(
                db, soft_ids
            )

        unread_cutoff = now - timedelta(days=settings.unread_retention_days)
        expired = db.execute(
            select(Message)
            .where(Message.deleted_at.is_(None), Message.created_at < unread_cutoff)
            .execution_options(populate_existing=True)
        ).scalars().all()
        expired_ids = await self._purgeable(db, expired, now)
        report.retained_messages += len(expired) - len(expired_ids)
        if expired_ids:
            report.expired_deliveries, report.expired_messages = self._delete_rows(
                db, expired_ids
            )

        db.commit()
        logger.info(
            "Purged %d soft-deleted and %d expired messages, kept %d with live content",
            report.soft_deleted_messages,
            report.expired_messages,
            report.retained_messages,
        )
        return report

    @staticmethod
    def _delete_rows(db: Session, message_ids: list[str]) -> tuple[int, int]:
        deliveries = db.execute(
            delete(MessageDelivery)
            .where(MessageDelivery.message_id.in_(message_ids))
            .execution_options(synchronize_session=False)
        )
        messages = db.execute(
            delete(Message)
            .where(Message.id.in_(message_ids))
            .execution_options(synchronize_session=False)
        )
        return deliveries.rowcount, messages.rowcount


def get_cleanup_coordinator() -> CleanupCoordinator:
    """Return a coordinator bound to the shared content store."""
    return CleanupCoordinator(get_content_store())

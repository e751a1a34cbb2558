"""Ordering rules between push-delivered messages, read acks and inbox refetches.

A message delivered by push is spliced into the local inbox before the
server knows it was seen. If a refetch that started before the read
acknowledgement landed were applied, the message would reappear. The
reconciler therefore never applies a server list while an acknowledgement
is outstanding, nor one whose fetch began before a local mutation; those
refreshes are deferred and re-run once the last acknowledgement settles.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from datetime import datetime
from typing import Any, Protocol

from ephemera.client.api import ClientError
from ephemera.client.inbox import InboxProjection
from ephemera.core.time import utcnow
from ephemera.schemas.message import CleanupResponse, InboxItem, MessageNotification

logger = logging.getLogger(__name__)


class InboxApi(Protocol):
    """Subset of ``EphemeraClient`` the reconciler talks to."""

    async def list_inbox(self) -> list[InboxItem]: ...

    async def mark_read(self, delivery_id: str) -> None: ...

    async def cleanup(self, message_id: str) -> CleanupResponse: ...


class ViewerSession:
    """Sequential viewer over one sender's unread messages."""

    def __init__(self, reconciler: InboxReconciler, sender_id: str, queue: list[InboxItem]) -> None:
        self._reconciler = reconciler
        self.sender_id = sender_id
        self.queue = list(queue)
        self.position = 0
        self.closed = False

    def __contains__(self, delivery_id: object) -> bool:
        return any(item.delivery_id == delivery_id for item in self.queue)

    @property
    def current(self) -> InboxItem | None:
        if self.closed or self.position >= len(self.queue):
            return None
        return self.queue[self.position]

    def start(self) -> InboxItem | None:
        item = self.current
        if item is not None:
            self._reconciler.mark_read(item.delivery_id)
        return item

    def append(self, item: InboxItem) -> bool:
        """Queue a message from this sender that arrived while the viewer is open."""
        if self.closed or item.delivery_id in self:
            return False
        self.queue.append(item)
        return True

    def advance(self) -> InboxItem | None:
        """Move to the next message and mark it read; close when exhausted."""
        if self.closed:
            return None
        self.position += 1
        item = self.current
        if item is None:
            self.close()
            return None
        self._reconciler.mark_read(item.delivery_id)
        return item

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        unseen = self.queue[self.position + 1:]
        seen = self.queue[: self.position + 1]
        self._reconciler._viewer_closed(self, seen, unseen)


class InboxReconciler:
    """Owns the inbox projection and every network call that mutates it."""

    def __init__(self, api: InboxApi, projection: InboxProjection | None = None) -> None:
        self.api = api
        self.projection = projection or InboxProjection()
        self.viewer: ViewerSession | None = None
        self.refresh_deferred = False
        self._tasks: set[asyncio.Task[Any]] = set()
        self._ack_tasks: dict[str, asyncio.Task[Any]] = {}

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled network call, including ones they schedule."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def refresh(self) -> bool:
        """Fetch the server inbox and apply it if nothing changed locally meanwhile.

        Returns True if the server list was applied.
        """
        if self.projection.has_pending_acks:
            self.refresh_deferred = True
            return False

        started_at = self.projection.version
        try:
            items = await self.api.list_inbox()
        except ClientError as exc:
            logger.warning("Inbox refresh failed: %s", exc)
            return False

        if self.projection.has_pending_acks or self.projection.version != started_at:
            logger.debug("Inbox changed during refresh; deferring")
            self.refresh_deferred = True
            return False

        viewer = self.viewer
        if viewer is not None:
            items = [item for item in items if item.delivery_id not in viewer]
        self.projection.reconcile_with_server(items)
        self.refresh_deferred = False
        return True

    def mark_read(self, delivery_id: str) -> None:
        """Record the acknowledgement locally and send it in the background."""
        if delivery_id in self.projection.pending_acks:
            return
        self.projection.begin_ack(delivery_id)
        self._ack_tasks[delivery_id] = self._spawn(self._acknowledge(delivery_id))

    async def _acknowledge(self, delivery_id: str) -> None:
        try:
            await self.api.mark_read(delivery_id)
        except ClientError as exc:
            logger.warning("Failed to mark delivery %s read: %s", delivery_id, exc)
        finally:
            self._ack_tasks.pop(delivery_id, None)
            settled = self.projection.settle_ack(delivery_id)
        if settled:
            await self.refresh()

    async def handle_instant_message(
        self,
        notification: MessageNotification,
        received_at: datetime | None = None,
    ) -> ViewerSession | None:
        """Show a message delivered by push without waiting for the server inbox."""
        item = notification.to_inbox_item(received_at or utcnow())
        viewer = self.viewer
        if viewer is not None and not viewer.closed:
            if viewer.sender_id == item.sender_id:
                viewer.append(item)
            else:
                self.projection.splice_in(item)
            return viewer

        if item.delivery_id in self.projection.pending_acks:
            return None
        self.projection.splice_in(item)
        return self._open_viewer(item.sender_id, self.projection.take_sender(item.sender_id))

    async def open_for_sender(self, sender_id: str) -> ViewerSession | None:
        """Open the viewer on a sender's unread messages, fetching once if none are known."""
        if self.viewer is not None:
            self.viewer.close()

        queue = self.projection.take_sender(sender_id)
        if not queue:
            try:
                fetched = await self.api.list_inbox()
            except ClientError as exc:
                logger.warning("Could not load messages from %s: %s", sender_id, exc)
                return None
            queue = [
                item
                for item in fetched
                if item.sender_id == sender_id
                and item.delivery_id not in self.projection.pending_acks
            ]
            if not queue:
                return None
            for item in queue:
                self.projection.remove_by_id(item.delivery_id)
        return self._open_viewer(sender_id, queue)

    def _open_viewer(self, sender_id: str, queue: list[InboxItem]) -> ViewerSession | None:
        if not queue:
            return None
        viewer = ViewerSession(self, sender_id, queue)
        self.viewer = viewer
        viewer.start()
        return viewer

    def _viewer_closed(
        self,
        viewer: ViewerSession,
        seen: list[InboxItem],
        unseen: list[InboxItem],
    ) -> None:
        if self.viewer is viewer:
            self.viewer = None
        for item in unseen:
            self.projection.splice_in(item)

        message_ids: dict[str, None] = {}
        for item in viewer.queue:
            message_ids.setdefault(item.message_id, None)
        acks = [self._ack_tasks[item.delivery_id] for item in seen if item.delivery_id in self._ack_tasks]
        for message_id in message_ids:
            self._spawn(self._cleanup_after(message_id, acks))

    async def _cleanup_after(self, message_id: str, acks: list[asyncio.Task[Any]]) -> None:
        if acks:
            await asyncio.gather(*acks, return_exceptions=True)
        try:
            result = await self.api.cleanup(message_id)
        except ClientError as exc:
            logger.warning("Cleanup request for message %s failed: %s", message_id, exc)
            return
        logger.debug("Cleanup for message %s: ok=%s reason=%s", message_id, result.ok, result.reason)

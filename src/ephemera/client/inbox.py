"""Client-side projection of the server inbox."""

from __future__ import annotations

from collections.abc import Iterable

from ephemera.schemas.message import InboxItem


class InboxProjection:
    """Local, mutable view of the caller's unread deliveries.

    Every local mutation bumps ``version`` so a reconciler can tell whether a
    server list fetched earlier is still safe to apply. ``pending_acks`` holds
    the deliveries whose read acknowledgement has been issued but not settled.
    """

    def __init__(self, items: Iterable[InboxItem] = ()) -> None:
        self._items: list[InboxItem] = list(items)
        self.pending_acks: set[str] = set()
        self.version = 0

    @property
    def items(self) -> list[InboxItem]:
        return list(self._items)

    @property
    def has_pending_acks(self) -> bool:
        return bool(self.pending_acks)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, delivery_id: object) -> bool:
        return any(item.delivery_id == delivery_id for item in self._items)

    def senders(self) -> list[str]:
        """Distinct senders in order of their oldest unread message."""
        seen: dict[str, None] = {}
        for item in self._items:
            seen.setdefault(item.sender_id, None)
        return list(seen)

    def splice_in(self, item: InboxItem) -> bool:
        """Insert an item that has not reached the server list yet.

        Returns False if the delivery is already present or being acknowledged.
        """
        if item.delivery_id in self or item.delivery_id in self.pending_acks:
            return False
        self._items.append(item)
        self._items.sort(key=lambda entry: entry.created_at)
        self.version += 1
        return True

    def remove_by_id(self, delivery_id: str) -> InboxItem | None:
        for index, item in enumerate(self._items):
            if item.delivery_id == delivery_id:
                self.version += 1
                return self._items.pop(index)
        return None

    def take_sender(self, sender_id: str) -> list[InboxItem]:
        """Remove and return every item from ``sender_id``, oldest first."""
        taken = [item for item in self._items if item.sender_id == sender_id]
        if taken:
            self._items = [item for item in self._items if item.sender_id != sender_id]
            self.version += 1
        return taken

    def begin_ack(self, delivery_id: str) -> None:
        self.pending_acks.add(delivery_id)
        self.version += 1

    def settle_ack(self, delivery_id: str) -> bool:
        """Forget an acknowledgement; True once no acknowledgement is outstanding."""
        self.pending_acks.discard(delivery_id)
        return not self.pending_acks

    def reconcile_with_server(self, authoritative: Iterable[InboxItem]) -> None:
        """Replace local state with the server's list.

        Deliveries with an outstanding acknowledgement are left out so a read
        message cannot reappear.
        """
        self._items = [
            item for item in authoritative if item.delivery_id not in self.pending_acks
        ]
        self.version += 1

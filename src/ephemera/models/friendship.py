"""Models describing friendships, streak state and pending friend requests."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ephemera.core.time import utcnow
from ephemera.db.session import Base

FRIEND_REQUEST_PENDING = "pending"
FRIEND_REQUEST_ACCEPTED = "accepted"
FRIEND_REQUEST_DECLINED = "declined"
FRIEND_REQUEST_CANCELLED = "cancelled"


def _uuid() -> str:
    return str(uuid.uuid4())


def normalize_pair(first: str, second: str) -> tuple[str, str]:
    """Return the canonical ``(user_id_a, user_id_b)`` ordering for a pair."""
    return (first, second) if first < second else (second, first)


class Friendship(Base):
    """Unordered pair of users stored with the lexicographically smaller id first.

    Besides membership, the row carries the streak state: each side's last
    send time and the instant the streak counter last advanced.
    """

    __tablename__ = "friendship"
    __table_args__ = (
        UniqueConstraint("user_id_a", "user_id_b", name="uq_friendship_pair"),
        CheckConstraint("user_id_a < user_id_b", name="ck_friendship_ordered"),
        CheckConstraint("current_streak >= 0", name="ck_friendship_streak_nonnegative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id_a: Mapped[str] = mapped_column(
        String(64), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id_b: Mapped[str] = mapped_column(
        String(64), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True
    )

    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_a: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_activity_b: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    streak_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def other_user_id(self, user_id: str) -> str:
        """Return the id of the friend opposite ``user_id``."""
        return self.user_id_b if user_id == self.user_id_a else self.user_id_a


class FriendRequest(Base):
    """Pending (or resolved) request from one user to befriend another."""

    __tablename__ = "friend_request"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    from_user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    to_user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=FRIEND_REQUEST_PENDING
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=utcnow
    )

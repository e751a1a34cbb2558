"""Friendship streak engine.

A streak counts consecutive rolling windows (24 hours by default) in which
both friends sent each other at least one message. Each side contributes at
most once per cycle, so rapid repeated sends by one friend never inflate the
count, and a window that lapses on either side resets the counter to zero.

Example timeline with a 24 hour window:

- Day 1 10:00  Alice sends -> 0 (waiting for Bob)
- Day 1 14:00  Bob sends   -> 1
- Day 1 20:00  Alice sends -> 1 (already contributed this cycle)
- Day 2 13:00  Alice sends -> 1 (waiting for Bob)
- Day 2 17:00  Bob sends   -> 2
- Day 4 18:00  Alice sends -> 0 (Bob silent for more than 24h)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from ephemera.core.settings import settings
from ephemera.core.time import ensure_utc, utcnow
from ephemera.models.friendship import Friendship, normalize_pair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakUpdate:
    """New streak counter and the instant it last advanced."""

    streak: int
    updated_at: datetime | None


def streak_window() -> timedelta:
    """Return the configured length of one streak cycle."""
    return timedelta(hours=settings.streak_window_hours)


def calculate_streak_update(
    *,
    current_streak: int,
    streak_updated_at: datetime | None,
    sender_last: datetime | None,
    other_last: datetime | None,
    now: datetime,
    window: timedelta,
) -> StreakUpdate:
    """Compute the streak after the sender sends a message at ``now``.

    Args:
        current_streak: Counter stored on the friendship.
        streak_updated_at: When the counter last advanced, if ever.
        sender_last: The sender's previous send, before this one.
        other_last: The other friend's most recent send.
        now: Time of the send being recorded.
        window: Length of a streak cycle.

    Returns:
        The streak value and update instant to persist.
    """
    # The other friend has never sent: nothing to pair this send with yet.
    if other_last is None:
        return StreakUpdate(current_streak, streak_updated_at)

    # Exactly one window since the other friend's send still counts as alive.
    if now - other_last > window:
        return StreakUpdate(0, None)

    if sender_last is None:
        return StreakUpdate(1, now)

    other_sent_since_update = streak_updated_at is None or other_last > streak_updated_at
    sender_sent_since_update = streak_updated_at is None or sender_last > streak_updated_at

    if other_sent_since_update and not sender_sent_since_update:
        return StreakUpdate(current_streak + 1, now)

    return StreakUpdate(current_streak, streak_updated_at)


def get_friendship(
    db: Session,
    first_user_id: str,
    second_user_id: str,
    *,
    for_update: bool = False,
) -> Friendship | None:
    """Load the friendship row for a pair of users in either order."""
    user_a, user_b = normalize_pair(first_user_id, second_user_id)
    stmt = select(Friendship).where(
        Friendship.user_id_a == user_a,
        Friendship.user_id_b == user_b,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def update_streak(
    db: Session,
    sender_id: str,
    recipient_id: str,
    now: datetime | None = None,
) -> Friendship | None:
    """Record a send from ``sender_id`` to ``recipient_id`` on their friendship.

    The row is locked for the rest of the caller's transaction so that
    simultaneous sends from both friends serialize instead of losing an update.
    The caller owns the transaction; nothing is committed here.

    Returns:
        The updated friendship, or None if the two users are not friends.
    """
    if sender_id == recipient_id:
        return None

    friendship = get_friendship(db, sender_id, recipient_id, for_update=True)
    if friendship is None:
        logger.debug("No friendship between %s and %s; streak untouched", sender_id, recipient_id)
        return None

    now = now or utcnow()
    sender_is_a = sender_id == friendship.user_id_a
    sender_last = ensure_utc(
        friendship.last_activity_a if sender_is_a else friendship.last_activity_b
    )
    other_last = ensure_utc(
        friendship.last_activity_b if sender_is_a else friendship.last_activity_a
    )

    update = calculate_streak_update(
        current_streak=friendship.current_streak,
        streak_updated_at=ensure_utc(friendship.streak_updated_at),
        sender_last=sender_last,
        other_last=other_last,
        now=now,
        window=streak_window(),
    )

    if sender_is_a:
        friendship.last_activity_a = now
    else:
        friendship.last_activity_b = now

    if update.streak != friendship.current_streak:
        logger.info(
            "Streak %s -> %s for friendship %s",
            friendship.current_streak,
            update.streak,
            friendship.id,
        )
    friendship.current_streak = update.streak
    friendship.streak_updated_at = update.updated_at
    db.flush()
    return friendship

"""Friend requests, friendships and the streak-aware friend list."""
from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from ephemera.core.time import ensure_utc
from ephemera.models import FriendRequest, Friendship, Message, MessageDelivery, User
from ephemera.models.friendship import FRIEND_REQUEST_PENDING, normalize_pair
from ephemera.schemas.friend import FriendRequestResponse, FriendResponse, UserSearchResult
from ephemera.services.streak import get_friendship

__all__ = [
    "send_request",
    "accept_request",
    "decline_request",
    "remove_friend",
    "friend_ids_among",
    "list_incoming_requests",
    "list_friends",
    "search_users",
]

logger = logging.getLogger(__name__)


def send_request(db: Session, from_user_id: str, to_user_id: str) -> FriendRequest | None:
    """Create a pending request, or return None if one is pointless.

    Self-requests, requests to unknown users, requests between existing
    friends and duplicates of a pending request are all silently ignored.
    """
    if from_user_id == to_user_id or db.get(User, to_user_id) is None:
        return None
    if get_friendship(db, from_user_id, to_user_id) is not None:
        return None

    existing = db.execute(
        select(FriendRequest).where(
            FriendRequest.from_user_id == from_user_id,
            FriendRequest.to_user_id == to_user_id,
            FriendRequest.status == FRIEND_REQUEST_PENDING,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return None

    request = FriendRequest(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        status=FRIEND_REQUEST_PENDING,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    return request


def _pending_request_for(db: Session, request_id: str, user_id: str) -> FriendRequest | None:
    request = db.get(FriendRequest, request_id)
    if request is None or request.to_user_id != user_id:
        return None
    if request.status != FRIEND_REQUEST_PENDING:
        return None
    return request


def accept_request(db: Session, request_id: str, user_id: str) -> Friendship | None:
    """Turn a pending request addressed to ``user_id`` into a friendship."""
    request = _pending_request_for(db, request_id, user_id)
    if request is None:
        return None

    friendship = get_friendship(db, request.from_user_id, request.to_user_id)
    if friendship is None:
        user_a, user_b = normalize_pair(request.from_user_id, request.to_user_id)
        friendship = Friendship(user_id_a=user_a, user_id_b=user_b)
        db.add(friendship)

    db.delete(request)
    db.commit()
    logger.info("Users %s and %s are now friends", friendship.user_id_a, friendship.user_id_b)
    return friendship


def decline_request(db: Session, request_id: str, user_id: str) -> bool:
    """Drop a pending request addressed to ``user_id``."""
    request = _pending_request_for(db, request_id, user_id)
    if request is None:
        return False
    db.delete(request)
    db.commit()
    return True


def remove_friend(db: Session, user_id: str, friend_id: str) -> bool:
    """Delete the friendship between two users, streak state included."""
    if user_id == friend_id:
        return False
    user_a, user_b = normalize_pair(user_id, friend_id)
    result = db.execute(
        delete(Friendship).where(
            Friendship.user_id_a == user_a,
            Friendship.user_id_b == user_b,
        )
    )
    db.commit()
    return result.rowcount > 0


def friend_ids_among(db: Session, user_id: str, candidate_ids: Iterable[str]) -> set[str]:
    """Return the subset of ``candidate_ids`` that are friends of ``user_id``."""
    candidates = [candidate for candidate in candidate_ids if candidate != user_id]
    if not candidates:
        return set()
    rows = db.execute(
        select(Friendship.user_id_a, Friendship.user_id_b).where(
            or_(
                and_(Friendship.user_id_a == user_id, Friendship.user_id_b.in_(candidates)),
                and_(Friendship.user_id_b == user_id, Friendship.user_id_a.in_(candidates)),
            )
        )
    ).all()
    return {user_b if user_a == user_id else user_a for user_a, user_b in rows}


def list_incoming_requests(db: Session, user_id: str) -> list[FriendRequestResponse]:
    rows = db.execute(
        select(FriendRequest, User)
        .join(User, User.id == FriendRequest.from_user_id)
        .where(
            FriendRequest.to_user_id == user_id,
            FriendRequest.status == FRIEND_REQUEST_PENDING,
        )
        .order_by(FriendRequest.created_at)
    ).all()
    return [
        FriendRequestResponse(
            request_id=request.id,
            from_user_id=sender.id,
            from_user_name=sender.name,
        )
        for request, sender in rows
    ]


def _friends_with_unread_from(db: Session, user_id: str, friend_ids: list[str]) -> set[str]:
    """Return the friends who still have an unread delivery of a message from ``user_id``."""
    if not friend_ids:
        return set()
    rows = db.execute(
        select(MessageDelivery.recipient_id)
        .join(Message, Message.id == MessageDelivery.message_id)
        .where(
            Message.sender_id == user_id,
            MessageDelivery.recipient_id.in_(friend_ids),
            MessageDelivery.read_at.is_(None),
        )
        .distinct()
    ).scalars().all()
    return set(rows)


def list_friends(db: Session, user_id: str) -> list[FriendResponse]:
    """List friends with streaks and whether the caller's last send was opened."""
    rows = db.execute(
        select(Friendship, User)
        .join(
            User,
            or_(
                and_(Friendship.user_id_a == user_id, User.id == Friendship.user_id_b),
                and_(Friendship.user_id_b == user_id, User.id == Friendship.user_id_a),
            ),
        )
        .order_by(User.name)
    ).all()

    activity: dict[str, tuple] = {}
    sent_last: list[str] = []
    for friendship, friend in rows:
        is_a = friendship.user_id_a == user_id
        mine = ensure_utc(friendship.last_activity_a if is_a else friendship.last_activity_b)
        theirs = ensure_utc(friendship.last_activity_b if is_a else friendship.last_activity_a)
        activity[friend.id] = (mine, theirs)
        if mine is not None and (theirs is None or mine > theirs):
            sent_last.append(friend.id)

    unopened = _friends_with_unread_from(db, user_id, sent_last)

    friends = []
    for friendship, friend in rows:
        mine, theirs = activity[friend.id]
        last_sent_opened = None
        if friend.id in sent_last:
            last_sent_opened = friend.id not in unopened
        friends.append(
            FriendResponse(
                id=friend.id,
                name=friend.name,
                image=friend.image,
                streak=friendship.current_streak,
                last_activity_at=mine,
                partner_last_activity_at=theirs,
                last_sent_opened=last_sent_opened,
            )
        )
    return friends


def search_users(db: Session, user_id: str, query: str, limit: int = 20) -> list[UserSearchResult]:
    """Find other users whose name contains ``query``, case-insensitively.

    Each hit says whether it is already a friend and whether a friend request
    is pending in either direction.
    """
    needle = query.strip().lower()
    if not needle:
        return []

    users = db.execute(
        select(User)
        .where(
            func.lower(User.name).contains(needle, autoescape=True),
            User.id != user_id,
        )
        .order_by(User.name)
        .limit(limit)
    ).scalars().all()
    if not users:
        return []

    user_ids = [user.id for user in users]
    friend_ids = friend_ids_among(db, user_id, user_ids)

    pending = db.execute(
        select(FriendRequest.from_user_id, FriendRequest.to_user_id).where(
            FriendRequest.status == FRIEND_REQUEST_PENDING,
            or_(
                and_(FriendRequest.from_user_id == user_id, FriendRequest.to_user_id.in_(user_ids)),
                and_(FriendRequest.to_user_id == user_id, FriendRequest.from_user_id.in_(user_ids)),
            ),
        )
    ).all()
    pending_with = {to_id if from_id == user_id else from_id for from_id, to_id in pending}

    return [
        UserSearchResult(
            id=user.id,
            name=user.name,
            image=user.image,
            is_friend=user.id in friend_ids,
            has_pending_request=user.id in pending_with,
        )
        for user in users
    ]

"""Friend management endpoints for the Ephemera API."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Query, status

from ephemera.api.v1.dependencies import CurrentUserDep, DispatcherDep, SessionDep
from ephemera.schemas.friend import (
    FriendRequestCreate,
    FriendRequestResponse,
    FriendResponse,
    UserSearchResult,
)
from ephemera.services import friends

router = APIRouter(prefix="/friends", tags=["friends"])


@router.get("/")
async def list_friends(current_user: CurrentUserDep, db: SessionDep) -> list[FriendResponse]:
    """List the current user's friends with streak information."""
    return friends.list_friends(db, current_user.id)


@router.get("/search")
async def search_users(
    current_user: CurrentUserDep,
    db: SessionDep,
    query: str = Query(..., min_length=1, max_length=64),
) -> list[UserSearchResult]:
    """Search other users by name to send them a friend request."""
    return friends.search_users(db, current_user.id, query)


@router.get("/requests")
async def list_incoming_requests(
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[FriendRequestResponse]:
    """List pending friend requests addressed to the current user."""
    return friends.list_incoming_requests(db, current_user.id)


@router.post("/requests", status_code=status.HTTP_202_ACCEPTED)
async def send_friend_request(
    payload: FriendRequestCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
) -> dict[str, bool]:
    """Ask another user to become friends."""
    request = friends.send_request(db, current_user.id, payload.to_user_id)
    if request is not None:
        background_tasks.add_task(
            dispatcher.notify_friend_request,
            payload.to_user_id,
            current_user.name,
            request.id,
        )
    return {"ok": True}


@router.post("/requests/{request_id}/accept")
async def accept_friend_request(
    request_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
) -> dict[str, bool]:
    """Accept a pending friend request."""
    friendship = friends.accept_request(db, request_id, current_user.id)
    if friendship is None:
        return {"ok": False}
    background_tasks.add_task(
        dispatcher.notify_friend_accept,
        friendship.other_user_id(current_user.id),
        current_user.name,
    )
    return {"ok": True}


@router.post("/requests/{request_id}/decline")
async def decline_friend_request(
    request_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, bool]:
    """Decline a pending friend request."""
    return {"ok": friends.decline_request(db, request_id, current_user.id)}


@router.delete("/{friend_id}")
async def remove_friend(
    friend_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, bool]:
    """Remove a friend and the shared streak."""
    return {"ok": friends.remove_friend(db, current_user.id, friend_id)}

"""Push token registration and notification preference endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import delete, select

from ephemera.api.v1.dependencies import CurrentUserDep, SessionDep
from ephemera.models import PushToken
from ephemera.schemas.notification import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    PushTokenCreate,
    PushTokenRemove,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/tokens")
async def register_push_token(
    payload: PushTokenCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, object]:
    """Register or refresh the push token of the calling device.

    A token that moves to another account (shared device, re-login) is
    reassigned to the current user.
    """
    token = db.execute(
        select(PushToken).where(PushToken.token == payload.token)
    ).scalar_one_or_none()

    if token is None:
        token = PushToken(
            user_id=current_user.id,
            token=payload.token,
            platform=payload.platform,
        )
        db.add(token)
    else:
        token.user_id = current_user.id
        token.platform = payload.platform

    db.commit()
    db.refresh(token)
    return {"success": True, "token_id": token.id}


@router.post("/tokens/remove")
async def remove_push_token(
    payload: PushTokenRemove,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, bool]:
    """Forget a device token, e.g. on sign-out."""
    db.execute(
        delete(PushToken).where(
            PushToken.token == payload.token,
            PushToken.user_id == current_user.id,
        )
    )
    db.commit()
    return {"success": True}


@router.get("/preferences")
async def get_preferences(current_user: CurrentUserDep) -> NotificationPreferences:
    """Return the current user's notification preferences."""
    return NotificationPreferences(
        notify_on_messages=current_user.notify_on_messages,
        notify_on_friend_activity=current_user.notify_on_friend_activity,
    )


@router.put("/preferences")
async def update_preferences(
    payload: NotificationPreferencesUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> NotificationPreferences:
    """Apply a partial update to the current user's notification preferences."""
    for key, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(current_user, key, value)
    db.commit()
    return NotificationPreferences(
        notify_on_messages=current_user.notify_on_messages,
        notify_on_friend_activity=current_user.notify_on_friend_activity,
    )

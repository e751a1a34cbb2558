"""Ephemeral message endpoints for the Ephemera API."""

from __future__ import annotations

from collections.abc import Sequence

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ephemera.api.v1.dependencies import (
    CoordinatorDep,
    CurrentUserDep,
    DispatcherDep,
    SessionDep,
)
from ephemera.models import User
from ephemera.schemas.message import (
    CleanupResponse,
    InboxItem,
    MessageContent,
    MessageSendRequest,
    OutboxItem,
)
from ephemera.services import delivery
from ephemera.services.delivery import InvalidRecipientsError, UnknownRecipientsError
from ephemera.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/messages", tags=["messages"])


def send_and_notify(
    db: Session,
    sender: User,
    recipients: Sequence[str],
    content: MessageContent,
    dispatcher: NotificationDispatcher,
    background_tasks: BackgroundTasks,
) -> str:
    """Run a send and queue one push per recipient for after the response."""
    try:
        result = delivery.send_message(db, sender.id, recipients, content)
    except UnknownRecipientsError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recipient not found",
        ) from exc
    except InvalidRecipientsError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send message",
        ) from exc

    for recipient_id, notification in result.notifications.items():
        background_tasks.add_task(
            dispatcher.notify_new_message,
            notification,
            recipient_id,
            sender.name,
        )
    return result.message.id


@router.post("/", status_code=status.HTTP_201_CREATED)
async def send_message(
    message_data: MessageSendRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
) -> dict[str, str]:
    """Send one uploaded photo or video to a set of recipients."""
    message_id = send_and_notify(
        db,
        current_user,
        message_data.recipients,
        message_data,
        dispatcher,
        background_tasks,
    )
    return {"message_id": message_id}


@router.get("/inbox")
async def get_inbox(
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[InboxItem]:
    """Get every unread delivery addressed to the current user."""
    return delivery.list_inbox(db, current_user.id)


@router.get("/outbox")
async def get_outbox(
    current_user: CurrentUserDep,
    db: SessionDep,
    limit: int = Query(50, ge=1, le=100),
) -> list[OutboxItem]:
    """Get messages sent by the current user with their read state."""
    return delivery.list_outbox(db, current_user.id, limit=limit)


@router.put("/deliveries/{delivery_id}/read")
async def mark_delivery_read(
    delivery_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    coordinator: CoordinatorDep,
) -> dict[str, bool]:
    """Mark one of the current user's deliveries as read.

    Always answers ``ok`` so callers cannot learn whether other users' deliveries exist.
    """
    await delivery.mark_read(db, delivery_id, current_user.id, coordinator)
    return {"ok": True}


@router.post("/{message_id}/cleanup")
async def cleanup_message(
    message_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    coordinator: CoordinatorDep,
) -> CleanupResponse:
    """Release a message's media if every recipient has read it."""
    result = await coordinator.cleanup_for_caller(db, message_id, current_user.id)
    return CleanupResponse(ok=result.ok, reason=result.reason)

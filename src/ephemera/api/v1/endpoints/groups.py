"""Friend group endpoints for the Ephemera API."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, HTTPException, status

from ephemera.api.v1.dependencies import CurrentUserDep, DispatcherDep, SessionDep
from ephemera.api.v1.endpoints.messages import send_and_notify
from ephemera.schemas.group import (
    GroupCreate,
    GroupCreated,
    GroupMemberAdd,
    GroupMemberAdded,
    GroupRename,
    GroupResponse,
)
from ephemera.schemas.message import MessageContent
from ephemera.services import groups
from ephemera.services.groups import GroupError, GroupNotFoundError

router = APIRouter(prefix="/groups", tags=["groups"])


def _http_error(exc: GroupError) -> HTTPException:
    if isinstance(exc, GroupNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_group(
    payload: GroupCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> GroupCreated:
    """Create a group from some of the current user's friends."""
    group = groups.create_group(db, current_user.id, payload.name, payload.member_ids)
    return GroupCreated(group_id=group.id, name=group.name)


@router.get("/")
async def list_groups(current_user: CurrentUserDep, db: SessionDep) -> list[GroupResponse]:
    """List the groups the current user belongs to."""
    return groups.list_groups(db, current_user.id)


@router.get("/{group_id}")
async def get_group(group_id: str, current_user: CurrentUserDep, db: SessionDep) -> GroupResponse:
    try:
        return groups.get_group(db, group_id, current_user.id)
    except GroupError as exc:
        raise _http_error(exc) from exc


@router.patch("/{group_id}")
async def rename_group(
    group_id: str,
    payload: GroupRename,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, bool]:
    """Rename a group; creator only."""
    try:
        groups.rename_group(db, group_id, current_user.id, payload.name)
    except GroupError as exc:
        raise _http_error(exc) from exc
    return {"ok": True}


@router.post("/{group_id}/members")
async def add_group_member(
    group_id: str,
    payload: GroupMemberAdd,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> GroupMemberAdded:
    """Add one of the current user's friends to the group."""
    try:
        already_member = groups.add_member(db, group_id, current_user.id, payload.user_id)
    except GroupError as exc:
        raise _http_error(exc) from exc
    return GroupMemberAdded(already_member=already_member)


@router.delete("/{group_id}/members/{user_id}")
async def remove_group_member(
    group_id: str,
    user_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, bool]:
    """Remove another member from the group; creator only."""
    try:
        removed = groups.remove_member(db, group_id, current_user.id, user_id)
    except GroupError as exc:
        raise _http_error(exc) from exc
    return {"ok": removed}


@router.post("/{group_id}/leave")
async def leave_group(group_id: str, current_user: CurrentUserDep, db: SessionDep) -> dict[str, bool]:
    """Leave a group; the group is deleted once nobody is left."""
    groups.leave_group(db, group_id, current_user.id)
    return {"ok": True}


@router.post("/{group_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_group_message(
    group_id: str,
    content: MessageContent,
    current_user: CurrentUserDep,
    db: SessionDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
) -> dict[str, str]:
    """Send one uploaded photo or video to every other member of the group."""
    try:
        recipients = groups.group_recipients(db, group_id, current_user.id)
    except GroupError as exc:
        raise _http_error(exc) from exc
    message_id = send_and_notify(db, current_user, recipients, content, dispatcher, background_tasks)
    return {"message_id": message_id}

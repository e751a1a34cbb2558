"""Named groups of friends that a sender can target in one go.

Every member other than the creator must have been a friend of whoever added
them. Membership is the only permission for reading a group, sending to it,
adding friends to it, or leaving it; renaming it and removing other members
is reserved to the creator. A group whose last member leaves is deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ephemera.models import Group, GroupMembership, User
from ephemera.schemas.group import GroupMember, GroupResponse
from ephemera.services.friends import friend_ids_among

logger = logging.getLogger(__name__)


class GroupError(ValueError):
    """Base exception for rejected group operations."""


class GroupNotFoundError(GroupError):
    """Raised when the group does not exist or the caller is not a member."""


class GroupPermissionError(GroupError):
    """Raised when the caller may see the group but not perform the change."""


def _is_member(db: Session, group_id: str, user_id: str) -> bool:
    return db.execute(
        select(GroupMembership.id).where(
            GroupMembership.group_id == group_id,
            GroupMembership.user_id == user_id,
        )
    ).first() is not None


def _group_for_member(db: Session, group_id: str, user_id: str) -> Group:
    group = db.get(Group, group_id)
    if group is None or not _is_member(db, group_id, user_id):
        raise GroupNotFoundError(group_id)
    return group


def _group_for_creator(db: Session, group_id: str, user_id: str) -> Group:
    group = db.get(Group, group_id)
    if group is None:
        raise GroupNotFoundError(group_id)
    if group.created_by != user_id:
        raise GroupPermissionError("Only the group creator can do this")
    return group


def _members_by_group(db: Session, group_ids: Sequence[str]) -> dict[str, list[GroupMember]]:
    rows = db.execute(
        select(GroupMembership.group_id, User)
        .join(User, User.id == GroupMembership.user_id)
        .where(GroupMembership.group_id.in_(group_ids))
        .order_by(GroupMembership.created_at, User.name)
    ).all()
    members: dict[str, list[GroupMember]] = {group_id: [] for group_id in group_ids}
    for group_id, user in rows:
        members[group_id].append(GroupMember(id=user.id, name=user.name, image=user.image))
    return members


def _to_response(group: Group, members: list[GroupMember]) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        name=group.name,
        created_by=group.created_by,
        created_at=group.created_at,
        members=members,
        member_count=len(members),
    )


def create_group(db: Session, creator_id: str, name: str, member_ids: Sequence[str]) -> Group:
    """Create a group holding the creator and those of ``member_ids`` who are friends.

    Ids that are not friends of the creator are dropped without error.
    """
    friends = friend_ids_among(db, creator_id, member_ids)
    accepted: list[str] = []
    for member_id in member_ids:
        if member_id in friends and member_id not in accepted:
            accepted.append(member_id)

    group = Group(name=name, created_by=creator_id)
    db.add(group)
    db.flush()
    db.add_all(
        GroupMembership(group_id=group.id, user_id=user_id)
        for user_id in [creator_id, *accepted]
    )
    db.commit()
    db.refresh(group)
    logger.info(
        "Group %s created by %s with %d friends (%d ids dropped)",
        group.id,
        creator_id,
        len(accepted),
        len(member_ids) - len(accepted),
    )
    return group


def list_groups(db: Session, user_id: str) -> list[GroupResponse]:
    """List every group the user belongs to, newest first, with members."""
    groups = db.execute(
        select(Group)
        .join(GroupMembership, GroupMembership.group_id == Group.id)
        .where(GroupMembership.user_id == user_id)
        .order_by(Group.created_at.desc())
    ).scalars().all()
    if not groups:
        return []
    members = _members_by_group(db, [group.id for group in groups])
    return [_to_response(group, members[group.id]) for group in groups]


def get_group(db: Session, group_id: str, user_id: str) -> GroupResponse:
    group = _group_for_member(db, group_id, user_id)
    return _to_response(group, _members_by_group(db, [group.id])[group.id])


def group_recipients(db: Session, group_id: str, sender_id: str) -> list[str]:
    """Ids of every member except the sender, in the order they joined."""
    _group_for_member(db, group_id, sender_id)
    return list(
        db.execute(
            select(GroupMembership.user_id)
            .where(
                GroupMembership.group_id == group_id,
                GroupMembership.user_id != sender_id,
            )
            .order_by(GroupMembership.created_at)
        ).scalars().all()
    )


def add_member(db: Session, group_id: str, user_id: str, new_member_id: str) -> bool:
    """Add one of the caller's friends to a group the caller belongs to.

    Returns:
        True if the user was already a member.

    Raises:
        GroupNotFoundError: If the caller is not a member.
        GroupPermissionError: If ``new_member_id`` is not the caller's friend.
    """
    _group_for_member(db, group_id, user_id)
    if _is_member(db, group_id, new_member_id):
        return True
    if new_member_id not in friend_ids_among(db, user_id, [new_member_id]):
        raise GroupPermissionError("Can only add friends to groups")

    db.add(GroupMembership(group_id=group_id, user_id=new_member_id))
    db.commit()
    return False


def remove_member(db: Session, group_id: str, user_id: str, member_id: str) -> bool:
    """Creator-only removal of another member; leaving is done with ``leave_group``."""
    _group_for_creator(db, group_id, user_id)
    if member_id == user_id:
        raise GroupPermissionError("Use leave to remove yourself from a group")
    result = db.execute(
        delete(GroupMembership).where(
            GroupMembership.group_id == group_id,
            GroupMembership.user_id == member_id,
        )
    )
    db.commit()
    return result.rowcount > 0


def leave_group(db: Session, group_id: str, user_id: str) -> bool:
    """Drop the caller's membership and delete the group once it is empty."""
    result = db.execute(
        delete(GroupMembership).where(
            GroupMembership.group_id == group_id,
            GroupMembership.user_id == user_id,
        )
    )
    remaining = db.execute(
        select(GroupMembership.id).where(GroupMembership.group_id == group_id)
    ).first()
    if remaining is None:
        db.execute(delete(Group).where(Group.id == group_id))
        logger.info("Group %s deleted after its last member left", group_id)
    db.commit()
    return result.rowcount > 0


def rename_group(db: Session, group_id: str, user_id: str, name: str) -> Group:
    group = _group_for_creator(db, group_id, user_id)
    group.name = name
    db.commit()
    return group

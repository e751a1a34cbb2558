"""SQLAlchemy models for the Ephemera application."""

from .friendship import FriendRequest, Friendship
from .group import Group, GroupMembership
from .message import Message, MessageDelivery
from .push_token import PushToken
from .user import User

__all__ = [
    "FriendRequest", "Friendship",
    "Group", "GroupMembership",
    "Message", "MessageDelivery",
    "PushToken",
    "User",
]

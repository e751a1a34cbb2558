"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .friend import FriendRequestCreate, FriendRequestResponse, FriendResponse, UserSearchResult
from .group import (
    GroupCreate,
    GroupCreated,
    GroupMember,
    GroupMemberAdd,
    GroupMemberAdded,
    GroupRename,
    GroupResponse,
)
from .message import (
    Annotation,
    CleanupResponse,
    InboxItem,
    MessageContent,
    MessageNotification,
    MessageSendRequest,
    OutboxItem,
)
from .notification import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    PushTokenCreate,
    PushTokenRemove,
)

__all__ = [
    "FriendRequestCreate", "FriendRequestResponse", "FriendResponse", "UserSearchResult",
    "GroupCreate", "GroupCreated", "GroupMember", "GroupMemberAdd", "GroupMemberAdded",
    "GroupRename", "GroupResponse",
    "Annotation", "CleanupResponse", "InboxItem", "MessageContent",
    "MessageNotification", "MessageSendRequest", "OutboxItem",
    "NotificationPreferences", "NotificationPreferencesUpdate",
    "PushTokenCreate", "PushTokenRemove",
]

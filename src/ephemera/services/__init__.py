"""Business logic services for the Ephemera application."""

from .cleanup import CleanupCoordinator, CleanupResult
from .content_store import ContentStoreError, UploadThingContentStore
from .delivery import InvalidRecipientsError, MessagingError
from .groups import GroupError, GroupNotFoundError, GroupPermissionError
from .notifications import ExpoPushClient, NotificationDispatcher, PushError
from .streak import calculate_streak_update, update_streak

__all__ = [
    "CleanupCoordinator",
    "CleanupResult",
    "ContentStoreError",
    "UploadThingContentStore",
    "InvalidRecipientsError",
    "MessagingError",
    "GroupError",
    "GroupNotFoundError",
    "GroupPermissionError",
    "ExpoPushClient",
    "NotificationDispatcher",
    "PushError",
    "calculate_streak_update",
    "update_streak",
]

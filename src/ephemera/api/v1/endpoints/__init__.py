"""API endpoint modules for version 1."""

from .friends import router as friends_router
from .groups import router as groups_router
from .messages import router as messages_router
from .notifications import router as notifications_router
from .system import router as system_router

__all__ = [
    "friends_router",
    "groups_router",
    "messages_router",
    "notifications_router",
    "system_router",
]

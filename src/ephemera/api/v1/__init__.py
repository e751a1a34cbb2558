"""Version 1 API endpoints."""

from .endpoints import (
    friends_router,
    groups_router,
    messages_router,
    notifications_router,
    system_router,
)

__all__ = [
    "friends_router",
    "groups_router",
    "messages_router",
    "notifications_router",
    "system_router",
]

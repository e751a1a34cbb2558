"""Client-side inbox state and API access."""

from .api import ClientError, EphemeraClient
from .inbox import InboxProjection
from .notifications import NotificationSession
from .reconciler import InboxReconciler, ViewerSession

__all__ = [
    "ClientError",
    "EphemeraClient",
    "InboxProjection",
    "InboxReconciler",
    "NotificationSession",
    "ViewerSession",
]

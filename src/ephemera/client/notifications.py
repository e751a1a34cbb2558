"""Client-side push notification session."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from ephemera.client.api import ClientError, EphemeraClient
from ephemera.client.reconciler import InboxReconciler, ViewerSession
from ephemera.schemas.message import MESSAGE_NOTIFICATION_TYPE, MessageNotification

logger = logging.getLogger(__name__)


class NotificationSession:
    """Registers this device for pushes and routes them while signed in.

    ``register`` is called on sign-in and ``unregister`` on sign-out; payloads
    handled outside that window are dropped.
    """

    def __init__(self, api: EphemeraClient, reconciler: InboxReconciler) -> None:
        self.api = api
        self.reconciler = reconciler
        self.token: str | None = None
        self.platform: str | None = None

    @property
    def active(self) -> bool:
        return self.token is not None

    async def register(self, token: str, platform: str) -> bool:
        try:
            await self.api.register_push_token(token, platform)
        except ClientError as exc:
            logger.warning("Push token registration failed: %s", exc)
            return False
        self.token = token
        self.platform = platform
        return True

    async def unregister(self) -> None:
        token, self.token, self.platform = self.token, None, None
        if token is None:
            return
        try:
            await self.api.remove_push_token(token)
        except ClientError as exc:
            logger.warning("Push token removal failed: %s", exc)

    async def handle(self, payload: Mapping[str, Any]) -> ViewerSession | None:
        """Route one received push payload; only message pushes open the viewer."""
        if not self.active:
            logger.debug("Dropping push received while signed out")
            return None
        if payload.get("type") != MESSAGE_NOTIFICATION_TYPE:
            return None
        try:
            notification = MessageNotification.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Ignoring malformed message push: %s", exc)
            return None
        return await self.reconciler.handle_instant_message(notification)

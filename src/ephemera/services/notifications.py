"""Push notification dispatch through the Expo push service.

Notifications are a best-effort side channel: every public coroutine on
``NotificationDispatcher`` opens its own database session, swallows and logs
any failure, and is meant to run as a background task after the request that
triggered it has committed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ephemera.core.settings import settings
from ephemera.db.session import SessionLocal
from ephemera.models import PushToken, User
from ephemera.schemas.message import MessageNotification

logger = logging.getLogger(__name__)

# Expo error codes meaning the token will never work again
INVALID_TOKEN_ERRORS = frozenset({"DeviceNotRegistered", "InvalidCredentials"})

NOTIFICATION_FRIEND_REQUEST = "friend_request"
NOTIFICATION_FRIEND_ACCEPT = "friend_accept"

SessionFactory = Callable[[], AbstractContextManager[Session]]


class PushError(RuntimeError):
    """Raised when the push service cannot be reached or answers with an error."""


@dataclass(frozen=True)
class PushResult:
    """Outcome of one push to one device."""

    success: bool
    invalid_token: bool = False
    error: str | None = None


@dataclass
class DispatchReport:
    """Summary of a fan-out to all of a user's devices."""

    sent: int = 0
    failed: int = 0
    invalid_tokens_removed: int = 0
    skipped_reason: str | None = None
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExpoPushConfig:
    """Immutable configuration for the Expo push API."""

    enabled: bool
    url: str
    access_token: str | None
    timeout_seconds: float


def load_expo_config() -> ExpoPushConfig:
    """Build configuration object from global settings."""
    return ExpoPushConfig(
        enabled=settings.push_enabled,
        url=settings.expo_push_url,
        access_token=settings.expo_access_token,
        timeout_seconds=float(settings.push_timeout_seconds),
    )


class ExpoPushClient:
    """HTTP client wrapper for the Expo push endpoint."""

    def __init__(
        self,
        config: ExpoPushConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_expo_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                headers = {
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip, deflate",
                }
                if self.config.access_token:
                    headers["Authorization"] = f"Bearer {self.config.access_token}"
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    headers=headers,
                    transport=self._transport,
                )
        return self._client

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Mapping[str, Any] | None = None,
    ) -> PushResult:
        """Push one notification to one device token.

        Raises:
            PushError: On transport failures or non-2xx responses.
        """
        client = await self._ensure_client()
        message = {
            "to": token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": dict(data or {}),
        }
        try:
            response = await client.post(self.config.url, json=[message])
        except httpx.HTTPError as exc:
            raise PushError(f"Push request failed: {exc}") from exc

        if response.is_error:
            raise PushError(f"Push service responded with {response.status_code}")

        tickets = response.json().get("data")
        ticket = tickets[0] if isinstance(tickets, list) and tickets else tickets
        if isinstance(ticket, dict) and ticket.get("status") == "error":
            error = (ticket.get("details") or {}).get("error") or ticket.get("message")
            if error in INVALID_TOKEN_ERRORS:
                logger.info("Push token rejected by Expo (%s)", error)
                return PushResult(success=False, invalid_token=True, error=error)
            return PushResult(success=False, error=str(error))
        return PushResult(success=True)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class NotificationDispatcher:
    """Best-effort delivery of push notifications to all of a user's devices."""

    def __init__(
        self,
        push_client: ExpoPushClient | None = None,
        session_factory: SessionFactory = SessionLocal,
    ) -> None:
        self.push_client = push_client or ExpoPushClient()
        self._session_factory = session_factory

    async def send_to_user(
        self,
        db: Session,
        user_id: str,
        title: str,
        body: str,
        data: Mapping[str, Any] | None = None,
    ) -> DispatchReport:
        """Push to every registered device of ``user_id`` and prune dead tokens."""
        tokens = db.execute(
            select(PushToken.token).where(PushToken.user_id == user_id)
        ).scalars().all()
        if not tokens:
            logger.debug("No push tokens registered for user %s", user_id)
            return DispatchReport(skipped_reason="no_tokens")

        results = await asyncio.gather(
            *(self.push_client.send(token, title, body, data) for token in tokens),
            return_exceptions=True,
        )

        report = DispatchReport()
        invalid: list[str] = []
        for token, result in zip(tokens, results, strict=True):
            if isinstance(result, BaseException):
                report.failed += 1
                report.errors.append(str(result))
                logger.warning("Push to user %s failed: %s", user_id, result)
            elif result.success:
                report.sent += 1
            else:
                report.failed += 1
                if result.invalid_token:
                    invalid.append(token)

        if invalid:
            logger.info("Removing %d invalid push tokens for user %s", len(invalid), user_id)
            db.execute(delete(PushToken).where(PushToken.token.in_(invalid)))
            db.commit()
            report.invalid_tokens_removed = len(invalid)
        return report

    async def _notify(
        self,
        recipient_id: str,
        preference: str,
        title: str,
        body: str,
        data: Mapping[str, Any],
    ) -> DispatchReport | None:
        if not self.push_client.enabled:
            return DispatchReport(skipped_reason="disabled")
        try:
            with self._session_factory() as db:
                recipient = db.get(User, recipient_id)
                if recipient is None:
                    return DispatchReport(skipped_reason="unknown_recipient")
                if not getattr(recipient, preference):
                    logger.debug("User %s has %s turned off", recipient_id, preference)
                    return DispatchReport(skipped_reason="disabled")
                return await self.send_to_user(db, recipient_id, title, body, data)
        except (SQLAlchemyError, PushError, OSError, ValueError) as exc:
            logger.error("Notification to %s failed: %s", recipient_id, exc, exc_info=True)
            return None

    async def notify_new_message(
        self,
        notification: MessageNotification,
        recipient_id: str,
        sender_name: str,
    ) -> DispatchReport | None:
        """Tell a recipient about a new message, with an instant-message payload."""
        return await self._notify(
            recipient_id,
            "notify_on_messages",
            "New Message",
            f"{sender_name} sent you a message",
            notification.model_dump(exclude_none=True),
        )

    async def notify_friend_request(
        self,
        recipient_id: str,
        sender_name: str,
        request_id: str,
    ) -> DispatchReport | None:
        """Tell a user someone wants to be their friend."""
        return await self._notify(
            recipient_id,
            "notify_on_friend_activity",
            "New Friend Request",
            f"{sender_name} sent you a friend request",
            {"type": NOTIFICATION_FRIEND_REQUEST, "request_id": request_id},
        )

    async def notify_friend_accept(
        self,
        recipient_id: str,
        accepter_name: str,
    ) -> DispatchReport | None:
        """Tell a requester their friend request was accepted."""
        return await self._notify(
            recipient_id,
            "notify_on_friend_activity",
            "Friend Request Accepted",
            f"{accepter_name} accepted your friend request",
            {"type": NOTIFICATION_FRIEND_ACCEPT},
        )

    async def close(self) -> None:
        await self.push_client.close()


class _DispatcherSingleton:
    """Singleton wrapper for NotificationDispatcher."""

    _instance: NotificationDispatcher | None = None

    @classmethod
    def get_instance(cls) -> NotificationDispatcher:
        """Get or create the singleton dispatcher instance."""
        if cls._instance is None:
            cls._instance = NotificationDispatcher()
        return cls._instance


def get_notification_dispatcher() -> NotificationDispatcher:
    """Return a singleton notification dispatcher."""
    return _DispatcherSingleton.get_instance()

"""Async HTTP client for the Ephemera API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from ephemera.schemas.message import CleanupResponse, InboxItem, OutboxItem

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class ClientError(RuntimeError):
    """Raised when an API call fails at the transport or HTTP level."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EphemeraClient:
    """Thin wrapper around ``httpx.AsyncClient`` bound to one signed-in user."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=f"{self.base_url}{API_PREFIX}",
                    timeout=httpx.Timeout(self._timeout),
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {self._access_token}",
                    },
                    transport=self._transport,
                )
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        client = await self._ensure_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ClientError(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            raise ClientError(
                f"{method} {path} responded with {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    async def send_message(
        self,
        recipients: Sequence[str],
        content_ref: str,
        *,
        content_key: str | None = None,
        kind: str | None = None,
        thumbhash: str | None = None,
        annotations: list[dict[str, Any]] | None = None,
    ) -> str:
        """Send already-uploaded media and return the new message id."""
        payload = {
            "recipients": list(recipients),
            "content_ref": content_ref,
            "content_key": content_key,
            "kind": kind,
            "thumbhash": thumbhash,
            "annotations": annotations,
        }
        data = await self._request("POST", "/messages/", json=payload)
        return data["message_id"]

    async def list_inbox(self) -> list[InboxItem]:
        data = await self._request("GET", "/messages/inbox")
        return [InboxItem.model_validate(item) for item in data]

    async def list_outbox(self, limit: int = 50) -> list[OutboxItem]:
        data = await self._request("GET", "/messages/outbox", params={"limit": limit})
        return [OutboxItem.model_validate(item) for item in data]

    async def mark_read(self, delivery_id: str) -> None:
        await self._request("PUT", f"/messages/deliveries/{delivery_id}/read")

    async def cleanup(self, message_id: str) -> CleanupResponse:
        """Ask the server to release a message's media if everyone has read it."""
        data = await self._request("POST", f"/messages/{message_id}/cleanup")
        return CleanupResponse.model_validate(data)

    async def register_push_token(self, token: str, platform: str) -> None:
        await self._request(
            "POST",
            "/notifications/tokens",
            json={"token": token, "platform": platform},
        )

    async def remove_push_token(self, token: str) -> None:
        await self._request("POST", "/notifications/tokens/remove", json={"token": token})

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

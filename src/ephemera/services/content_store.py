"""Content store client for uploaded media blobs.

Media is uploaded by clients straight to UploadThing; the service only needs
to release blobs once every recipient has consumed them. Deletion is
idempotent on the storage side: deleting a key that no longer exists is
reported as success.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from ephemera.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404

# UploadThing serves files at https://<host>/f/<key>
FILE_PATH_MARKER = "/f/"


class ContentStoreError(RuntimeError):
    """Raised when the content store rejects or fails a request."""


def derive_content_key(content_ref: str | None, content_key: str | None = None) -> str | None:
    """Return the storage key for a blob.

    Prefers the key recorded at upload time and falls back to the path
    segment after ``/f/`` in the public URL.
    """
    if content_key:
        return content_key
    if not content_ref:
        return None
    idx = content_ref.find(FILE_PATH_MARKER)
    if idx < 0:
        return None
    key = content_ref[idx + len(FILE_PATH_MARKER):].split("?", 1)[0]
    return key or None


class ContentStore(Protocol):
    """Blob storage operations the cleanup path depends on."""

    async def delete(self, key: str) -> bool:
        """Delete the blob stored under ``key``; missing blobs count as deleted."""
        ...

    async def close(self) -> None:
        """Release any network resources."""
        ...


@dataclass(frozen=True)
class UploadThingConfig:
    """Immutable configuration for the UploadThing API."""

    api_url: str
    api_key: str | None
    timeout_seconds: float


def load_uploadthing_config() -> UploadThingConfig:
    """Build configuration object from global settings."""
    return UploadThingConfig(
        api_url=settings.uploadthing_api_url,
        api_key=settings.uploadthing_api_key,
        timeout_seconds=float(settings.content_store_timeout_seconds),
    )


class UploadThingContentStore:
    """HTTP client wrapper for UploadThing file deletion."""

    def __init__(
        self,
        config: UploadThingConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_uploadthing_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.config.api_key)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.api_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def delete(self, key: str) -> bool:
        """Delete a single file by key.

        Returns:
            True once the file is gone (including when it was already gone),
            False when deletion is not configured.

        Raises:
            ContentStoreError: If the API is unreachable or answers with an error.
        """
        if not self.enabled:
            logger.warning("Content store not configured; leaving blob %s in place", key)
            return False

        try:
            client = await self._ensure_client()
            response = await client.post(
                "/v6/deleteFiles",
                json={"fileKeys": [key]},
                headers={"x-uploadthing-api-key": self.config.api_key or ""},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ContentStoreError(f"Content store request failed: {exc}") from exc

        if response.status_code == HTTP_NOT_FOUND:
            logger.debug("Blob %s already absent from content store", key)
            return True
        if response.is_error:
            raise ContentStoreError(
                f"Content store responded with {response.status_code} deleting {key}"
            )

        payload = response.json()
        if isinstance(payload, dict) and payload.get("success") is False:
            raise ContentStoreError(f"Content store refused to delete {key}")
        return True

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _ContentStoreSingleton:
    """Singleton wrapper for the content store client."""

    _instance: UploadThingContentStore | None = None

    @classmethod
    def get_instance(cls) -> UploadThingContentStore:
        """Get or create the singleton content store instance."""
        if cls._instance is None:
            cls._instance = UploadThingContentStore()
        return cls._instance


def get_content_store() -> UploadThingContentStore:
    """Return a singleton content store client."""
    return _ContentStoreSingleton.get_instance()

"""Tests for the HTTP client wrapper."""

import json

import httpx
import pytest

from ephemera.client.api import ClientError, EphemeraClient


def _client(handler) -> EphemeraClient:
    return EphemeraClient("https://api.test/", "token-123", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_list_inbox_parses_items() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[{
                "delivery_id": "d1",
                "message_id": "m1",
                "sender_id": "alice",
                "content_ref": "https://utfs.io/f/k",
                "kind": "image/jpeg",
                "thumbhash": None,
                "created_at": "2025-05-01T12:00:00Z",
            }],
        )

    client = _client(handler)
    items = await client.list_inbox()
    await client.close()

    assert items[0].delivery_id == "d1"
    assert seen[0].url == "https://api.test/api/v1/messages/inbox"
    assert seen[0].headers["Authorization"] == "Bearer token-123"


@pytest.mark.asyncio
async def test_send_message_and_read_ack() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST":
            return httpx.Response(201, json={"message_id": "m1"})
        return httpx.Response(200, json={"ok": True})

    client = _client(handler)
    assert await client.send_message(["bob"], "https://utfs.io/f/k", kind="video/mp4") == "m1"
    await client.mark_read("d1")

    body = json.loads(seen[0].content)
    assert body["recipients"] == ["bob"]
    assert body["kind"] == "video/mp4"
    assert seen[1].method == "PUT"
    assert seen[1].url.path == "/api/v1/messages/deliveries/d1/read"


@pytest.mark.asyncio
async def test_cleanup_response() -> None:
    client = _client(lambda request: httpx.Response(200, json={"ok": False, "reason": "unread"}))
    result = await client.cleanup("m1")
    assert result.ok is False
    assert result.reason == "unread"


@pytest.mark.asyncio
async def test_http_errors_become_client_errors() -> None:
    client = _client(lambda request: httpx.Response(500))
    with pytest.raises(ClientError) as excinfo:
        await client.list_inbox()
    assert excinfo.value.status_code == 500

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(ClientError):
        await _client(unreachable).mark_read("d1")

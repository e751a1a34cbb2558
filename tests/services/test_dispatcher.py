"""Tests for Expo push delivery and the notification dispatcher."""

import json
from contextlib import nullcontext

import httpx
import pytest
from sqlalchemy import select

from ephemera.models import PushToken
from ephemera.schemas.message import MessageNotification
from ephemera.services.notifications import (
    ExpoPushClient,
    ExpoPushConfig,
    NotificationDispatcher,
    PushError,
)

CONFIG = ExpoPushConfig(
    enabled=True,
    url="https://push.test/send",
    access_token=None,
    timeout_seconds=5.0,
)

NOTIFICATION = MessageNotification(
    sender_id="user-alice",
    message_id="message-1",
    delivery_id="delivery-1",
    content_ref="https://utfs.io/f/blob",
    kind="image/jpeg",
)


def _ticket_handler(requests: list, ticket: dict):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"data": [ticket]})

    return handler


def _dispatcher(db_session, handler, config: ExpoPushConfig = CONFIG) -> NotificationDispatcher:
    push_client = ExpoPushClient(config, transport=httpx.MockTransport(handler))
    return NotificationDispatcher(push_client, session_factory=lambda: nullcontext(db_session))


def _register(db_session, user, token: str) -> None:
    db_session.add(PushToken(user_id=user.id, token=token, platform="ios"))
    db_session.flush()


@pytest.mark.asyncio
async def test_push_client_posts_expo_message_list() -> None:
    requests: list = []
    client = ExpoPushClient(CONFIG, transport=httpx.MockTransport(_ticket_handler(requests, {"status": "ok"})))

    result = await client.send("ExponentPushToken[abc]", "Title", "Body", {"type": "message"})
    await client.close()

    assert result.success is True
    assert requests == [[{
        "to": "ExponentPushToken[abc]",
        "sound": "default",
        "title": "Title",
        "body": "Body",
        "data": {"type": "message"},
    }]]


@pytest.mark.asyncio
async def test_push_client_raises_on_server_error() -> None:
    client = ExpoPushClient(CONFIG, transport=httpx.MockTransport(lambda request: httpx.Response(503)))

    with pytest.raises(PushError):
        await client.send("token", "Title", "Body")


@pytest.mark.asyncio
async def test_new_message_push_carries_instant_payload(db_session, alice, bob) -> None:
    _register(db_session, bob, "ExponentPushToken[bob]")
    requests: list = []
    dispatcher = _dispatcher(db_session, _ticket_handler(requests, {"status": "ok"}))

    report = await dispatcher.notify_new_message(NOTIFICATION, bob.id, alice.name)

    assert report.sent == 1
    message = requests[0][0]
    assert message["title"] == "New Message"
    assert message["body"] == "Alice sent you a message"
    assert message["data"] == {
        "type": "message",
        "sender_id": "user-alice",
        "message_id": "message-1",
        "delivery_id": "delivery-1",
        "content_ref": "https://utfs.io/f/blob",
        "kind": "image/jpeg",
    }


@pytest.mark.asyncio
async def test_unregistered_device_token_is_removed(db_session, alice, bob) -> None:
    _register(db_session, bob, "ExponentPushToken[gone]")
    ticket = {"status": "error", "message": "gone", "details": {"error": "DeviceNotRegistered"}}
    dispatcher = _dispatcher(db_session, _ticket_handler([], ticket))

    report = await dispatcher.notify_new_message(NOTIFICATION, bob.id, alice.name)

    assert report.failed == 1
    assert report.invalid_tokens_removed == 1
    assert db_session.execute(select(PushToken)).scalars().all() == []


@pytest.mark.asyncio
async def test_preference_off_skips_push(db_session, alice, bob) -> None:
    _register(db_session, bob, "ExponentPushToken[bob]")
    bob.notify_on_friend_activity = False
    db_session.flush()
    requests: list = []
    dispatcher = _dispatcher(db_session, _ticket_handler(requests, {"status": "ok"}))

    report = await dispatcher.notify_friend_request(bob.id, alice.name, "request-1")

    assert report.skipped_reason == "disabled"
    assert requests == []


@pytest.mark.asyncio
async def test_disabled_push_and_unknown_recipient(db_session, alice) -> None:
    requests: list = []
    disabled = ExpoPushConfig(enabled=False, url=CONFIG.url, access_token=None, timeout_seconds=1.0)

    report = await _dispatcher(db_session, _ticket_handler(requests, {}), disabled).notify_friend_accept(
        alice.id, "Bob"
    )
    assert report.skipped_reason == "disabled"

    report = await _dispatcher(db_session, _ticket_handler(requests, {})).notify_friend_accept("ghost", "Bob")
    assert report.skipped_reason == "unknown_recipient"
    assert requests == []


@pytest.mark.asyncio
async def test_transport_failure_is_reported_not_raised(db_session, alice, bob) -> None:
    _register(db_session, bob, "ExponentPushToken[bob]")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    report = await _dispatcher(db_session, handler).notify_new_message(NOTIFICATION, bob.id, alice.name)

    assert report.sent == 0
    assert report.failed == 1
    assert report.errors


@pytest.mark.asyncio
async def test_user_without_devices(db_session, alice, bob) -> None:
    report = await _dispatcher(db_session, _ticket_handler([], {})).notify_new_message(
        NOTIFICATION, bob.id, alice.name
    )
    assert report.skipped_reason == "no_tokens"

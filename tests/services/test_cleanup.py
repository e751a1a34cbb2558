"""Tests for the cleanup coordinator and the retention purge."""

from datetime import timedelta

import httpx
import pytest
from sqlalchemy import func, select

from ephemera.core.time import utcnow
from ephemera.models import Message, MessageDelivery
from ephemera.services.cleanup import (
    REASON_ALREADY_DELETED,
    REASON_NOT_FOUND,
    REASON_UNREAD,
    CleanupCoordinator,
)
from tests.conftest import FakeContentStore, make_message


def _read_all(db_session, message) -> None:
    for delivery in message.deliveries:
        delivery.read_at = utcnow()
    db_session.flush()


@pytest.mark.asyncio
async def test_cleanup_waits_for_every_recipient(db_session, coordinator, content_store, alice, bob, carol) -> None:
    message = make_message(db_session, alice, [bob, carol])
    message.deliveries[0].read_at = utcnow()
    db_session.flush()

    result = await coordinator.cleanup_if_all_read(db_session, message.id)

    assert result.ok is False
    assert result.reason == REASON_UNREAD
    assert content_store.deleted == []
    db_session.refresh(message)
    assert message.deleted_at is None


@pytest.mark.asyncio
async def test_cleanup_releases_content_when_all_read(db_session, coordinator, content_store, alice, bob, carol) -> None:
    message = make_message(db_session, alice, [bob, carol])
    _read_all(db_session, message)

    result = await coordinator.cleanup_if_all_read(db_session, message.id)

    assert result.ok is True
    assert result.reason is None
    assert content_store.deleted == ["blob-key"]
    db_session.refresh(message)
    assert message.deleted_at is not None


@pytest.mark.asyncio
async def test_cleanup_is_idempotent(db_session, coordinator, content_store, alice, bob) -> None:
    message = make_message(db_session, alice, [bob])
    _read_all(db_session, message)

    first = await coordinator.cleanup_if_all_read(db_session, message.id)
    second = await coordinator.cleanup_if_all_read(db_session, message.id)

    assert first.ok and first.reason is None
    assert second.ok and second.reason == REASON_ALREADY_DELETED
    assert content_store.deleted == ["blob-key"]


@pytest.mark.asyncio
async def test_cleanup_unknown_message(db_session, coordinator) -> None:
    result = await coordinator.cleanup_if_all_read(db_session, "missing")
    assert result.ok is False
    assert result.reason == REASON_NOT_FOUND


@pytest.mark.asyncio
async def test_content_failure_does_not_block_soft_delete(db_session, alice, bob) -> None:
    store = FakeContentStore(fail=True)
    coordinator = CleanupCoordinator(store)
    message = make_message(db_session, alice, [bob])
    _read_all(db_session, message)

    result = await coordinator.cleanup_if_all_read(db_session, message.id)

    assert result.ok is True
    db_session.refresh(message)
    assert message.deleted_at is not None
    assert message.content_released_at is None


@pytest.mark.asyncio
async def test_failed_content_deletion_is_retried_by_later_cleanup(db_session, alice, bob) -> None:
    store = FakeContentStore(fail=True)
    coordinator = CleanupCoordinator(store)
    message = make_message(db_session, alice, [bob])
    _read_all(db_session, message)
    await coordinator.cleanup_if_all_read(db_session, message.id)

    store.fail = False
    retry = await coordinator.cleanup_if_all_read(db_session, message.id)
    again = await coordinator.cleanup_if_all_read(db_session, message.id)

    assert retry.reason == REASON_ALREADY_DELETED
    assert again.reason == REASON_ALREADY_DELETED
    assert store.deleted == ["blob-key"]
    db_session.refresh(message)
    assert message.content_released_at is not None


@pytest.mark.asyncio
async def test_release_content_catches_unexpected_store_errors(db_session, mocker, alice, bob) -> None:
    store = FakeContentStore()
    mocker.patch.object(store, "delete", side_effect=httpx.InvalidURL("bad url"))
    coordinator = CleanupCoordinator(store)
    message = make_message(db_session, alice, [bob])

    assert await coordinator.release_content(message) is False

@pytest.mark.asyncio
async def test_release_content_prefers_stored_key(db_session, coordinator, content_store, alice, bob) -> None:
    message = make_message(db_session, alice, [bob], content_ref="https://cdn.example.com/no-key")
    message.content_key = "stored-key"
    db_session.flush()

    assert await coordinator.release_content(message) is True
    assert content_store.deleted == ["stored-key"]


@pytest.mark.asyncio
async def test_release_content_without_key(db_session, coordinator, content_store, alice, bob) -> None:
    message = make_message(db_session, alice, [bob], content_ref="https://cdn.example.com/no-key")
    assert await coordinator.release_content(message) is False
    assert content_store.deleted == []


@pytest.mark.asyncio
async def test_cleanup_for_caller_rejects_strangers(db_session, coordinator, content_store, alice, bob, carol) -> None:
    message = make_message(db_session, alice, [bob])
    _read_all(db_session, message)

    result = await coordinator.cleanup_for_caller(db_session, message.id, carol.id)

    assert result.reason == REASON_NOT_FOUND
    assert content_store.deleted == []


@pytest.mark.asyncio
async def test_cleanup_for_caller_allows_sender_and_recipient(db_session, coordinator, alice, bob) -> None:
    message = make_message(db_session, alice, [bob])
    _read_all(db_session, message)

    assert (await coordinator.cleanup_for_caller(db_session, message.id, bob.id)).ok is True
    assert (await coordinator.cleanup_for_caller(db_session, message.id, alice.id)).reason == REASON_ALREADY_DELETED


def _count(db_session, model) -> int:
    return db_session.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.mark.asyncio
async def test_purge_removes_old_soft_deleted_messages(db_session, coordinator, alice, bob) -> None:
    now = utcnow()
    old = make_message(db_session, alice, [bob], created_at=now - timedelta(days=40), read=True)
    old.deleted_at = now - timedelta(days=31)
    recent = make_message(db_session, alice, [bob], created_at=now - timedelta(days=2), read=True)
    recent.deleted_at = now - timedelta(days=1)
    db_session.flush()

    report = await coordinator.purge_expired(db_session, now)

    assert report.soft_deleted_messages == 1
    assert report.soft_deleted_deliveries == 1
    assert report.expired_messages == 0
    assert _count(db_session, Message) == 1
    assert _count(db_session, MessageDelivery) == 1


@pytest.mark.asyncio
async def test_purge_expires_unread_messages_and_releases_content(db_session, coordinator, content_store, alice, bob, carol) -> None:
    now = utcnow()
    make_message(db_session, alice, [bob, carol], created_at=now - timedelta(days=91))
    make_message(db_session, alice, [bob], created_at=now - timedelta(days=10))

    report = await coordinator.purge_expired(db_session, now)

    assert report.expired_messages == 1
    assert report.expired_deliveries == 2
    assert content_store.deleted == ["blob-key"]
    assert _count(db_session, Message) == 1


@pytest.mark.asyncio
async def test_purge_releases_content_left_behind_by_failed_cleanup(db_session, content_store, alice, bob) -> None:
    now = utcnow()
    failing = CleanupCoordinator(FakeContentStore(fail=True))
    message = make_message(db_session, alice, [bob], created_at=now - timedelta(days=40), read=True)
    await failing.cleanup_if_all_read(db_session, message.id, now=now - timedelta(days=31))

    report = await CleanupCoordinator(content_store).purge_expired(db_session, now)

    assert content_store.deleted == ["blob-key"]
    assert report.soft_deleted_messages == 1
    assert report.retained_messages == 0
    assert _count(db_session, Message) == 0


@pytest.mark.asyncio
async def test_purge_keeps_rows_while_content_deletion_fails(db_session, alice, bob) -> None:
    now = utcnow()
    store = FakeContentStore(fail=True)
    coordinator = CleanupCoordinator(store)
    deleted = make_message(db_session, alice, [bob], created_at=now - timedelta(days=40), read=True)
    deleted.deleted_at = now - timedelta(days=31)
    make_message(db_session, alice, [bob], created_at=now - timedelta(days=91))
    db_session.flush()

    report = await coordinator.purge_expired(db_session, now)

    assert report.soft_deleted_messages == 0
    assert report.expired_messages == 0
    assert report.retained_messages == 2
    assert _count(db_session, Message) == 2

    store.fail = False
    report = await coordinator.purge_expired(db_session, now)

    assert report.soft_deleted_messages == 1
    assert report.expired_messages == 1
    assert _count(db_session, Message) == 0


@pytest.mark.asyncio
async def test_purge_skips_store_for_released_content(db_session, coordinator, content_store, alice, bob) -> None:
    now = utcnow()
    message = make_message(db_session, alice, [bob], created_at=now - timedelta(days=40), read=True)
    message.deleted_at = now - timedelta(days=31)
    message.content_released_at = now - timedelta(days=31)
    db_session.flush()

    report = await coordinator.purge_expired(db_session, now)

    assert report.soft_deleted_messages == 1
    assert content_store.deleted == []

# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from datetime import datetime
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("PUSH_ENABLED", "true")

from ephemera.api.v1.dependencies import get_cleanup_coordinator_dep, get_dispatcher_dep
from ephemera.core.security import create_access_token
from ephemera.db.session import Base
from ephemera.db.session import get_db as app_get_session
from ephemera.main import app as fastapi_app
from ephemera.models import Friendship, Message, MessageDelivery, User
from ephemera.models.friendship import normalize_pair
from ephemera.schemas.message import MessageNotification
from ephemera.services.cleanup import CleanupCoordinator
from ephemera.services.content_store import ContentStoreError

TEST_DB_URL = "sqlite://"


class FakeContentStore:
    """In-memory content store recording every deletion."""

    def __init__(self, fail: bool = False) -> None:
        self.deleted: list[str] = []
        self.fail = fail
        self.closed = False

    @property
    def enabled(self) -> bool:
        return True

    async def delete(self, key: str) -> bool:
        if self.fail:
            raise ContentStoreError(f"refused {key}")
        self.deleted.append(key)
        return True

    async def close(self) -> None:
        self.closed = True


class RecordingDispatcher:
    """Stands in for the push dispatcher and remembers what would be sent."""

    def __init__(self) -> None:
        self.messages: list[tuple[MessageNotification, str, str]] = []
        self.friend_requests: list[tuple[str, str, str]] = []
        self.friend_accepts: list[tuple[str, str]] = []

    async def notify_new_message(
        self, notification: MessageNotification, recipient_id: str, sender_name: str
    ) -> None:
        self.messages.append((notification, recipient_id, sender_name))

    async def notify_friend_request(self, recipient_id: str, sender_name: str, request_id: str) -> None:
        self.friend_requests.append((recipient_id, sender_name, request_id))

    async def notify_friend_accept(self, recipient_id: str, accepter_name: str) -> None:
        self.friend_accepts.append((recipient_id, accepter_name))

    async def close(self) -> None:
        return None


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def content_store() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture()
def coordinator(content_store: FakeContentStore) -> CleanupCoordinator:
    return CleanupCoordinator(content_store)


@pytest.fixture()
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    coordinator: CleanupCoordinator,
    dispatcher: RecordingDispatcher,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_cleanup_coordinator_dep] = lambda: coordinator
    app.dependency_overrides[get_dispatcher_dep] = lambda: dispatcher
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def _make_user(db_session: Session, user_id: str, name: str) -> User:
    user = User(id=user_id, name=name)
    db_session.add(user)
    db_session.flush()
    return user


@pytest.fixture()
def alice(db_session: Session) -> User:
    return _make_user(db_session, "user-alice", "Alice")


@pytest.fixture()
def bob(db_session: Session) -> User:
    return _make_user(db_session, "user-bob", "Bob")


@pytest.fixture()
def carol(db_session: Session) -> User:
    return _make_user(db_session, "user-carol", "Carol")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def alice_headers(alice: User) -> dict[str, str]:
    return auth_headers(alice)


@pytest.fixture()
def bob_headers(bob: User) -> dict[str, str]:
    return auth_headers(bob)


@pytest.fixture()
def carol_headers(carol: User) -> dict[str, str]:
    return auth_headers(carol)


def make_friends(db_session: Session, first: User, second: User, **fields: Any) -> Friendship:
    user_a, user_b = normalize_pair(first.id, second.id)
    friendship = Friendship(user_id_a=user_a, user_id_b=user_b, **fields)
    db_session.add(friendship)
    db_session.flush()
    return friendship


def make_message(
    db_session: Session,
    sender: User,
    recipients: list[User],
    *,
    content_ref: str = "https://utfs.io/f/blob-key",
    created_at: datetime | None = None,
    read: bool = False,
) -> Message:
    """Persist a message with one delivery per recipient, bypassing the send path."""
    message = Message(sender_id=sender.id, content_ref=content_ref, kind="image/jpeg")
    if created_at is not None:
        message.created_at = created_at
    db_session.add(message)
    db_session.flush()
    for recipient in recipients:
        delivery = MessageDelivery(message_id=message.id, recipient_id=recipient.id)
        if read:
            delivery.read_at = created_at or message.created_at
        db_session.add(delivery)
    db_session.flush()
    db_session.refresh(message)
    return message

# tests/conftest.py
from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator, Iterator
from contextlib import nullcontext
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "brokerdesk-test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from brokerdesk.core.security import create_access_token
from brokerdesk.db.session import Base, SessionFactory, get_db, get_session_factory
from brokerdesk.main import app as fastapi_app
from brokerdesk.models import Announcement, AnnouncementStatus, Role, UserAccount
from brokerdesk.schemas.announcement import AnnouncementCreate
from brokerdesk.services.announcements import AnnouncementStore

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite opens transactions lazily, which breaks SAVEPOINT handling.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")

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
    # Every session commit releases a SAVEPOINT; the outer transaction is rolled back.
    session = Session(
        bind=connection,
        autoflush=False,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    try:
        yield session
    finally:
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits escaped.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def session_factory(db_session: Session) -> SessionFactory:
    """Session factory that hands out the test session without closing it."""
    return lambda: nullcontext(db_session)


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(
    app: FastAPI,
    db_session: Session,
    session_factory: SessionFactory,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    def _get_session_factory_override() -> SessionFactory:
        return session_factory

    app.dependency_overrides[get_db] = _get_session_override
    app.dependency_overrides[get_session_factory] = _get_session_factory_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_session_factory, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., UserAccount]:
    """Return a factory persisting user accounts."""

    def _make_user(role: Role, *, active: bool = True, name: str | None = None) -> UserAccount:
        user_id = str(uuid.uuid4())
        user = UserAccount(
            id=user_id,
            email=f"{user_id[:8]}@brokerdesk.test",
            display_name=name or f"{role} user",
            role=role,
            is_active=active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture()
def admin_user(make_user: Callable[..., UserAccount]) -> UserAccount:
    """Administrator who authors announcements."""
    return make_user(Role.ADMIN, name="Admin")


@pytest.fixture()
def broker_user(make_user: Callable[..., UserAccount]) -> UserAccount:
    """Primary broker recipient."""
    return make_user(Role.BROKER, name="Broker One")


@pytest.fixture()
def other_broker(make_user: Callable[..., UserAccount]) -> UserAccount:
    """Second broker recipient."""
    return make_user(Role.BROKER, name="Broker Two")


@pytest.fixture()
def external_broker(make_user: Callable[..., UserAccount]) -> UserAccount:
    """Broker holding the external-broker role."""
    return make_user(Role.BROKER_EXTERNO, name="External Broker")


@pytest.fixture()
def inactive_broker(make_user: Callable[..., UserAccount]) -> UserAccount:
    """Deactivated broker account."""
    return make_user(Role.BROKER, active=False, name="Former Broker")


def auth_headers(user: UserAccount) -> dict[str, str]:
    """Return authorization headers for ``user``."""
    token = create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers_for() -> Callable[[UserAccount], dict[str, str]]:
    """Return the helper minting authorization headers for a user."""
    return auth_headers


@pytest.fixture()
def admin_headers(admin_user: UserAccount) -> dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture()
def broker_headers(broker_user: UserAccount) -> dict[str, str]:
    return auth_headers(broker_user)


@pytest.fixture()
def store(db_session: Session) -> AnnouncementStore:
    return AnnouncementStore(db_session)


@pytest.fixture()
def make_announcement(
    store: AnnouncementStore,
    admin_user: UserAccount,
) -> Callable[..., Announcement]:
    """Return a factory creating announcements through the store."""

    def _make_announcement(**overrides: Any) -> Announcement:
        payload: dict[str, Any] = {
            "title": "Quarterly targets",
            "body": "New commission tiers apply from next month.",
            "status": AnnouncementStatus.PUBLISHED,
            "target_roles": [Role.BROKER],
        }
        payload.update(overrides)
        return store.create(AnnouncementCreate(**payload), created_by=admin_user.id)

    return _make_announcement

"""
Pytest configuration and shared fixtures.
"""
import time
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from pmhub.core.config import Settings
from pmhub.core.database import build_engine, build_session_factory, init_models
from pmhub.realtime.connection import Connection
from pmhub.realtime.dispatcher import EventDispatcher
from pmhub.realtime.registry import ConnectionRegistry
from pmhub.realtime.rooms import RoomRouter
from pmhub.schemas.user import Identity


class FakeTransport:
    """Stands in for a websocket: records frames and the close call."""

    def __init__(self, fail_on_send: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.closed_with: Optional[tuple] = None
        self.fail_on_send = fail_on_send

    async def send_json(self, data: Any) -> None:
        if self.fail_on_send:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed_with = (code, reason)


def make_identity(user_id: str, name: Optional[str] = None) -> Identity:
    name = name or user_id.capitalize()
    return Identity(id=user_id, name=name, email=f"{user_id}@example.com", avatar=None)


def make_user(user_id: str, is_active: bool = True) -> SimpleNamespace:
    return SimpleNamespace(
        id=user_id,
        name=user_id.capitalize(),
        email=f"{user_id}@example.com",
        avatar=None,
        is_active=is_active,
    )


def drain(connection: Connection) -> List[Dict[str, Any]]:
    """Everything queued for a connection, in order."""
    frames = []
    while not connection.outbox.empty():
        item = connection.outbox.get_nowait()
        if isinstance(item, dict):
            frames.append(item)
    return frames


def wait_for(predicate, timeout: float = 3.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        SECRET_KEY="test-secret-key",
        ALGORITHM="HS256",
        LOG_LEVEL="WARNING",
        CORS_ORIGINS="*",
    )


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def router(registry) -> RoomRouter:
    return RoomRouter(registry)


@pytest.fixture
def dispatcher(router) -> EventDispatcher:
    return EventDispatcher(router)


@pytest.fixture
def connect(registry):
    """Build and register a connection for a user id."""

    def _connect(user_id: str) -> Connection:
        identity = make_identity(user_id)
        connection = Connection(FakeTransport(), identity)
        registry.register(identity, connection)
        return connection

    return _connect


@pytest_asyncio.fixture
async def session_factory(test_settings):
    engine = build_engine(test_settings.DATABASE_URL)
    await init_models(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def project(db):
    """An owner and an empty project."""
    from pmhub.models import Project, User

    db.add(User(id="owner", name="Owner", email="owner@example.com"))
    db.add(Project(id="p1", name="Launch", owner_id="owner"))
    await db.commit()
    return await db.get(Project, "p1")


@pytest.fixture
def owner() -> Identity:
    return Identity(id="owner", name="Owner", email="owner@example.com")

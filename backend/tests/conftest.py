"""
Shared fixtures.

MongoDB is replaced by mongomock_motor everywhere, both for repository tests
(direct AsyncMongoMockClient) and for API tests (the Motor client class used by
the lifespan is patched).
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
import pytest
from mongomock_motor import AsyncMongoMockClient
from starlette.testclient import TestClient

for _name in ("pymongo", "asyncio", "httpx"):
    logging.getLogger(_name).setLevel(logging.WARNING)

from snapshoot.core.config import get_settings
from snapshoot.database import connection as db_connection
from snapshoot.main import create_app
from snapshoot.repositories.message_repository import MessageRepository
from snapshoot.repositories.user_repository import UserRepository
from snapshoot.services.chat_service import ChatService
from snapshoot.services.delivery_router import DeliveryRouter
from snapshoot.utils.clock import MonotonicClock
from snapshoot.utils.presence_registry import PresenceRegistry
from snapshoot.utils.websocket_manager import DeliveryFailed


class FakeConnection:
    """Stands in for WebSocketConnection and records the events written to it."""

    def __init__(self, fail: bool = False) -> None:
        self.connection_id = uuid.uuid4().hex
        self.user_id: Optional[str] = None
        self.fail = fail
        self.closed_with: Optional[int] = None
        self.events: List[Dict[str, Any]] = []

    async def send_event(self, event_type: str, **fields: Any) -> None:
        if self.fail:
            raise DeliveryFailed("socket closed")
        self.events.append({"type": event_type, **fields})

    async def close(self, code: int = 1011) -> None:
        self.closed_with = code

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["type"] == event_type]


class SteppingClock:
    """Clock source that advances one second per call, for deterministic ordering."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def db():
    return AsyncMongoMockClient()["snapshoot_test"]


@pytest.fixture
def message_repo(db) -> MessageRepository:
    return MessageRepository(db, clock=MonotonicClock(SteppingClock()))


@pytest.fixture
def user_repo(db) -> UserRepository:
    return UserRepository(db)


@pytest.fixture
def chat_service(message_repo, user_repo) -> ChatService:
    return ChatService(message_repo, user_repo)


@pytest.fixture
def presence() -> PresenceRegistry:
    return PresenceRegistry()


@pytest.fixture
def delivery(message_repo, presence) -> DeliveryRouter:
    return DeliveryRouter(message_repo, presence)


@pytest.fixture
def make_connection():
    def _make(fail: bool = False) -> FakeConnection:
        return FakeConnection(fail=fail)
    return _make


def make_token(user_id: str) -> str:
    settings = get_settings()
    return jwt.encode({"sub": user_id}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def auth_headers():
    def _headers(user_id: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _headers


@pytest.fixture
def token():
    return make_token


@pytest.fixture
def client(monkeypatch):
    mock_client = AsyncMongoMockClient()
    monkeypatch.setattr(db_connection, "AsyncIOMotorClient", lambda *args, **kwargs: mock_client)
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client

# tests/conftest.py
import os

# Settings are read at import time; pin a test configuration first
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = ""
os.environ.pop("MESSAGE_LOG_BACKEND", None)
os.environ.pop("CHAT_SUPPLIER_JOIN_GATE", None)

from typing import Any, List, Tuple

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.chat.coordinator import RoomCoordinator
from app.chat.notifications import NotificationFanout
from app.chat.registry import ConnectionRegistry
from app.services.message_log import InMemoryMessageLog


class RecordingSession:
    """Session handle that records every frame delivered to it."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.frames: List[Tuple[str, Any]] = []

    async def send(self, event: str, data: Any) -> None:
        self.frames.append((event, data))

    def events(self, name: str) -> List[Any]:
        return [data for event, data in self.frames if event == name]

    def received_bodies(self) -> List[str]:
        return [data["body"] for data in self.events("receive_message")]


class BrokenSession(RecordingSession):
    """Session whose transport has died."""

    async def send(self, event: str, data: Any) -> None:
        raise ConnectionResetError("socket closed")


@pytest.fixture
def message_log() -> InMemoryMessageLog:
    return InMemoryMessageLog()


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def notifications(registry) -> NotificationFanout:
    return NotificationFanout(registry)


@pytest.fixture
def coordinator(registry, message_log, notifications) -> RoomCoordinator:
    return RoomCoordinator(
        registry=registry,
        message_log=message_log,
        notifications=notifications,
        history_limit=50,
    )


@pytest.fixture
def connect(coordinator):
    """Factory: attach a recording session to the coordinator."""
    def _connect(session_id: str, broken: bool = False) -> RecordingSession:
        session = BrokenSession(session_id) if broken else RecordingSession(session_id)
        coordinator.connect(session)
        return session
    return _connect


def make_token(user_id: str, role: str) -> str:
    return jwt.encode({"user": {"id": user_id, "role": role}}, "test-secret", algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _headers(user_id: str, role: str) -> dict:
        return {"x-auth-token": make_token(user_id, role)}
    return _headers


@pytest.fixture
def token():
    return make_token


@pytest.fixture
def client() -> TestClient:
    """
    A test client for the FastAPI application with a fresh in-memory runtime.
    """
    from app.main import app

    with TestClient(app) as c:
        yield c

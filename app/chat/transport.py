"""
Transport adapters.

The coordinator only needs an opaque session handle that can deliver a named
event. The WebSocket adapter below is the production transport; tests use a
recording handle.
"""
import uuid
from typing import Any, Optional, Protocol

from fastapi import WebSocket


class SessionHandle(Protocol):
    """One connected client's channel."""
    session_id: str

    async def send(self, event: str, data: Any) -> None:
        ...


class WebSocketSession:
    """Session handle over a FastAPI WebSocket, framing events as {"event", "data"}."""

    def __init__(self, websocket: WebSocket, user_id: Optional[str] = None, role: Optional[str] = None):
        self.websocket = websocket
        self.user_id = user_id
        self.role = role
        self.session_id = uuid.uuid4().hex

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": data})

    def __repr__(self) -> str:
        return f"WebSocketSession(session_id={self.session_id!r}, user_id={self.user_id!r})"

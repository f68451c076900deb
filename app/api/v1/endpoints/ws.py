"""
Chat WebSocket endpoint.

Frames are JSON objects ``{"event": name, "data": payload}``. Every frame is
validated into a typed event and checked against the identity in the
session's token before it reaches the coordinator; rejected frames get an
``error`` event back and the connection stays open.
"""
import json
import logging
from typing import Optional, Union

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from app.api.deps import decode_token
from app.chat.events import ErrorEvent, JoinNotificationRoom, JoinRoom, SendMessage, parse_client_event
from app.chat.transport import WebSocketSession
from app.core.exceptions import AuthenticationError
from app.schemas.message import role_value

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, token: str = Query(...)):
    try:
        user = decode_token(token)
    except AuthenticationError as e:
        logger.warning(f"Rejected chat connection: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    coordinator = websocket.app.state.runtime.coordinator
    session = WebSocketSession(websocket, user_id=user.user_id, role=user.role.value)
    coordinator.connect(session)
    logger.info(f"Session {session.session_id} connected for user {user.user_id}")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            text = message.get("text")
            if text is None:
                await _reject(session, "Frames must be JSON text")
                continue
            try:
                frame = json.loads(text)
            except ValueError:
                await _reject(session, "Frames must be valid JSON")
                continue
            if not isinstance(frame, dict):
                await _reject(session, "Frames must be JSON objects")
                continue
            try:
                event = parse_client_event(frame)
            except PydanticValidationError as e:
                await _reject(session, "Invalid event", e.errors(include_url=False))
                continue
            problem = _identity_problem(session, event)
            if problem:
                logger.warning(f"Session {session.session_id} ({session.user_id}): {problem}")
                await _reject(session, problem)
                continue
            await coordinator.handle(session.session_id, event)
    except WebSocketDisconnect:
        logger.info(f"Session {session.session_id} disconnected")
    finally:
        await coordinator.leave(session.session_id)


def _identity_problem(
    session: WebSocketSession,
    event: Union[JoinRoom, SendMessage, JoinNotificationRoom],
) -> Optional[str]:
    """Events may only act as the user and role the token was issued for."""
    if role_value(event.role) != session.role:
        return "Event role does not match the authenticated user"
    if isinstance(event, JoinNotificationRoom) and event.user_id != session.user_id:
        return "Cannot subscribe to another user's notifications"
    return None


async def _reject(session: WebSocketSession, message: str, details=None) -> None:
    error = ErrorEvent(message=message, details=_jsonable(details or []))
    await session.send(error.name, error.payload())


def _jsonable(details):
    # pydantic error "ctx" may hold exception objects
    return [{k: v for k, v in d.items() if k in ("loc", "msg", "type")} for d in details]

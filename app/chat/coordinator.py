"""
Room Coordinator

Sits between the order/message stores and the connected sessions:
- tracks live membership per room and replays history on join
- persists then broadcasts messages
- reacts to order lifecycle signals (deletion closes, recreation reopens)

Each room is serialised by its own lock, so joins, sends and closes for one
room are applied in arrival order while different rooms run concurrently.
Room rules live in app.chat.state; this class performs the I/O the
transitions ask for.

Failure policy: chat liveness wins over durability. A failed append is
logged and the message is still broadcast; a failed history fetch replays
nothing. Neither is raised to the caller.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from app.chat.events import (
    JoinNotificationRoom,
    JoinRoom,
    OutboundEvent,
    PreviousMessages,
    SendMessage,
)
from app.chat.notifications import NotificationFanout
from app.chat.registry import ConnectionRegistry
from app.chat.transport import SessionHandle
from app.chat.state import (
    Broadcast,
    Deliver,
    Effect,
    MemberJoined,
    MemberLeft,
    MessageAccepted,
    ReplayHistory,
    RoomClosed,
    RoomReopened,
    RoomSignal,
    RoomState,
    RoomStatus,
    transition,
)
from app.schemas.message import ChatMessage, role_value
from app.services.message_log import MessageLog

logger = logging.getLogger(__name__)


class RoomCoordinator:
    """Room lifecycle and message delivery for one process."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        message_log: MessageLog,
        notifications: NotificationFanout,
        history_limit: int = 50,
        supplier_join_gate: bool = False,
    ):
        self.registry = registry
        self.message_log = message_log
        self.notifications = notifications
        self.history_limit = history_limit
        self.supplier_join_gate = supplier_join_gate

    # ==================== Client operations ====================

    def connect(self, handle: SessionHandle) -> None:
        """Make a session reachable. Clients re-issue joins after every (re)connect."""
        self.registry.attach(handle)

    async def join(self, session_id: str, room_id: str, role: str) -> RoomState:
        """Add a session to a room. Idempotent; history is replayed only on the first join."""
        return await self._apply(room_id, MemberJoined(session_id=session_id, role=role_value(role)))

    async def send(
        self,
        session_id: str,
        room_id: str,
        sender_name: str,
        role: str,
        body: str,
    ) -> ChatMessage:
        """
        Persist a message, then broadcast it to every member (sender included).

        Returns:
            The broadcast message; ``id`` is None if persistence failed
        """
        async with self.registry.room_lock(room_id):
            message = ChatMessage(
                room_id=room_id,
                sender_name=sender_name,
                sender_role=role_value(role),
                body=body,
                timestamp=datetime.now(timezone.utc),
            )
            try:
                message = await self.message_log.append(room_id, message)
            except Exception as e:
                logger.warning(
                    f"Failed to persist message in room {room_id} from session {session_id}: {e}. "
                    "Broadcasting without persistence."
                )

            await self._apply_locked(room_id, MessageAccepted(message=message))
            return message

    async def close(
        self,
        room_id: str,
        closing_actor_id: Optional[str] = None,
        reason_payload: Optional[Dict[str, Any]] = None,
    ) -> RoomState:
        """Mark a room closed and tell its members. Members are not evicted."""
        state = await self._apply(
            room_id,
            RoomClosed(closing_actor_id=closing_actor_id, reason=dict(reason_payload or {})),
        )
        logger.info(f"Room {room_id} closed by {closing_actor_id} ({len(state.members)} members notified)")
        return state

    async def reopen(self, room_id: str) -> RoomState:
        """Clear the closed flag without notifying anyone."""
        return await self._apply(room_id, RoomReopened())

    async def leave(self, session_id: str) -> None:
        """Remove a session from every room and notification set. Unknown sessions are a no-op."""
        room_ids = self.registry.detach(session_id)
        self.notifications.unregister_session(session_id)
        for room_id in room_ids:
            async with self.registry.room_lock(room_id):
                room = self.registry.get_room(room_id)
                if room is None:
                    continue
                result = transition(room, MemberLeft(session_id=session_id), self.supplier_join_gate)
                self.registry.put_room(result.state)
        if room_ids:
            logger.debug(f"Session {session_id} left {len(room_ids)} room(s)")

    # ==================== Dispatch ====================

    async def handle(
        self,
        session_id: str,
        event: Union[JoinRoom, SendMessage, JoinNotificationRoom],
    ) -> None:
        """Dispatch one validated inbound event from a session."""
        if isinstance(event, JoinRoom):
            await self.join(session_id, event.room_id, event.role)
        elif isinstance(event, SendMessage):
            await self.send(session_id, event.room_id, event.sender_name, event.role, event.body)
        elif isinstance(event, JoinNotificationRoom):
            self.notifications.register(session_id, event.role, event.user_id)
        else:
            raise TypeError(f"Unhandled client event: {type(event).__name__}")

    # ==================== Order lifecycle callbacks ====================

    async def on_request_deleted(self, room_id: str, payload: Dict[str, Any]) -> None:
        """Order-store callback: a supplier deleted the request behind this room."""
        await self.close(room_id, payload.get("closed_by"), payload)

    async def on_request_created(self, room_id: str, payload: Dict[str, Any]) -> None:
        """Order-store callback: reopen the room if closed, then tell the supplier."""
        room = self.registry.get_room(room_id)
        if room is not None and room.closed:
            logger.info(f"Reopening room {room_id} for a new request")
            await self.reopen(room_id)
        await self.notifications.notify_new_request(room_id, payload)

    # ==================== Introspection ====================

    def room_status(self, room_id: str) -> Dict[str, Any]:
        room = self.registry.get_room(room_id)
        if room is None:
            return {"room_id": room_id, "status": RoomStatus.UNSEEN.value, "members": 0, "roles_joined": []}
        status = room.to_dict()
        status["messaging_enabled"] = room.messaging_enabled(self.supplier_join_gate)
        return status

    # ==================== Internals ====================

    async def _apply(self, room_id: str, signal: RoomSignal) -> RoomState:
        async with self.registry.room_lock(room_id):
            return await self._apply_locked(room_id, signal)

    async def _apply_locked(self, room_id: str, signal: RoomSignal) -> RoomState:
        room = self.registry.load_room(room_id)
        result = transition(room, signal, self.supplier_join_gate)
        self.registry.put_room(result.state)
        await self._perform(room_id, result.effects)
        return result.state

    async def _perform(self, room_id: str, effects: List[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, ReplayHistory):
                await self._deliver(effect.session_id, PreviousMessages(messages=await self._history(room_id)))
            elif isinstance(effect, Deliver):
                await self._deliver(effect.session_id, effect.event)
            elif isinstance(effect, Broadcast):
                for session_id in effect.recipients:
                    await self._deliver(session_id, effect.event)
            else:
                raise TypeError(f"Unhandled effect: {type(effect).__name__}")

    async def _history(self, room_id: str) -> List[ChatMessage]:
        try:
            return await self.message_log.fetch_recent(room_id, self.history_limit)
        except Exception as e:
            logger.warning(f"Failed to load history for room {room_id}: {e}. Replaying nothing.")
            return []

    async def _deliver(self, session_id: str, event: OutboundEvent) -> None:
        handle = self.registry.get_session(session_id)
        if handle is None:
            return
        try:
            await handle.send(event.name, event.payload())
            logger.debug(f"Delivered {event.name} to session {session_id}")
        except Exception as e:
            # The transport's disconnect path removes the session's memberships
            logger.warning(f"Delivery of {event.name} to session {session_id} failed: {e}")

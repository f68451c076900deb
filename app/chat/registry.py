"""
Connection Registry

Owns every piece of mutable connection state for one process:
- connected session handles
- room states (membership, closed flag) keyed by room identity
- one asyncio.Lock per room identity with work in flight (FIFO, so arrival
  order is kept)
- notification rooms keyed by (role, user_id)

Constructed in the application lifespan and injected into the coordinator and
the notification fan-out. Only those two components mutate it.
"""
import asyncio
import logging
from collections import OrderedDict, defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Set, Tuple

from app.chat.state import RoomState
from app.chat.transport import SessionHandle

logger = logging.getLogger(__name__)

NotificationKey = Tuple[str, str]

DEFAULT_MAX_IDLE_CLOSED_ROOMS = 10_000


class _RoomLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0  # holders plus waiters


class ConnectionRegistry:
    """Process-wide, lifecycle-scoped registry of sessions, rooms and notification targets."""

    def __init__(self, max_idle_closed_rooms: int = DEFAULT_MAX_IDLE_CLOSED_ROOMS):
        self.max_idle_closed_rooms = max_idle_closed_rooms
        self._sessions: Dict[str, SessionHandle] = {}
        self._rooms: Dict[str, RoomState] = {}
        self._idle_closed: "OrderedDict[str, None]" = OrderedDict()
        self._room_locks: Dict[str, _RoomLock] = {}
        self._session_rooms: Dict[str, Set[str]] = defaultdict(set)
        self._notification_rooms: Dict[NotificationKey, Set[str]] = defaultdict(set)
        self._session_notifications: Dict[str, Set[NotificationKey]] = defaultdict(set)

    # ==================== Sessions ====================

    def attach(self, handle: SessionHandle) -> None:
        self._sessions[handle.session_id] = handle

    def get_session(self, session_id: str) -> Optional[SessionHandle]:
        return self._sessions.get(session_id)

    def detach(self, session_id: str) -> Set[str]:
        """
        Forget a session handle.

        Returns:
            Room ids the session was a member of (membership itself is
            removed by the coordinator under each room's lock)
        """
        self._sessions.pop(session_id, None)
        return set(self._session_rooms.pop(session_id, set()))

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    # ==================== Rooms ====================

    @asynccontextmanager
    async def room_lock(self, room_id: str) -> AsyncIterator[None]:
        """
        Serialise work on one room in arrival order.

        The lock entry is dropped as soon as nobody holds or awaits it, so
        the lock table only ever holds rooms with work in flight.
        """
        entry = self._room_locks.get(room_id)
        if entry is None:
            entry = _RoomLock()
            self._room_locks[room_id] = entry
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._room_locks.get(room_id) is entry:
                del self._room_locks[room_id]

    def get_room(self, room_id: str) -> Optional[RoomState]:
        return self._rooms.get(room_id)

    def load_room(self, room_id: str) -> RoomState:
        """Stored state, or a fresh unseen state (not stored until put_room)."""
        room = self._rooms.get(room_id)
        return room if room is not None else RoomState(room_id=room_id)

    def put_room(self, state: RoomState) -> None:
        """
        Store a room's new state and keep the session index in step.

        Empty open rooms are forgotten. Empty closed rooms are kept so a
        reconnecting client still sees the closure, up to
        ``max_idle_closed_rooms`` (oldest evicted first).
        """
        room_id = state.room_id
        previous = self._rooms.get(room_id)

        old_members = previous.members if previous else frozenset()
        for session_id in state.members - old_members:
            self._session_rooms[session_id].add(room_id)
        for session_id in old_members - state.members:
            rooms = self._session_rooms.get(session_id)
            if rooms is not None:
                rooms.discard(room_id)
                if not rooms:
                    del self._session_rooms[session_id]

        if state.members:
            if previous is None:
                logger.info(f"Opening room {room_id}")
            self._rooms[room_id] = state
            self._idle_closed.pop(room_id, None)
        elif state.closed:
            self._rooms[room_id] = state
            self._idle_closed[room_id] = None
            self._idle_closed.move_to_end(room_id)
            while len(self._idle_closed) > self.max_idle_closed_rooms:
                evicted, _ = self._idle_closed.popitem(last=False)
                self._rooms.pop(evicted, None)
                logger.debug(f"Evicted idle closed room {evicted}")
        else:
            if previous is not None:
                logger.debug(f"Releasing empty room {room_id}")
            self._rooms.pop(room_id, None)
            self._idle_closed.pop(room_id, None)

    def rooms(self) -> List[RoomState]:
        return list(self._rooms.values())

    # ==================== Notification rooms ====================

    def add_notification_target(self, role: str, user_id: str, session_id: str) -> bool:
        """Returns True if the session was newly registered."""
        key = (role, user_id)
        if session_id in self._notification_rooms[key]:
            return False
        self._notification_rooms[key].add(session_id)
        self._session_notifications[session_id].add(key)
        return True

    def notification_targets(self, role: str, user_id: str) -> List[str]:
        return sorted(self._notification_rooms.get((role, user_id), set()))

    def remove_notification_targets(self, session_id: str) -> int:
        keys = self._session_notifications.pop(session_id, set())
        for key in keys:
            members = self._notification_rooms.get(key)
            if members is None:
                continue
            members.discard(session_id)
            if not members:
                del self._notification_rooms[key]
        return len(keys)

    # ==================== Lifecycle ====================

    def clear(self) -> None:
        """Drop all transient state (process shutdown)."""
        self._sessions.clear()
        self._rooms.clear()
        self._idle_closed.clear()
        self._room_locks.clear()
        self._session_rooms.clear()
        self._notification_rooms.clear()
        self._session_notifications.clear()

    def stats(self) -> Dict[str, int]:
        return {
            "sessions": len(self._sessions),
            "rooms": len(self._rooms),
            "closed_rooms": sum(1 for r in self._rooms.values() if r.closed),
            "idle_closed_rooms": len(self._idle_closed),
            "room_locks": len(self._room_locks),
            "notification_rooms": len(self._notification_rooms),
        }

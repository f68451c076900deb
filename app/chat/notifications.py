"""
Notification Fan-out

Role-scoped event delivery (e.g. "a new purchase request arrived") to every
session registered for a (role, user_id) pair, independent of chat rooms.

At-most-once: nothing is queued for users with no registered session.
Registrations are transient and must be re-issued after a reconnect.
"""
import logging
from typing import Any, Dict

from app.chat.events import NewRequestNotification, OutboundEvent
from app.chat.registry import ConnectionRegistry
from app.schemas.message import Role, role_value

logger = logging.getLogger(__name__)


class NotificationFanout:
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def register(self, session_id: str, role: str, user_id: str) -> None:
        """Idempotent."""
        role = role_value(role)
        if self.registry.add_notification_target(role, user_id, session_id):
            logger.info(f"Session {session_id} registered for {role} notifications of {user_id}")

    def unregister_session(self, session_id: str) -> None:
        self.registry.remove_notification_targets(session_id)

    async def notify(self, role: str, user_id: str, event: OutboundEvent) -> int:
        """
        Deliver an event to every session registered for (role, user_id).

        Returns:
            Number of sessions the event reached
        """
        delivered = 0
        for session_id in self.registry.notification_targets(role_value(role), user_id):
            handle = self.registry.get_session(session_id)
            if handle is None:
                continue
            try:
                await handle.send(event.name, event.payload())
                delivered += 1
            except Exception as e:
                logger.warning(f"Notification to session {session_id} failed: {e}")

        if delivered == 0:
            logger.debug(f"No live sessions for {role}:{user_id}; dropping {event.name}")
        return delivered

    async def notify_new_request(self, room_id: str, payload: Dict[str, Any]) -> int:
        """Order-store callback: tell the supplier named on a new request."""
        supplier_id = payload.get("supplier_id") or payload.get("order", {}).get("supplier_id")
        if not supplier_id:
            logger.warning(f"New request in room {room_id} has no supplier; not notifying")
            return 0
        event = NewRequestNotification(
            order=payload.get("order", {}),
            message=payload.get("message", "New purchase request"),
        )
        return await self.notify(Role.SUPPLIER.value, supplier_id, event)

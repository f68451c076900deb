"""
Chat runtime wiring.

Builds the lifecycle-scoped objects (registry, stores, fan-out, coordinator)
from settings, subscribes the coordinator to order lifecycle signals, and
tears everything down at shutdown. One instance lives on ``app.state.runtime``.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from app.chat.coordinator import RoomCoordinator
from app.chat.notifications import NotificationFanout
from app.chat.registry import ConnectionRegistry
from app.core.config import Settings
from app.core.redis_client import RedisClient
from app.services.message_log import (
    InMemoryMessageLog,
    MessageLog,
    RedisMessageLog,
    SqlMessageLog,
)
from app.services.order_store import InMemoryOrderStore, OrderStore, SqlOrderStore

logger = logging.getLogger(__name__)


@dataclass
class ChatRuntime:
    registry: ConnectionRegistry
    message_log: MessageLog
    order_store: OrderStore
    notifications: NotificationFanout
    coordinator: RoomCoordinator
    redis_client: Optional[RedisClient] = None

    async def start(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.connect()
        logger.info(
            f"Chat runtime started: message_log={type(self.message_log).__name__}, "
            f"order_store={type(self.order_store).__name__}"
        )

    async def stop(self) -> None:
        self.registry.clear()
        if self.redis_client is not None:
            await self.redis_client.disconnect()
        logger.info("Chat runtime stopped")


def build_runtime(
    settings: Settings,
    session_factory=None,
    message_log: Optional[MessageLog] = None,
    order_store: Optional[OrderStore] = None,
) -> ChatRuntime:
    """
    Assemble a runtime. Explicit ``message_log`` / ``order_store`` override
    what the settings would select.
    """
    redis_client = None

    if message_log is None:
        backend = settings.get_message_log_backend()
        if backend == "redis":
            if not settings.REDIS_URL:
                raise ValueError("MESSAGE_LOG_BACKEND=redis requires REDIS_URL")
            redis_client = RedisClient(settings.REDIS_URL)
            message_log = RedisMessageLog(redis_client)
        elif backend == "sql":
            if session_factory is None:
                raise ValueError("MESSAGE_LOG_BACKEND=sql requires DATABASE_URL")
            message_log = SqlMessageLog(session_factory)
        else:
            message_log = InMemoryMessageLog()

    if order_store is None:
        order_store = SqlOrderStore(session_factory) if session_factory is not None else InMemoryOrderStore()

    registry = ConnectionRegistry(max_idle_closed_rooms=settings.CHAT_MAX_IDLE_CLOSED_ROOMS)
    notifications = NotificationFanout(registry)
    coordinator = RoomCoordinator(
        registry=registry,
        message_log=message_log,
        notifications=notifications,
        history_limit=settings.CHAT_HISTORY_LIMIT,
        supplier_join_gate=settings.CHAT_SUPPLIER_JOIN_GATE,
    )

    order_store.subscribe_created(coordinator.on_request_created)
    order_store.subscribe_deleted(coordinator.on_request_deleted)

    return ChatRuntime(
        registry=registry,
        message_log=message_log,
        order_store=order_store,
        notifications=notifications,
        coordinator=coordinator,
        redis_client=redis_client,
    )

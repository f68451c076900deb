"""
Message Log

Durable, append-only chat history keyed by room identity. Bodies are never
mutated; only ``is_read`` changes.

Backends:
- InMemoryMessageLog: default when no database is configured
- SqlMessageLog: SQLAlchemy asyncio (DATABASE_URL)
- RedisMessageLog: one Redis list per room (MESSAGE_LOG_BACKEND=redis)

All history reads are chronological, oldest first; insertion order breaks
timestamp ties.
"""
import asyncio
import json
import logging
import uuid
from collections import defaultdict
from datetime import timezone
from typing import Dict, List, Optional, Protocol, Tuple

from redis.exceptions import WatchError
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.redis_client import RedisClient
from app.db.models import MessageRecord
from app.schemas.message import ChatMessage

logger = logging.getLogger(__name__)


class MessageLog(Protocol):
    async def append(self, room_id: str, message: ChatMessage) -> ChatMessage:
        """Persist a message and return it with its server-assigned id."""
        ...

    async def fetch_recent(self, room_id: str, limit: int) -> List[ChatMessage]:
        """Last ``limit`` messages, chronological."""
        ...

    async def fetch_page(self, room_id: str, page: int, limit: int) -> Tuple[List[ChatMessage], int]:
        """Page 1 is the newest ``limit`` messages; each page is chronological."""
        ...

    async def mark_read(self, room_id: str) -> int:
        ...

    async def rename_room(self, old_room_id: str, new_room_id: str) -> int:
        """Move history from a legacy room id to its normalised id."""
        ...


def _page_bounds(total: int, page: int, limit: int) -> Tuple[int, int]:
    """Slice bounds (oldest-first indexing) for newest-first pagination."""
    end = max(total - (page - 1) * limit, 0)
    start = max(end - limit, 0)
    return start, end


class InMemoryMessageLog:
    """Process-local message log. History is lost on restart."""

    def __init__(self):
        self._rooms: Dict[str, List[ChatMessage]] = defaultdict(list)
        self._lock = asyncio.Lock()

    def _ordered(self, room_id: str) -> List[ChatMessage]:
        # sorted() is stable, so insertion order breaks ties
        return sorted(self._rooms.get(room_id, []), key=lambda m: m.timestamp)

    async def append(self, room_id: str, message: ChatMessage) -> ChatMessage:
        persisted = message.model_copy(update={"id": uuid.uuid4().hex, "room_id": room_id})
        async with self._lock:
            self._rooms[room_id].append(persisted)
        return persisted

    async def fetch_recent(self, room_id: str, limit: int) -> List[ChatMessage]:
        if limit <= 0:
            return []
        return self._ordered(room_id)[-limit:]

    async def fetch_page(self, room_id: str, page: int, limit: int) -> Tuple[List[ChatMessage], int]:
        messages = self._ordered(room_id)
        start, end = _page_bounds(len(messages), page, limit)
        return messages[start:end], len(messages)

    async def mark_read(self, room_id: str) -> int:
        updated = 0
        async with self._lock:
            messages = self._rooms.get(room_id, [])
            for i, message in enumerate(messages):
                if not message.is_read:
                    messages[i] = message.model_copy(update={"is_read": True})
                    updated += 1
        return updated

    async def rename_room(self, old_room_id: str, new_room_id: str) -> int:
        async with self._lock:
            moved = self._rooms.pop(old_room_id, [])
            self._rooms[new_room_id].extend(
                m.model_copy(update={"room_id": new_room_id}) for m in moved
            )
        return len(moved)


def _record_to_message(record: MessageRecord) -> ChatMessage:
    timestamp = record.timestamp
    if timestamp is not None and timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return ChatMessage(
        id=record.id,
        room_id=record.room_id,
        sender_name=record.sender_name,
        sender_role=record.sender_role,
        body=record.body,
        timestamp=timestamp,
        is_read=record.is_read,
    )


class SqlMessageLog:
    """Message log backed by the ``messages`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, room_id: str, message: ChatMessage) -> ChatMessage:
        timestamp = message.timestamp.astimezone(timezone.utc).replace(tzinfo=None)
        record = MessageRecord(
            id=uuid.uuid4().hex,
            room_id=room_id,
            sender_name=message.sender_name,
            sender_role=message.sender_role,
            body=message.body,
            timestamp=timestamp,
            is_read=message.is_read,
        )
        async with self._session_factory() as db:
            db.add(record)
            await db.commit()
        return message.model_copy(update={"id": record.id, "room_id": room_id})

    async def fetch_recent(self, room_id: str, limit: int) -> List[ChatMessage]:
        messages, _ = await self.fetch_page(room_id, page=1, limit=limit)
        return messages

    async def fetch_page(self, room_id: str, page: int, limit: int) -> Tuple[List[ChatMessage], int]:
        async with self._session_factory() as db:
            total = await db.scalar(
                select(func.count()).select_from(MessageRecord).where(MessageRecord.room_id == room_id)
            )
            result = await db.execute(
                select(MessageRecord)
                .where(MessageRecord.room_id == room_id)
                .order_by(MessageRecord.timestamp.desc(), MessageRecord.seq.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            records = list(result.scalars().all())
        records.reverse()  # chronological
        return [_record_to_message(r) for r in records], int(total or 0)

    async def mark_read(self, room_id: str) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                update(MessageRecord)
                .where(MessageRecord.room_id == room_id, MessageRecord.is_read.is_(False))
                .values(is_read=True)
            )
            await db.commit()
        return result.rowcount or 0

    async def rename_room(self, old_room_id: str, new_room_id: str) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                update(MessageRecord)
                .where(MessageRecord.room_id == old_room_id)
                .values(room_id=new_room_id)
            )
            await db.commit()
        return result.rowcount or 0


class RedisMessageLog:
    """
    Message log backed by one Redis list per room (RPUSH on append).

    Server-assigned timestamps are monotonic per process, so list order is
    chronological order.
    """

    KEY_PREFIX = "chat:messages:"

    def __init__(self, redis_client: RedisClient):
        self._redis = redis_client

    def _key(self, room_id: str) -> str:
        return f"{self.KEY_PREFIX}{room_id}"

    @staticmethod
    def _decode(raw: str) -> Optional[ChatMessage]:
        try:
            return ChatMessage.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Skipping unreadable message entry: {e}")
            return None

    async def append(self, room_id: str, message: ChatMessage) -> ChatMessage:
        persisted = message.model_copy(update={"id": uuid.uuid4().hex, "room_id": room_id})
        await self._redis.client.rpush(self._key(room_id), persisted.model_dump_json())
        return persisted

    async def fetch_recent(self, room_id: str, limit: int) -> List[ChatMessage]:
        if limit <= 0:
            return []
        raw = await self._redis.client.lrange(self._key(room_id), -limit, -1)
        return [m for m in (self._decode(r) for r in raw) if m is not None]

    async def fetch_page(self, room_id: str, page: int, limit: int) -> Tuple[List[ChatMessage], int]:
        client = self._redis.client
        total = await client.llen(self._key(room_id))
        start, end = _page_bounds(total, page, limit)
        if end <= start:
            return [], total
        raw = await client.lrange(self._key(room_id), start, end - 1)
        return [m for m in (self._decode(r) for r in raw) if m is not None], total

    async def mark_read(self, room_id: str) -> int:
        client = self._redis.client
        key = self._key(room_id)
        raw_entries = await client.lrange(key, 0, -1)
        updated = 0
        for index, raw in enumerate(raw_entries):
            message = self._decode(raw)
            if message is None or message.is_read:
                continue
            await client.lset(key, index, message.model_copy(update={"is_read": True}).model_dump_json())
            updated += 1
        return updated

    async def rename_room(self, old_room_id: str, new_room_id: str) -> int:
        """
        Merge a legacy room's list into the normalised key by timestamp.

        Both keys are WATCHed and rewritten in one MULTI, retrying if either
        changes underneath.
        """
        old_key, new_key = self._key(old_room_id), self._key(new_room_id)
        async with self._redis.client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(old_key, new_key)
                    legacy_raw = await pipe.lrange(old_key, 0, -1)
                    if not legacy_raw:
                        await pipe.unwatch()
                        return 0
                    current_raw = await pipe.lrange(new_key, 0, -1)

                    legacy = [m for m in (self._decode(r) for r in legacy_raw) if m is not None]
                    current = [m for m in (self._decode(r) for r in current_raw) if m is not None]
                    merged = [m.model_copy(update={"room_id": new_room_id}) for m in legacy] + current
                    # Stable sort: legacy entries stay first on equal timestamps
                    merged.sort(key=lambda m: m.timestamp)

                    pipe.multi()
                    pipe.delete(old_key, new_key)
                    if merged:
                        pipe.rpush(new_key, *(m.model_dump_json() for m in merged))
                    await pipe.execute()
                    return len(legacy)
                except WatchError:
                    logger.info(f"Room {old_room_id} or {new_room_id} changed during merge; retrying")

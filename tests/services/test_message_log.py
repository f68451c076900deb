"""
Unit tests for the message log backends
"""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.schemas.message import ChatMessage
from app.services.message_log import InMemoryMessageLog, RedisMessageLog, _page_bounds

ROOM = "s1_v1"
BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _message(body: str, offset: int = 0, room_id: str = ROOM) -> ChatMessage:
    return ChatMessage(
        room_id=room_id,
        sender_name="Asha",
        sender_role="vendor",
        body=body,
        timestamp=BASE_TIME + timedelta(seconds=offset),
    )


async def _fill(log, count: int, room_id: str = ROOM) -> None:
    for i in range(count):
        await log.append(room_id, _message(f"m{i}", offset=i, room_id=room_id))


class TestPageBounds:
    def test_first_page_is_newest(self):
        assert _page_bounds(120, 1, 50) == (70, 120)

    def test_last_partial_page(self):
        assert _page_bounds(120, 3, 50) == (0, 20)

    def test_past_the_end(self):
        assert _page_bounds(10, 5, 50) == (0, 0)


class TestInMemoryMessageLog:
    """Tests for the process-local backend"""

    @pytest.mark.asyncio
    async def test_append_assigns_id(self):
        log = InMemoryMessageLog()

        stored = await log.append(ROOM, _message("Hello"))

        assert stored.id
        assert stored.room_id == ROOM
        assert stored.body == "Hello"

    @pytest.mark.asyncio
    async def test_fetch_recent_is_bounded_and_chronological(self):
        log = InMemoryMessageLog()
        await _fill(log, 60)

        recent = await log.fetch_recent(ROOM, 50)

        assert len(recent) == 50
        assert [m.body for m in recent[:2]] == ["m10", "m11"]
        assert recent[-1].body == "m59"

    @pytest.mark.asyncio
    async def test_equal_timestamps_keep_insertion_order(self):
        log = InMemoryMessageLog()
        for body in ("a", "b", "c"):
            await log.append(ROOM, _message(body, offset=0))

        assert [m.body for m in await log.fetch_recent(ROOM, 10)] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_rooms_are_isolated(self):
        log = InMemoryMessageLog()
        await log.append(ROOM, _message("mine"))
        await log.append("other_room", _message("theirs", room_id="other_room"))

        assert [m.body for m in await log.fetch_recent(ROOM, 10)] == ["mine"]

    @pytest.mark.asyncio
    async def test_fetch_page(self):
        log = InMemoryMessageLog()
        await _fill(log, 25)

        page1, total = await log.fetch_page(ROOM, page=1, limit=10)
        page3, _ = await log.fetch_page(ROOM, page=3, limit=10)

        assert total == 25
        assert [m.body for m in page1] == [f"m{i}" for i in range(15, 25)]
        assert [m.body for m in page3] == [f"m{i}" for i in range(0, 5)]

    @pytest.mark.asyncio
    async def test_mark_read_counts_only_unread(self):
        log = InMemoryMessageLog()
        await _fill(log, 3)

        assert await log.mark_read(ROOM) == 3
        assert await log.mark_read(ROOM) == 0
        assert all(m.is_read for m in await log.fetch_recent(ROOM, 10))

    @pytest.mark.asyncio
    async def test_rename_room_merges_history(self):
        log = InMemoryMessageLog()
        await log.append("s1_v1_1700000000000", _message("old", offset=0, room_id="s1_v1_1700000000000"))
        await log.append(ROOM, _message("new", offset=1))

        moved = await log.rename_room("s1_v1_1700000000000", ROOM)

        assert moved == 1
        merged = await log.fetch_recent(ROOM, 10)
        assert [m.body for m in merged] == ["old", "new"]
        assert all(m.room_id == ROOM for m in merged)
        assert await log.fetch_recent("s1_v1_1700000000000", 10) == []


class TestRedisMessageLog:
    """Tests for the Redis list backend against a mocked client"""

    @pytest.fixture
    def redis_conn(self):
        conn = MagicMock()
        conn.rpush = AsyncMock(return_value=1)
        conn.lrange = AsyncMock(return_value=[])
        conn.llen = AsyncMock(return_value=0)
        conn.lset = AsyncMock(return_value=True)
        conn.delete = AsyncMock(return_value=1)
        return conn

    @pytest.fixture
    def log(self, redis_conn):
        client = MagicMock()
        client.client = redis_conn
        return RedisMessageLog(client)

    @pytest.mark.asyncio
    async def test_append_pushes_json(self, log, redis_conn):
        stored = await log.append(ROOM, _message("Hello"))

        key, raw = redis_conn.rpush.call_args.args
        assert key == "chat:messages:s1_v1"
        assert json.loads(raw)["id"] == stored.id

    @pytest.mark.asyncio
    async def test_fetch_recent_reads_list_tail(self, log, redis_conn):
        redis_conn.lrange.return_value = [_message("Hello").model_dump_json()]

        recent = await log.fetch_recent(ROOM, 50)

        redis_conn.lrange.assert_awaited_once_with("chat:messages:s1_v1", -50, -1)
        assert [m.body for m in recent] == ["Hello"]

    @pytest.mark.asyncio
    async def test_unreadable_entries_are_skipped(self, log, redis_conn):
        redis_conn.lrange.return_value = ["not json", _message("ok").model_dump_json()]

        assert [m.body for m in await log.fetch_recent(ROOM, 50)] == ["ok"]

    @pytest.mark.asyncio
    async def test_fetch_page_uses_bounds(self, log, redis_conn):
        redis_conn.llen.return_value = 25

        _, total = await log.fetch_page(ROOM, page=1, limit=10)

        assert total == 25
        redis_conn.lrange.assert_awaited_once_with("chat:messages:s1_v1", 15, 24)

    @pytest.mark.asyncio
    async def test_mark_read_rewrites_unread_entries(self, log, redis_conn):
        read = _message("seen").model_copy(update={"is_read": True})
        redis_conn.lrange.return_value = [read.model_dump_json(), _message("new").model_dump_json()]

        assert await log.mark_read(ROOM) == 1
        index = redis_conn.lset.call_args.args[1]
        assert index == 1

    @pytest.mark.asyncio
    async def test_rename_room_merges_by_timestamp(self, log, redis_conn):
        legacy_key = "chat:messages:s1_v1_1700000000000"
        old = _message("old", offset=0, room_id="s1_v1_1700000000000")
        new = _message("new", offset=86400)

        pipe = MagicMock()
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=False)
        pipe.watch = AsyncMock()
        pipe.lrange = AsyncMock(side_effect=[[old.model_dump_json()], [new.model_dump_json()]])
        pipe.execute = AsyncMock(return_value=[2, 2])
        redis_conn.pipeline = MagicMock(return_value=pipe)

        moved = await log.rename_room("s1_v1_1700000000000", ROOM)

        assert moved == 1
        pipe.watch.assert_awaited_once_with(legacy_key, "chat:messages:s1_v1")
        pipe.multi.assert_called_once()
        pipe.delete.assert_called_once_with(legacy_key, "chat:messages:s1_v1")
        key, *entries = pipe.rpush.call_args.args
        assert key == "chat:messages:s1_v1"
        merged = [json.loads(e) for e in entries]
        assert [m["body"] for m in merged] == ["old", "new"]
        assert all(m["room_id"] == ROOM for m in merged)
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rename_room_without_legacy_entries_is_noop(self, log, redis_conn):
        pipe = MagicMock()
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=False)
        pipe.watch = AsyncMock()
        pipe.unwatch = AsyncMock()
        pipe.lrange = AsyncMock(return_value=[])
        pipe.execute = AsyncMock()
        redis_conn.pipeline = MagicMock(return_value=pipe)

        assert await log.rename_room("s1_v1_1700000000000", ROOM) == 0
        pipe.execute.assert_not_awaited()

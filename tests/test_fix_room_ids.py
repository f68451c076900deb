"""
Tests for the legacy room id migration
"""
import pytest

from app.schemas.message import ChatMessage
from app.schemas.order import Order
from app.scripts.fix_room_ids import fix_room_ids
from app.services.message_log import InMemoryMessageLog
from app.services.order_store import InMemoryOrderStore

LEGACY_ROOM = "V_S_1700000000000"


@pytest.mark.asyncio
async def test_orders_and_history_move_to_derived_room():
    store = InMemoryOrderStore()
    log = InMemoryMessageLog()
    await store._insert(Order(id="o1", vendor_id="V", supplier_id="S", inventory_item_id="i1", room_id=LEGACY_ROOM))
    await log.append(LEGACY_ROOM, ChatMessage(room_id=LEGACY_ROOM, sender_name="Asha", sender_role="vendor", body="old"))

    result = await fix_room_ids(store, log)

    assert result == {"rooms": 1, "messages": 1}
    assert (await store.get("o1")).room_id == "S_V"
    assert [m.body for m in await log.fetch_recent("S_V", 50)] == ["old"]


@pytest.mark.asyncio
async def test_already_normal_ids_are_untouched():
    store = InMemoryOrderStore()
    log = InMemoryMessageLog()
    await store.create_request("V", "S", "i1")

    assert await fix_room_ids(store, log) == {"rooms": 0, "messages": 0}

"""
Unit tests for the Order Store
"""
import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.db.models import OrderRecord
from app.schemas.order import Order
from app.services.order_store import InMemoryOrderStore, SqlOrderStore, closure_payload


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


class TestCreateRequest:
    """Tests for request creation"""

    @pytest.mark.asyncio
    async def test_room_id_is_derived_from_parties(self, store):
        order, created = await store.create_request("V", "S", "item-1")

        assert created is True
        assert order.room_id == "S_V"
        assert order.status == "pending"

    @pytest.mark.asyncio
    async def test_repeat_request_returns_existing(self, store):
        first, _ = await store.create_request("V", "S", "item-1")
        second, created = await store.create_request("V", "S", "item-1")

        assert created is False
        assert second.id == first.id

    @pytest.mark.asyncio
    async def test_different_item_shares_room(self, store):
        a, _ = await store.create_request("V", "S", "item-1")
        b, created = await store.create_request("V", "S", "item-2")

        assert created is True
        assert a.id != b.id
        assert a.room_id == b.room_id

    @pytest.mark.asyncio
    async def test_legacy_client_room_id_is_accepted(self, store):
        order, _ = await store.create_request("V", "S", "item-1", room_id="S_V_1700000000000")

        assert order.room_id == "S_V"

    @pytest.mark.asyncio
    async def test_mismatched_room_id_is_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.create_request("V", "S", "item-1", room_id="X_V")

    @pytest.mark.asyncio
    async def test_created_signal_only_for_new_orders(self, store):
        callback = AsyncMock()
        store.subscribe_created(callback)

        order, _ = await store.create_request("V", "S", "item-1", vendor_name="Asha", item_name="Onions")
        await store.create_request("V", "S", "item-1")

        callback.assert_awaited_once()
        room_id, payload = callback.call_args.args
        assert room_id == "S_V"
        assert payload["supplier_id"] == "S"
        assert payload["order"]["id"] == order.id
        assert payload["message"] == "New purchase request from Asha for Onions"

    @pytest.mark.asyncio
    async def test_concurrent_requests_create_one_order(self, store):
        callback = AsyncMock()
        store.subscribe_created(callback)

        results = await asyncio.gather(*[store.create_request("V", "S", "item-1") for _ in range(5)])

        assert sum(created for _, created in results) == 1
        assert len({order.id for order, _ in results}) == 1
        callback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_fail_create(self, store):
        store.subscribe_created(AsyncMock(side_effect=RuntimeError("boom")))

        order, created = await store.create_request("V", "S", "item-1")

        assert created is True
        assert await store.get(order.id) is not None


class TestDeleteRequest:
    """Tests for supplier deletion"""

    @pytest.mark.asyncio
    async def test_supplier_deletes_and_room_is_signalled(self, store):
        callback = AsyncMock()
        store.subscribe_deleted(callback)
        order, _ = await store.create_request("V", "S", "item-1", item_name="Onions")

        await store.delete_request(order.id, "S")

        assert await store.get(order.id) is None
        room_id, payload = callback.call_args.args
        assert room_id == "S_V"
        assert payload["closed_by"] == "S"
        assert payload["order_id"] == order.id
        assert payload["message"] == "The supplier has closed this chat for Onions"

    @pytest.mark.asyncio
    async def test_vendor_cannot_delete(self, store):
        callback = AsyncMock()
        store.subscribe_deleted(callback)
        order, _ = await store.create_request("V", "S", "item-1")

        with pytest.raises(PermissionDeniedError):
            await store.delete_request(order.id, "V")

        assert await store.get(order.id) is not None
        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_order(self, store):
        with pytest.raises(NotFoundError):
            await store.delete_request("missing", "S")

    @pytest.mark.asyncio
    async def test_request_again_after_delete_reuses_room(self, store):
        order, _ = await store.create_request("V", "S", "item-1")
        await store.delete_request(order.id, "S")

        again, created = await store.create_request("V", "S", "item-1")

        assert created is True
        assert again.id != order.id
        assert again.room_id == order.room_id


class TestListing:
    @pytest.mark.asyncio
    async def test_list_by_role(self, store):
        await store.create_request("V", "S", "item-1")
        await store.create_request("V", "S2", "item-1")

        assert len(await store.list_for_user("V")) == 2
        assert len(await store.list_for_user("V", role="vendor")) == 2
        assert len(await store.list_for_user("V", role="supplier")) == 0
        assert len(await store.list_for_user("S2", role="supplier")) == 1


class TestLegacyRoomIds:
    @pytest.mark.asyncio
    async def test_normalize_rewrites_suffixed_ids(self, store):
        legacy = Order(
            id="o1",
            vendor_id="V",
            supplier_id="S",
            inventory_item_id="item-1",
            room_id="V_S_1700000000000",
        )
        await store._insert(legacy)
        current, _ = await store.create_request("V2", "S", "item-1")

        renamed = await store.normalize_legacy_room_ids()

        assert renamed == {"V_S_1700000000000": "S_V"}
        assert (await store.get("o1")).room_id == "S_V"
        assert (await store.get(current.id)).room_id == current.room_id


def test_closure_payload_without_item_name():
    order = Order(id="o1", vendor_id="V", supplier_id="S", inventory_item_id="i1", room_id="S_V")

    payload = closure_payload(order)

    assert payload["message"] == "The supplier has closed this chat for this item"
    assert payload["inventory_item"] == {"id": "i1", "item_name": None}


class TestSqlOrderStoreRace:
    """The SQL store against a mocked session that loses an insert race"""

    @staticmethod
    def _result(record):
        result = MagicMock()
        result.scalars.return_value.first.return_value = record
        return result

    @pytest.mark.asyncio
    async def test_unique_violation_returns_winning_order(self):
        winner = OrderRecord(
            id="winner",
            vendor_id="V",
            supplier_id="S",
            inventory_item_id="item-1",
            room_id="S_V",
            status="pending",
            created_at=datetime(2025, 1, 1),
        )
        db = MagicMock()
        db.execute = AsyncMock(side_effect=[self._result(None), self._result(winner)])
        db.commit = AsyncMock(side_effect=IntegrityError("INSERT INTO orders", {}, Exception("duplicate key")))
        db.rollback = AsyncMock()
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=db)
        session_cm.__aexit__ = AsyncMock(return_value=False)
        store = SqlOrderStore(MagicMock(return_value=session_cm))
        callback = AsyncMock()
        store.subscribe_created(callback)

        order, created = await store.create_request("V", "S", "item-1")

        assert created is False
        assert order.id == "winner"
        db.rollback.assert_awaited_once()
        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_existing_active_order_skips_insert(self):
        existing = OrderRecord(
            id="o1",
            vendor_id="V",
            supplier_id="S",
            inventory_item_id="item-1",
            room_id="S_V",
            status="pending",
            created_at=datetime(2025, 1, 1),
        )
        db = MagicMock()
        db.execute = AsyncMock(return_value=self._result(existing))
        db.commit = AsyncMock()
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=db)
        session_cm.__aexit__ = AsyncMock(return_value=False)
        store = SqlOrderStore(MagicMock(return_value=session_cm))

        order, created = await store.create_request("V", "S", "item-1")

        assert (order.id, created) == ("o1", False)
        db.add.assert_not_called()
        db.commit.assert_not_awaited()

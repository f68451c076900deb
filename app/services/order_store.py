"""
Order Store

Durable record of purchase requests. Besides CRUD it raises two lifecycle
signals that drive chat rooms:

- created(room_id, payload): a new request was stored (not raised for an
  idempotent re-request that returned an existing order)
- deleted(room_id, payload): a supplier deleted a request

Subscribers register callbacks; the store never reaches into chat state.
"""
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy import delete, select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.chat.room_identity import derive_room_identity, normalize_room_identity
from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.db.models import OrderRecord
from app.schemas.order import Order, OrderStatus

logger = logging.getLogger(__name__)

RequestCallback = Callable[[str, Dict[str, Any]], Awaitable[None]]


def closure_payload(order: Order) -> Dict[str, Any]:
    """Reason payload sent with chat_closed so clients can offer 'request again'."""
    item_name = order.item_name or "this item"
    return {
        "message": f"The supplier has closed this chat for {item_name}",
        "order_id": order.id,
        "inventory_item": {"id": order.inventory_item_id, "item_name": order.item_name},
        "supplier_id": order.supplier_id,
        "vendor_id": order.vendor_id,
    }


def creation_payload(order: Order) -> Dict[str, Any]:
    vendor = order.vendor_name or "a vendor"
    item = order.item_name or order.inventory_item_id
    return {
        "order": order.model_dump(mode="json"),
        "supplier_id": order.supplier_id,
        "message": f"New purchase request from {vendor} for {item}",
    }


class OrderStore:
    """Shared request lifecycle logic; subclasses provide storage."""

    def __init__(self):
        self._created_callbacks: List[RequestCallback] = []
        self._deleted_callbacks: List[RequestCallback] = []

    # ==================== Subscriptions ====================

    def subscribe_created(self, callback: RequestCallback) -> None:
        self._created_callbacks.append(callback)

    def subscribe_deleted(self, callback: RequestCallback) -> None:
        self._deleted_callbacks.append(callback)

    async def _emit(self, callbacks: List[RequestCallback], room_id: str, payload: Dict[str, Any]) -> None:
        # The order mutation is already committed; a failing subscriber is logged, not raised
        for callback in callbacks:
            try:
                await callback(room_id, payload)
            except Exception as e:
                logger.error(f"Order lifecycle subscriber failed for room {room_id}: {e}", exc_info=True)

    # ==================== Lifecycle ====================

    async def create_request(
        self,
        vendor_id: str,
        supplier_id: str,
        inventory_item_id: str,
        room_id: Optional[str] = None,
        vendor_name: Optional[str] = None,
        item_name: Optional[str] = None,
    ) -> Tuple[Order, bool]:
        """
        Create a purchase request, or return the existing non-closed one.

        Args:
            room_id: Optional client-computed room id; must normalise to the
                identity derived from the two parties

        Returns:
            (order, created) - created is False for an idempotent re-request
        """
        derived = derive_room_identity(vendor_id, supplier_id)
        if room_id and normalize_room_identity(room_id) != derived:
            raise ValidationError("Chat room ID does not match vendor and supplier", field="room_id")

        order = Order(
            id=uuid.uuid4().hex,
            vendor_id=vendor_id,
            supplier_id=supplier_id,
            inventory_item_id=inventory_item_id,
            room_id=derived,
            status=OrderStatus.PENDING,
            vendor_name=vendor_name,
            item_name=item_name,
        )
        order, created = await self._insert_unless_active(order)
        if not created:
            logger.info(f"Request already exists: order={order.id} room={order.room_id}")
            return order, False
        logger.info(f"Created order {order.id} in room {order.room_id}")

        await self._emit(self._created_callbacks, order.room_id, creation_payload(order))
        return order, True

    async def delete_request(self, order_id: str, actor_id: str) -> Order:
        """
        Delete a request. Only the supplier on the order may do this.

        Raises:
            NotFoundError: Unknown order
            PermissionDeniedError: Actor is not the order's supplier
        """
        order = await self.get(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        if order.supplier_id != actor_id:
            raise PermissionDeniedError(
                "Access denied. Only the supplier can delete this order.",
                details={"order_id": order_id},
            )

        await self._remove(order_id)
        logger.info(f"Deleted order {order_id}; closing room {order.room_id}")

        payload = closure_payload(order)
        payload["closed_by"] = actor_id
        await self._emit(self._deleted_callbacks, order.room_id, payload)
        return order

    # ==================== Storage hooks ====================

    async def get(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError

    async def list_for_user(self, user_id: str, role: Optional[str] = None) -> List[Order]:
        """Orders where the user is vendor or supplier (or only ``role``), newest first."""
        raise NotImplementedError

    async def normalize_legacy_room_ids(self) -> Dict[str, str]:
        """
        Rewrite every order's room id to the derived identity.

        Returns:
            Mapping of old room id -> new room id for each rewritten order
        """
        raise NotImplementedError

    async def _insert_unless_active(self, order: Order) -> Tuple[Order, bool]:
        """
        Store ``order`` unless a non-closed order exists for the same
        (vendor, supplier, item). Check and insert must be atomic.

        Returns:
            (stored or existing order, created)
        """
        raise NotImplementedError

    async def _remove(self, order_id: str) -> None:
        raise NotImplementedError


def _matches_role(order: Order, user_id: str, role: Optional[str]) -> bool:
    if role == "vendor":
        return order.vendor_id == user_id
    if role == "supplier":
        return order.supplier_id == user_id
    return user_id in (order.vendor_id, order.supplier_id)


class InMemoryOrderStore(OrderStore):
    def __init__(self):
        super().__init__()
        self._orders: Dict[str, Order] = {}

    async def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    async def list_for_user(self, user_id: str, role: Optional[str] = None) -> List[Order]:
        orders = [o for o in self._orders.values() if _matches_role(o, user_id, role)]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def normalize_legacy_room_ids(self) -> Dict[str, str]:
        renamed: Dict[str, str] = {}
        for order_id, order in list(self._orders.items()):
            derived = derive_room_identity(order.vendor_id, order.supplier_id)
            if order.room_id != derived:
                renamed[order.room_id] = derived
                self._orders[order_id] = order.model_copy(update={"room_id": derived})
        return renamed

    def _find_active(self, order: Order) -> Optional[Order]:
        for existing in self._orders.values():
            if (
                existing.vendor_id == order.vendor_id
                and existing.supplier_id == order.supplier_id
                and existing.inventory_item_id == order.inventory_item_id
                and existing.status != OrderStatus.CLOSED.value
            ):
                return existing
        return None

    async def _insert_unless_active(self, order: Order) -> Tuple[Order, bool]:
        # No await between lookup and insert, so this is atomic on the event loop
        existing = self._find_active(order)
        if existing is not None:
            return existing, False
        await self._insert(order)
        return order, True

    async def _insert(self, order: Order) -> Order:
        self._orders[order.id] = order
        return order

    async def _remove(self, order_id: str) -> None:
        self._orders.pop(order_id, None)


def _to_record(order: Order) -> OrderRecord:
    return OrderRecord(
        id=order.id,
        vendor_id=order.vendor_id,
        supplier_id=order.supplier_id,
        inventory_item_id=order.inventory_item_id,
        room_id=order.room_id,
        status=order.status,
        created_at=order.created_at.replace(tzinfo=None),
        vendor_name=order.vendor_name,
        item_name=order.item_name,
    )


class SqlOrderStore(OrderStore):
    """Order store backed by the ``orders`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__()
        self._session_factory = session_factory

    async def get(self, order_id: str) -> Optional[Order]:
        async with self._session_factory() as db:
            record = await db.get(OrderRecord, order_id)
            return Order.model_validate(record) if record else None

    async def list_for_user(self, user_id: str, role: Optional[str] = None) -> List[Order]:
        if role == "vendor":
            condition = OrderRecord.vendor_id == user_id
        elif role == "supplier":
            condition = OrderRecord.supplier_id == user_id
        else:
            condition = or_(OrderRecord.vendor_id == user_id, OrderRecord.supplier_id == user_id)

        async with self._session_factory() as db:
            result = await db.execute(
                select(OrderRecord).where(condition).order_by(OrderRecord.created_at.desc())
            )
            return [Order.model_validate(r) for r in result.scalars().all()]

    async def normalize_legacy_room_ids(self) -> Dict[str, str]:
        renamed: Dict[str, str] = {}
        async with self._session_factory() as db:
            result = await db.execute(select(OrderRecord))
            for record in result.scalars().all():
                derived = derive_room_identity(record.vendor_id, record.supplier_id)
                if record.room_id != derived:
                    logger.info(f"Updating order {record.id}: {record.room_id} -> {derived}")
                    renamed[record.room_id] = derived
                    record.room_id = derived
            await db.commit()
        return renamed

    @staticmethod
    async def _select_active(db: AsyncSession, order: Order) -> Optional[Order]:
        result = await db.execute(
            select(OrderRecord).where(
                OrderRecord.vendor_id == order.vendor_id,
                OrderRecord.supplier_id == order.supplier_id,
                OrderRecord.inventory_item_id == order.inventory_item_id,
                OrderRecord.status != OrderStatus.CLOSED.value,
            ).limit(1)
        )
        record = result.scalars().first()
        return Order.model_validate(record) if record else None

    async def _insert_unless_active(self, order: Order) -> Tuple[Order, bool]:
        """
        Lookup and insert share one transaction; the partial unique index
        ``uq_order_active_request`` settles concurrent inserts.
        """
        async with self._session_factory() as db:
            existing = await self._select_active(db, order)
            if existing is not None:
                return existing, False

            db.add(_to_record(order))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                existing = await self._select_active(db, order)
                if existing is None:
                    raise
                logger.info(f"Concurrent request for order {existing.id} won the insert")
                return existing, False
        return order, True

    async def _remove(self, order_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(delete(OrderRecord).where(OrderRecord.id == order_id))
            await db.commit()

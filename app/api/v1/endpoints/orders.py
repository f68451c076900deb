"""
Orders API Endpoints

Purchase requests between vendors and suppliers. Creating and deleting a
request drives the chat room lifecycle through the order store's signals.
"""
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_current_user, get_order_store
from app.schemas.order import (
    OrderCreate,
    OrderCreateResponse,
    OrderDeleteResponse,
    OrderList,
)
from app.schemas.token import TokenPayload
from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=OrderList)
async def list_my_orders(
    user: TokenPayload = Depends(get_current_user),
    store: OrderStore = Depends(get_order_store),
):
    """All orders where the caller is the vendor or the supplier, newest first."""
    return OrderList(orders=await store.list_for_user(user.user_id))


@router.post("", response_model=OrderCreateResponse, status_code=201)
async def create_order(
    body: OrderCreate,
    user: TokenPayload = Depends(get_current_user),
    store: OrderStore = Depends(get_order_store),
):
    """
    Create a purchase request.

    Re-requesting the same (supplier, item) while a non-closed request exists
    returns that request with status 200 instead of creating a duplicate.
    """
    order, created = await store.create_request(
        vendor_id=user.user_id,
        supplier_id=body.supplier_id,
        inventory_item_id=body.inventory_item_id,
        room_id=body.room_id,
        vendor_name=body.vendor_name,
        item_name=body.item_name,
    )
    if not created:
        response = OrderCreateResponse(message="Request already exists", order=order, created=False)
        return JSONResponse(status_code=200, content=response.model_dump(mode="json"))
    return OrderCreateResponse(message="Request created", order=order, created=True)


@router.get("/supplier", response_model=OrderList)
async def list_supplier_orders(
    user: TokenPayload = Depends(get_current_user),
    store: OrderStore = Depends(get_order_store),
):
    return OrderList(orders=await store.list_for_user(user.user_id, role="supplier"))


@router.get("/vendor", response_model=OrderList)
async def list_vendor_orders(
    user: TokenPayload = Depends(get_current_user),
    store: OrderStore = Depends(get_order_store),
):
    return OrderList(orders=await store.list_for_user(user.user_id, role="vendor"))


@router.delete("/{order_id}", response_model=OrderDeleteResponse)
async def delete_order(
    order_id: str,
    user: TokenPayload = Depends(get_current_user),
    store: OrderStore = Depends(get_order_store),
):
    """Delete an order (supplier only). Closes the order's chat room."""
    await store.delete_request(order_id, actor_id=user.user_id)
    return OrderDeleteResponse()

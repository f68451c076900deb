from fastapi import APIRouter
from app.api.v1.endpoints import messages, orders, rooms, ws

api_router = APIRouter()
api_router.include_router(orders.router)
api_router.include_router(messages.router)
api_router.include_router(rooms.router)

# WebSocket routes are mounted without the /api/v1 prefix
ws_router = ws.router

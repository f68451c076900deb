"""
One-off migration: normalise timestamp-suffixed room ids.

Older orders stored "<a>_<b>_<epoch millis>" as their chat room, which broke
reopening the same room for a new request. Each order's room id is rewritten
to the identity derived from its vendor and supplier, and messages stored
under the old id are moved to the new one.

Usage:
    python -m app.scripts.fix_room_ids
"""
import asyncio
import logging
from typing import Dict

from app.core.config import get_settings
from app.core.runtime import build_runtime
from app.db import session as db_session
from app.services.message_log import MessageLog
from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)


async def fix_room_ids(order_store: OrderStore, message_log: MessageLog) -> Dict[str, int]:
    """
    Returns:
        {"rooms": <room ids rewritten>, "messages": <messages moved>}
    """
    renamed = await order_store.normalize_legacy_room_ids()
    logger.info(f"Found {len(renamed)} room id(s) to normalise")

    moved = 0
    for old_room_id, new_room_id in renamed.items():
        count = await message_log.rename_room(old_room_id, new_room_id)
        logger.info(f"Room {old_room_id} -> {new_room_id}: moved {count} message(s)")
        moved += count

    return {"rooms": len(renamed), "messages": moved}


async def main() -> None:
    settings = get_settings()
    if db_session.AsyncSessionLocal is None:
        logger.error("DATABASE_URL not configured; nothing to migrate")
        return

    runtime = build_runtime(settings, session_factory=db_session.AsyncSessionLocal)
    await runtime.start()
    try:
        result = await fix_room_ids(runtime.order_store, runtime.message_log)
        logger.info(f"All room ids have been fixed: {result}")
    finally:
        await runtime.stop()
        await db_session.dispose_engine()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(main())

from sqlalchemy import Column, String, Integer, Boolean, Text, TIMESTAMP, Index, text
from datetime import datetime, timezone
import uuid
from app.db.session import Base


def utc_now_naive():
    """Return current UTC time as naive datetime (for TIMESTAMP WITHOUT TIME ZONE)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


class OrderRecord(Base):
    """Purchase requests. The room_id is derived from (vendor_id, supplier_id)."""
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, default=new_id)
    vendor_id = Column(String(255), nullable=False)
    supplier_id = Column(String(255), nullable=False)
    inventory_item_id = Column(String(255), nullable=False)
    room_id = Column(String(512), nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    created_at = Column(TIMESTAMP, nullable=False, default=utc_now_naive)
    vendor_name = Column(String(255), nullable=True)
    item_name = Column(String(255), nullable=True)

    __table_args__ = (
        # At most one non-closed request per (vendor, supplier, item)
        Index(
            'uq_order_active_request',
            'vendor_id', 'supplier_id', 'inventory_item_id',
            unique=True,
            postgresql_where=text("status <> 'closed'"),
            sqlite_where=text("status <> 'closed'"),
        ),
        Index('idx_order_room', 'room_id'),
    )


class MessageRecord(Base):
    """Append-only chat log. ``seq`` breaks timestamp ties in insertion order."""
    __tablename__ = "messages"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), nullable=False, unique=True, default=new_id)
    room_id = Column(String(512), nullable=False)
    sender_name = Column(String(255), nullable=False)
    sender_role = Column(String(32), nullable=False)
    body = Column(Text, nullable=False)
    timestamp = Column(TIMESTAMP, nullable=False, default=utc_now_naive)
    is_read = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index('idx_message_room_time', 'room_id', 'timestamp'),
    )

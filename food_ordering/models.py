"""
SQLAlchemy Database Models

Orders and restaurants are stored as whole documents: scalar columns for
the fields that are filtered or sorted on, JSON columns for the nested
parts (line items, pricing, address, payment, timeline, menu).

Nested values are snapshots. An order copies its items, address and
pricing at placement time and never follows later menu edits.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    TypeDecorator,
)

from food_ordering.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always reads back in UTC.

    SQLite keeps no offset, so naive values coming back are taken as UTC.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    CASH = "cash"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REFUNDED = "refunded"


class TimelineTag(str, enum.Enum):
    """Timeline entries that record payment events rather than a status."""
    PAYMENT_UPDATED = "payment_updated"
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_CONFIRMED = "payment_confirmed"


class Restaurant(Base):
    """
    Restaurant with its embedded menu and operating hours.

    Menu items are dicts ``{id, name, description, price, category,
    is_available, preparation_time}``; ``operating_hours`` maps a weekday
    to ``{open, close, is_closed}``.
    """
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(120), nullable=False, unique=True, index=True)
    description = Column(String(500), nullable=True)
    cuisine = Column(JSON, nullable=False, default=list)
    menu = Column(JSON, nullable=False, default=list)
    operating_hours = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Restaurant #{self.id} - {self.slug}>"


class Order(Base):
    """
    Customer order.

    ``customer_id`` and ``restaurant_id`` are set once at creation.
    ``timeline`` is append-only: entries are ``{status, timestamp, note,
    updated_by}`` where ``status`` is an ``OrderStatus`` or ``TimelineTag``
    value and ``timestamp`` an ISO-8601 string.
    """
    __tablename__ = "orders"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(40), nullable=False, unique=True, index=True)

    # =========================================================================
    # PARTIES
    # =========================================================================
    customer_id = Column(String(64), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================
    items = Column(JSON, nullable=False)
    pricing = Column(JSON, nullable=False)
    delivery_address = Column(JSON, nullable=False)
    special_instructions = Column(Text, nullable=True)

    # =========================================================================
    # PAYMENT & STATUS
    # =========================================================================
    payment = Column(JSON, nullable=False)
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    timeline = Column(JSON, nullable=False, default=list)

    # =========================================================================
    # DELIVERY
    # =========================================================================
    estimated_delivery_time = Column(UTCDateTime, nullable=True)
    actual_delivery_time = Column(UTCDateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("ix_orders_customer_created", "customer_id", "created_at"),
    )

    def __repr__(self):
        return f"<Order {self.order_number} - {self.status.value}>"

import enum
import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey

from shared.config.database import Base
from shared.time_utils import utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    DELIVERED = "delivered"


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Display/reference identifier; the unique constraint backstops random collisions
    order_number = Column(String(20), nullable=False, unique=True, index=True)
    seller_id = Column(String(36), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    session_id = Column(String(36), nullable=True)  # live session the order came from

    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(10), nullable=False)
    customer_address = Column(String(500), nullable=False)

    # Snapshot of the product at creation time; immutable afterwards
    product_name = Column(String(200), nullable=False)
    product_price = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)  # product_price * quantity, server computed

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)

    # Google Sheets sync state
    synced = Column(Boolean, nullable=False, default=False, index=True)
    sync_retry_count = Column(Integer, nullable=False, default=0)
    external_row_number = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    # Left NULL until the row is first modified; the retry sweep uses it for backoff
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

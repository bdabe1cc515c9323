import uuid

from sqlalchemy import Column, Integer, String, DateTime

from shared.config.database import Base
from shared.time_utils import utcnow


class Product(Base):
    """Seller catalogue entry. Managed by the product CRUD endpoints; orders only read it."""
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Integer, nullable=False)  # whole currency units (DA)
    stock = Column(Integer, nullable=True)   # NULL = stock not tracked
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

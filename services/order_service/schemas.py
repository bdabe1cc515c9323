from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel


class OrderCreate(BaseModel):
    # Loosely typed on purpose: OrderService validates each field in a fixed
    # order and reports a distinct error for each failure.
    product_id: Optional[str] = None
    session_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    quantity: Optional[Any] = None


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    seller_id: str
    product_id: str
    session_id: Optional[str]
    customer_name: str
    customer_phone: str
    customer_address: str
    product_name: str
    product_price: int
    quantity: int
    total_price: int
    status: str
    synced: bool
    sync_retry_count: int
    external_row_number: Optional[int]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrderEnvelope(BaseModel):
    order: OrderResponse


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    hasMore: bool


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    pagination: Pagination

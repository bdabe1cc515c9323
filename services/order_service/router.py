from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.sheets_service.dependencies import get_sync_dispatcher
from shared.config import settings
from shared.config.database import get_db
from shared.security import get_current_seller, limiter

from .schemas import OrderCreate, OrderEnvelope, OrderListResponse, OrderStatusUpdate
from .service import OrderService

# Widget checkout: anonymous, rate limited per client IP
public_router = APIRouter(prefix="/api/orders", tags=["Orders"])

# Seller dashboard: every route requires the seller's bearer token
router = APIRouter(prefix="/api/orders", tags=["Orders"])


@public_router.post("", response_model=OrderEnvelope, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.ORDER_RATE_LIMIT)
async def create_order(
    request: Request,                          # REQUIRED: slowapi reads the client IP from it
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
    sync_dispatcher=Depends(get_sync_dispatcher),
):
    order = await OrderService.create_order(db, payload, sync_dispatcher)
    return {"order": order}


@router.get("", response_model=OrderListResponse)
async def list_orders(
    limit: int | None = Query(default=None, ge=1),
    offset: int | None = Query(default=None, ge=0),
    seller_id: str = Depends(get_current_seller),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_orders(db, seller_id, limit, offset)


@router.get("/{order_id}", response_model=OrderEnvelope)
async def get_order(
    order_id: str,
    seller_id: str = Depends(get_current_seller),
    db: AsyncSession = Depends(get_db),
):
    return {"order": await OrderService.get_order(db, seller_id, order_id)}


@router.put("/{order_id}/status", response_model=OrderEnvelope)
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    seller_id: str = Depends(get_current_seller),
    db: AsyncSession = Depends(get_db),
):
    return {"order": await OrderService.update_status(db, seller_id, order_id, payload)}

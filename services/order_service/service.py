import secrets

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.product_service.repository import ProductRepository
from shared.errors import NotFoundError, StorageError, ValidationError
from shared.observability import livey_orders_created_total
from shared.time_utils import utcnow

from .models import Order, OrderStatus
from .repository import OrderRepository
from .schemas import OrderCreate, OrderStatusUpdate
from .validation import (
    MAX_ADDRESS_LENGTH,
    MAX_NAME_LENGTH,
    is_valid_phone,
    normalize_phone,
    parse_quantity,
    sanitize_text,
)

logger = structlog.get_logger(__name__)

# Inserts retried when the random order number collides with an existing one
ORDER_NUMBER_ATTEMPTS = 3
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50


def generate_order_number() -> str:
    """ORD-YYYYMMDD-xxxx: UTC date plus 2 random bytes. No counter, no DB round-trip."""
    return f"ORD-{utcnow():%Y%m%d}-{secrets.token_hex(2)}"


class OrderService:
    @staticmethod
    async def create_order(db: AsyncSession, data: OrderCreate, sync_dispatcher=None) -> Order:
        # 1. Required fields
        customer_name = sanitize_text(data.customer_name or "")
        customer_phone = (data.customer_phone or "").strip()
        customer_address = sanitize_text(data.customer_address or "")
        product_id = (data.product_id or "").strip()
        if not (product_id and customer_name and customer_phone and customer_address):
            raise ValidationError(
                "Missing required fields: product_id, customer_name, customer_phone, customer_address",
                code="missing_fields",
            )

        # 2. Quantity
        quantity = parse_quantity(data.quantity)
        if quantity is None:
            raise ValidationError("Quantity must be a positive integer", code="invalid_quantity")

        # 3. Lengths
        if len(customer_name) > MAX_NAME_LENGTH:
            raise ValidationError(
                f"Customer name must be {MAX_NAME_LENGTH} characters or less", code="name_too_long"
            )
        if len(customer_address) > MAX_ADDRESS_LENGTH:
            raise ValidationError(
                f"Customer address must be {MAX_ADDRESS_LENGTH} characters or less", code="address_too_long"
            )

        # 4. Phone
        phone = normalize_phone(customer_phone)
        if not is_valid_phone(phone):
            raise ValidationError(
                "Invalid phone number. Must be 10 digits starting with 05, 06, or 07",
                code="invalid_phone",
            )

        # 5. Product snapshot
        try:
            product = await ProductRepository.get_available_product(db, product_id)
        except SQLAlchemyError as e:
            raise StorageError("Failed to load product") from e
        if not product:
            raise NotFoundError("Product not found or no longer available", code="product_not_found")

        # Plain values: a rollback below expires the ORM instance
        seller_id, product_name, unit_price = product.seller_id, product.name, product.price
        stock_tracked = product.stock is not None

        # Server-side price, never trust the client
        total_price = unit_price * quantity

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order_number = generate_order_number()
            order = Order(
                order_number=order_number,
                session_id=data.session_id or None,
                product_id=product_id,
                seller_id=seller_id,
                customer_name=customer_name,
                customer_phone=phone,
                customer_address=customer_address,
                product_name=product_name,
                product_price=unit_price,
                quantity=quantity,
                total_price=total_price,
                status=OrderStatus.PENDING.value,
            )
            try:
                if stock_tracked:
                    await OrderService._decrement_stock(db, product_id, quantity)
                order = await OrderRepository.create_order(db, order)
                break
            except IntegrityError as e:
                await db.rollback()
                logger.warning("order_number_collision", order_number=order_number, attempt=attempt)
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    logger.error("create_order_failed", product_id=product_id, seller_id=seller_id)
                    raise StorageError("Failed to create order") from e
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("create_order_failed", product_id=product_id,
                             seller_id=seller_id, error=str(e))
                raise StorageError("Failed to create order") from e

        livey_orders_created_total.inc()
        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            seller_id=order.seller_id,
            product_id=order.product_id,
            product_name=order.product_name,
            quantity=order.quantity,
            total_price=order.total_price,
        )

        # Sheets sync runs in the background; the customer never waits on Google
        if sync_dispatcher is not None:
            sync_dispatcher.enqueue(order.id)
        return order

    @staticmethod
    async def _decrement_stock(db: AsyncSession, product_id: str, quantity: int):
        """Best effort: a failed stock update is logged and the sale goes through."""
        try:
            async with db.begin_nested():
                await ProductRepository.decrement_stock(db, product_id, quantity)
        except SQLAlchemyError as e:
            logger.error("stock_update_failed", product_id=product_id, error=str(e))

    @staticmethod
    async def list_orders(db: AsyncSession, seller_id: str, limit: int | None, offset: int | None):
        limit = min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
        offset = max(offset or 0, 0)
        orders, total = await OrderRepository.list_seller_orders(db, seller_id, limit, offset)
        return {
            "orders": orders,
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "hasMore": offset + limit < total,
            },
        }

    @staticmethod
    async def get_order(db: AsyncSession, seller_id: str, order_id: str) -> Order:
        order = await OrderRepository.get_seller_order(db, seller_id, order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    @staticmethod
    async def update_status(db: AsyncSession, seller_id: str, order_id: str, data: OrderStatusUpdate) -> Order:
        valid = [s.value for s in OrderStatus]
        if data.status not in valid:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(valid)}", code="invalid_status"
            )

        order = await OrderRepository.get_seller_order(db, seller_id, order_id)
        if not order:
            raise NotFoundError("Order not found")

        old_status = order.status
        order = await OrderRepository.update_status(db, order, data.status)
        logger.info(
            "order_status_updated",
            order_id=order.id,
            order_number=order.order_number,
            seller_id=seller_id,
            old_status=old_status,
            new_status=data.status,
        )
        return order

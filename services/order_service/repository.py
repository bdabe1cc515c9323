from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import exists, select, update, func

from services.sheets_service.models import GoogleSheetsConnection

from .models import Order


class OrderRepository:
    @staticmethod
    async def create_order(db: AsyncSession, order: Order):
        db.add(order)
        await db.commit()
        await db.refresh(order)
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str, fresh: bool = False):
        """fresh=True reloads the row over whatever the session already holds."""
        stmt = select(Order).where(Order.id == order_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def get_seller_order(db: AsyncSession, seller_id: str, order_id: str):
        result = await db.execute(
            select(Order).where(Order.id == order_id).where(Order.seller_id == seller_id)
        )
        return result.scalars().first()

    @staticmethod
    async def list_seller_orders(db: AsyncSession, seller_id: str, limit: int, offset: int):
        total = await db.scalar(
            select(func.count()).select_from(Order).where(Order.seller_id == seller_id)
        )
        result = await db.execute(
            select(Order)
            .where(Order.seller_id == seller_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all(), total or 0

    @staticmethod
    async def update_status(db: AsyncSession, order: Order, status: str):
        order.status = status
        await db.commit()
        await db.refresh(order)
        return order

    @staticmethod
    async def mark_synced(db: AsyncSession, order_id: str, row_number: int | None):
        await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(synced=True, external_row_number=row_number)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    @staticmethod
    async def mark_sync_failed(db: AsyncSession, order_id: str):
        # Incremented in SQL so overlapping attempts each count exactly once
        await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(synced=False, sync_retry_count=Order.sync_retry_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    @staticmethod
    async def list_unsynced(db: AsyncSession, max_retries: int, limit: int):
        # Orders of sellers without a Sheets connection have nothing to retry
        has_connection = exists().where(GoogleSheetsConnection.seller_id == Order.seller_id)
        result = await db.execute(
            select(Order)
            .where(Order.synced.is_(False))
            .where(has_connection)
            .where(Order.sync_retry_count < max_retries)
            .order_by(Order.created_at.asc())
            .limit(limit)
        )
        return result.scalars().all()

    @staticmethod
    async def count_unsynced(db: AsyncSession, seller_id: str) -> int:
        count = await db.scalar(
            select(func.count())
            .select_from(Order)
            .where(Order.seller_id == seller_id)
            .where(Order.synced.is_(False))
        )
        return count or 0

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from .models import Product


class ProductRepository:

    @staticmethod
    async def get_available_product(db: AsyncSession, product_id: str):
        """Product snapshot for ordering; soft-deleted products are invisible."""
        result = await db.execute(
            select(Product)
            .where(Product.id == product_id)
            .where(Product.deleted_at.is_(None))
        )
        return result.scalars().first()

    @staticmethod
    async def decrement_stock(db: AsyncSession, product_id: str, quantity: int):
        # Decrement in SQL so concurrent orders never overwrite each other's read
        await db.execute(
            update(Product)
            .where(Product.id == product_id)
            .where(Product.stock.is_not(None))
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )

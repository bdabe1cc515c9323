from datetime import datetime

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from shared.time_utils import utcnow
from .models import GoogleSheetsConnection


class ConnectionRepository:
    @staticmethod
    async def get_by_seller(db: AsyncSession, seller_id: str):
        result = await db.execute(
            select(GoogleSheetsConnection).where(GoogleSheetsConnection.seller_id == seller_id)
        )
        return result.scalars().first()

    @staticmethod
    async def upsert(
        db: AsyncSession,
        seller_id: str,
        spreadsheet_id: str,
        spreadsheet_url: str,
        encrypted_refresh_token: str,
        access_token: str,
        token_expires_at: datetime,
    ):
        """Reconnecting replaces the seller's previous connection (seller_id is unique)."""
        connection = await ConnectionRepository.get_by_seller(db, seller_id)
        if connection is None:
            connection = GoogleSheetsConnection(seller_id=seller_id)
            db.add(connection)

        connection.spreadsheet_id = spreadsheet_id
        connection.spreadsheet_url = spreadsheet_url
        connection.refresh_token = encrypted_refresh_token
        connection.access_token = access_token
        connection.token_expires_at = token_expires_at
        connection.connected_at = utcnow()
        connection.last_sync_at = None

        await db.commit()
        await db.refresh(connection)
        return connection

    @staticmethod
    async def update_tokens(
        db: AsyncSession,
        connection_id: str,
        access_token: str,
        token_expires_at: datetime,
        encrypted_refresh_token: str | None = None,
    ):
        # Last writer wins: a stale cached token only costs one extra refresh
        values = {"access_token": access_token, "token_expires_at": token_expires_at}
        if encrypted_refresh_token:
            values["refresh_token"] = encrypted_refresh_token
        await db.execute(
            update(GoogleSheetsConnection)
            .where(GoogleSheetsConnection.id == connection_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    @staticmethod
    async def touch_last_sync(db: AsyncSession, connection_id: str):
        await db.execute(
            update(GoogleSheetsConnection)
            .where(GoogleSheetsConnection.id == connection_id)
            .values(last_sync_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    @staticmethod
    async def delete_by_seller(db: AsyncSession, seller_id: str) -> bool:
        result = await db.execute(
            delete(GoogleSheetsConnection)
            .where(GoogleSheetsConnection.seller_id == seller_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount > 0

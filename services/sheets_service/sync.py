"""
Order -> Google Sheets synchronization.

Called by the background dispatcher right after an order is created and by
the retry sweep for orders that failed before. Appending is at-least-once:
if the append succeeds and marking the order synced fails, the next retry
appends the row again.
"""
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.repository import OrderRepository
from shared.errors import ExternalServiceError
from shared.observability import livey_sheets_connections_removed_total, livey_sheets_sync_total
from shared.security import TokenVault
from shared.time_utils import as_utc, utcnow

from .google_auth import GoogleAuthClient
from .google_sheets import GoogleSheetsClient
from .models import GoogleSheetsConnection
from .repository import ConnectionRepository

logger = structlog.get_logger(__name__)


async def ensure_access_token(
    db: AsyncSession,
    connection: GoogleSheetsConnection,
    auth_client: GoogleAuthClient,
    vault: TokenVault,
) -> str:
    """Return a usable access token, refreshing and persisting it when the cached one expired."""
    expires_at = as_utc(connection.token_expires_at)
    if connection.access_token and expires_at and utcnow() < expires_at:
        return connection.access_token

    connection_id, seller_id = connection.id, connection.seller_id
    refresh_token = vault.decrypt(connection.refresh_token)
    tokens = await auth_client.refresh_access_token(refresh_token)

    rotated = vault.encrypt(tokens.refresh_token) if tokens.refresh_token else None
    await ConnectionRepository.update_tokens(
        db, connection_id, tokens.access_token, tokens.expires_at, encrypted_refresh_token=rotated
    )
    logger.info("sheets_token_refreshed", seller_id=seller_id, rotated=bool(rotated))
    return tokens.access_token


class SheetsSyncService:
    def __init__(self, auth_client: GoogleAuthClient, sheets_client: GoogleSheetsClient, vault: TokenVault):
        self.auth_client = auth_client
        self.sheets_client = sheets_client
        self.vault = vault

    async def sync_order(self, db: AsyncSession, order) -> int | None:
        """
        Append the order to its seller's spreadsheet and mark it synced.

        Returns the sheet row number, or None when the seller has no connection
        (skipped, not a failure). Every failure increments the order's retry count
        and is re-raised; permanent provider failures also delete the connection.
        """
        order_id, order_number, seller_id = order.id, order.order_number, order.seller_id

        connection = await ConnectionRepository.get_by_seller(db, seller_id)
        if connection is None:
            livey_sheets_sync_total.labels(result="skipped").inc()
            logger.info("sheets_sync_skipped", order_id=order_id, seller_id=seller_id,
                        reason="no_connection")
            return None

        connection_id, spreadsheet_id = connection.id, connection.spreadsheet_id
        try:
            access_token = await ensure_access_token(db, connection, self.auth_client, self.vault)
            row_number = await self.sheets_client.append_order_row(access_token, spreadsheet_id, order)
            await OrderRepository.mark_synced(db, order_id, row_number)
            await ConnectionRepository.touch_last_sync(db, connection_id)
        except Exception as e:
            if isinstance(e, SQLAlchemyError):
                await db.rollback()

            if isinstance(e, ExternalServiceError) and e.is_permanent:
                await ConnectionRepository.delete_by_seller(db, seller_id)
                livey_sheets_connections_removed_total.labels(reason=e.kind.value).inc()
                logger.warning("sheets_connection_removed", seller_id=seller_id,
                               spreadsheet_id=spreadsheet_id, reason=e.kind.value)

            await OrderRepository.mark_sync_failed(db, order_id)
            livey_sheets_sync_total.labels(result="failed").inc()
            logger.error("sheets_sync_failed", order_id=order_id, order_number=order_number,
                         seller_id=seller_id, error=str(e),
                         kind=getattr(getattr(e, "kind", None), "value", None))
            raise

        livey_sheets_sync_total.labels(result="success").inc()
        logger.info("sheets_sync_success", order_id=order_id, order_number=order_number,
                    seller_id=seller_id, row_number=row_number)
        return row_number

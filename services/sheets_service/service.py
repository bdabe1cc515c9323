from urllib.parse import urlencode

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.repository import OrderRepository
from shared.config import settings
from shared.errors import AuthError, ExternalErrorKind, ExternalServiceError, NotFoundError
from shared.observability import livey_sheets_connections_removed_total
from shared.security import TokenDecryptionError, TokenVault
from shared.time_utils import to_utc_z

from .google_auth import GoogleAuthClient, MissingRefreshTokenError
from .google_sheets import GoogleSheetsClient
from .repository import ConnectionRepository
from .sync import ensure_access_token

logger = structlog.get_logger(__name__)

SETTINGS_PATH = "/dashboard/settings"


def settings_redirect(**params) -> str:
    """Frontend settings page URL carrying the outcome of the OAuth flow."""
    return f"{settings.FRONTEND_URL.rstrip('/')}{SETTINGS_PATH}?{urlencode(params)}"


class SheetsConnectionService:
    def __init__(self, auth_client: GoogleAuthClient, sheets_client: GoogleSheetsClient, vault: TokenVault):
        self.auth_client = auth_client
        self.sheets_client = sheets_client
        self.vault = vault

    async def connect(self, seller_id: str) -> dict:
        auth_url = await self.auth_client.get_auth_url(seller_id)
        logger.info("sheets_oauth_initiated", seller_id=seller_id)
        return {"authUrl": auth_url}

    async def callback(self, db: AsyncSession, code: str | None, state: str | None, error: str | None) -> str:
        """
        Finish the OAuth flow and create the seller's spreadsheet.

        Never raises: every outcome is a redirect to the frontend settings page.
        """
        if error:
            logger.warning("oauth_callback_error", error=error)
            return settings_redirect(sheets_error="access_denied")

        if not code or not state:
            logger.warning("oauth_callback_missing_params")
            return settings_redirect(sheets_error="invalid_callback")

        try:
            seller_id = await self.auth_client.validate_state(state)
            if not seller_id:
                return settings_redirect(sheets_error="invalid_state")

            tokens = await self.auth_client.exchange_code_for_tokens(code)
            spreadsheet = await self.sheets_client.create_spreadsheet(
                tokens.access_token, settings.SHEETS_SPREADSHEET_TITLE
            )
            await ConnectionRepository.upsert(
                db,
                seller_id=seller_id,
                spreadsheet_id=spreadsheet.id,
                spreadsheet_url=spreadsheet.url,
                encrypted_refresh_token=self.vault.encrypt(tokens.refresh_token),
                access_token=tokens.access_token,
                token_expires_at=tokens.expires_at,
            )
        except MissingRefreshTokenError:
            logger.error("oauth_no_refresh_token")
            return settings_redirect(sheets_error="no_refresh_token")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("sheets_connection_save_failed", error=str(e))
            return settings_redirect(sheets_error="save_failed")
        except Exception as e:
            logger.error("sheets_callback_failed", error=str(e))
            return settings_redirect(sheets_error="connection_failed")

        logger.info("sheets_oauth_completed", seller_id=seller_id, spreadsheet_id=spreadsheet.id)
        return settings_redirect(sheets="connected")

    @staticmethod
    async def status(db: AsyncSession, seller_id: str) -> dict:
        connection = await ConnectionRepository.get_by_seller(db, seller_id)
        if connection is None:
            return {"connected": False, "message": "No Google Sheets connection found"}

        return {
            "connected": True,
            "spreadsheetId": connection.spreadsheet_id,
            "spreadsheetUrl": connection.spreadsheet_url,
            "connectedAt": to_utc_z(connection.connected_at),
            "lastSyncAt": to_utc_z(connection.last_sync_at),
            "pendingSyncCount": await OrderRepository.count_unsynced(db, seller_id),
        }

    async def test(self, db: AsyncSession, seller_id: str) -> dict:
        """
        Check the connected spreadsheet is still reachable.

        A revoked grant or a missing spreadsheet deletes the connection, the
        same teardown the sync path performs.
        """
        connection = await ConnectionRepository.get_by_seller(db, seller_id)
        if connection is None:
            raise NotFoundError("No Sheets connection found")

        spreadsheet_id = connection.spreadsheet_id
        try:
            access_token = await ensure_access_token(db, connection, self.auth_client, self.vault)
            title = await self.sheets_client.test_connection(access_token, spreadsheet_id)
        except ExternalServiceError as e:
            if e.kind == ExternalErrorKind.REVOKED:
                await self._remove(db, seller_id, e.kind)
                raise AuthError(
                    "Your Google Sheets access has expired. Please reconnect.", code="token_revoked"
                ) from e
            if e.kind == ExternalErrorKind.NOT_FOUND:
                await self._remove(db, seller_id, e.kind)
                raise NotFoundError(
                    "The connected Google Sheet was deleted or you lost access. Please reconnect.",
                    code="sheet_deleted",
                ) from e
            raise

        return {
            "success": True,
            "message": "Connection is valid",
            "spreadsheetId": spreadsheet_id,
            "spreadsheetTitle": title,
        }

    async def disconnect(self, db: AsyncSession, seller_id: str) -> dict:
        connection = await ConnectionRepository.get_by_seller(db, seller_id)
        if connection is None:
            raise NotFoundError("No Sheets connection found")

        try:
            await self.auth_client.revoke_token(self.vault.decrypt(connection.refresh_token))
        except TokenDecryptionError as e:
            logger.warning("token_revocation_skipped", seller_id=seller_id, error=str(e))

        await ConnectionRepository.delete_by_seller(db, seller_id)
        logger.info("sheets_disconnected", seller_id=seller_id)
        return {"success": True, "message": "Google Sheets disconnected successfully"}

    @staticmethod
    async def _remove(db: AsyncSession, seller_id: str, kind: ExternalErrorKind):
        await ConnectionRepository.delete_by_seller(db, seller_id)
        livey_sheets_connections_removed_total.labels(reason=kind.value).inc()
        logger.warning("sheets_connection_removed", seller_id=seller_id, reason=kind.value)

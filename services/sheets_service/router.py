from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import TokenVault, get_current_seller

from .dependencies import get_google_auth_client, get_google_sheets_client, get_vault
from .google_auth import GoogleAuthClient
from .google_sheets import GoogleSheetsClient
from .schemas import ConnectionTestResponse, ConnectResponse, DisconnectResponse, SheetsStatusResponse
from .service import SheetsConnectionService

# Google redirects the seller's browser here; no bearer token on that request
public_router = APIRouter(prefix="/api/sheets", tags=["Sheets"])

router = APIRouter(prefix="/api/sheets", tags=["Sheets"])


def get_connection_service(
    auth_client: GoogleAuthClient = Depends(get_google_auth_client),
    sheets_client: GoogleSheetsClient = Depends(get_google_sheets_client),
    vault: TokenVault = Depends(get_vault),
) -> SheetsConnectionService:
    return SheetsConnectionService(auth_client, sheets_client, vault)


@public_router.get("/callback", include_in_schema=False)
async def oauth_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    service: SheetsConnectionService = Depends(get_connection_service),
):
    return RedirectResponse(await service.callback(db, code, state, error), status_code=302)


@router.post("/connect", response_model=ConnectResponse)
async def connect(
    seller_id: str = Depends(get_current_seller),
    service: SheetsConnectionService = Depends(get_connection_service),
):
    return await service.connect(seller_id)


@router.get("/status", response_model=SheetsStatusResponse)
async def connection_status(
    seller_id: str = Depends(get_current_seller),
    db: AsyncSession = Depends(get_db),
):
    return await SheetsConnectionService.status(db, seller_id)


@router.post("/test", response_model=ConnectionTestResponse)
async def test_connection(
    seller_id: str = Depends(get_current_seller),
    db: AsyncSession = Depends(get_db),
    service: SheetsConnectionService = Depends(get_connection_service),
):
    return await service.test(db, seller_id)


@router.delete("/disconnect", response_model=DisconnectResponse)
async def disconnect(
    seller_id: str = Depends(get_current_seller),
    db: AsyncSession = Depends(get_db),
    service: SheetsConnectionService = Depends(get_connection_service),
):
    return await service.disconnect(db, seller_id)

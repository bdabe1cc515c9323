from fastapi import Request

from shared.security import TokenVault, get_token_vault

from .dispatcher import SyncDispatcher
from .google_auth import GoogleAuthClient
from .google_sheets import GoogleSheetsClient
from .sync import SheetsSyncService

# Clients are built once in the app lifespan and parked on app.state,
# so tests can swap them without touching module globals.


def get_sync_dispatcher(request: Request) -> SyncDispatcher | None:
    return getattr(request.app.state, "sync_dispatcher", None)


def get_sheets_sync_service(request: Request) -> SheetsSyncService:
    return request.app.state.sheets_sync_service


def get_google_auth_client(request: Request) -> GoogleAuthClient:
    return request.app.state.google_auth_client


def get_google_sheets_client(request: Request) -> GoogleSheetsClient:
    return request.app.state.google_sheets_client


def get_vault() -> TokenVault:
    return get_token_vault()

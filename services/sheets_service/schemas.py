from typing import Optional

from pydantic import BaseModel


class ConnectResponse(BaseModel):
    authUrl: str


class SheetsStatusResponse(BaseModel):
    connected: bool
    message: Optional[str] = None
    spreadsheetId: Optional[str] = None
    spreadsheetUrl: Optional[str] = None
    connectedAt: Optional[str] = None
    lastSyncAt: Optional[str] = None
    pendingSyncCount: Optional[int] = None


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    spreadsheetId: str
    spreadsheetTitle: str


class DisconnectResponse(BaseModel):
    success: bool
    message: str

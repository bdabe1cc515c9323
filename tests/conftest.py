"""
Shared fixtures: a throwaway SQLite database per test, the API app wired to it,
and a fake Google (OAuth + Sheets) served through httpx.MockTransport.
"""
import json
import os
from datetime import timedelta
from urllib.parse import parse_qs

# Settings are read at import time, so the environment comes first
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("ENCRYPTION_KEY", "0123456789abcdef" * 4)
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("GOOGLE_REDIRECT_URI", "http://test/api/sheets/callback")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from main import app
from services.product_service.models import Product
from services.sheets_service.google_auth import GoogleAuthClient
from services.sheets_service.google_sheets import GoogleSheetsClient
from services.sheets_service.models import GoogleSheetsConnection
from services.sheets_service.oauth_state import InMemoryOAuthStateStore
from services.sheets_service.sync import SheetsSyncService
from shared.config.database import Base, get_db
from shared.security import create_access_token, get_token_vault, limiter
from shared.time_utils import utcnow

SELLER_ID = "seller-1"
OTHER_SELLER_ID = "seller-2"
SPREADSHEET_ID = "sheet-1"


class FakeGoogle:
    """Just enough of oauth2.googleapis.com and sheets.googleapis.com."""

    def __init__(self):
        self.refresh_revoked = False
        self.issue_refresh_token = True
        self.sheet_missing = False
        self.quota_exceeded = False
        self.unavailable = False
        self.next_row = 2
        self.rows = []
        self.requests = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unavailable:
            raise httpx.ConnectError("connection refused", request=request)

        host, path = request.url.host, request.url.path
        if host == "oauth2.googleapis.com" and path == "/token":
            return self._token(parse_qs(request.content.decode()))
        if host == "oauth2.googleapis.com" and path == "/revoke":
            return httpx.Response(200, json={})
        if host == "sheets.googleapis.com":
            return self._sheets(request, path)
        return httpx.Response(404, json={"error": {"code": 404, "status": "NOT_FOUND"}})

    def _token(self, form: dict) -> httpx.Response:
        grant_type = form["grant_type"][0]
        if grant_type == "authorization_code":
            body = {"access_token": "access-from-code", "expires_in": 3599, "token_type": "Bearer"}
            if self.issue_refresh_token:
                body["refresh_token"] = "refresh-from-code"
            return httpx.Response(200, json=body)

        if self.refresh_revoked:
            return httpx.Response(400, json={
                "error": "invalid_grant",
                "error_description": "Token has been expired or revoked.",
            })
        return httpx.Response(200, json={"access_token": "access-refreshed", "expires_in": 3599,
                                         "token_type": "Bearer"})

    def _sheets(self, request: httpx.Request, path: str) -> httpx.Response:
        if self.quota_exceeded:
            return httpx.Response(429, json={"error": {"code": 429, "status": "RESOURCE_EXHAUSTED"}})
        if self.sheet_missing and path != "/v4/spreadsheets":
            return httpx.Response(404, json={"error": {"code": 404, "status": "NOT_FOUND"}})

        if request.method == "POST" and path == "/v4/spreadsheets":
            return httpx.Response(200, json={
                "spreadsheetId": SPREADSHEET_ID,
                "spreadsheetUrl": f"https://docs.google.com/spreadsheets/d/{SPREADSHEET_ID}/edit",
            })
        if path.endswith(":append"):
            self.rows.append(json.loads(request.content)["values"][0])
            row = self.next_row
            self.next_row += 1
            return httpx.Response(200, json={"updates": {"updatedRange": f"Orders!A{row}:J{row}"}})
        if request.method == "GET":
            return httpx.Response(200, json={"properties": {"title": "Livey Orders"}})
        return httpx.Response(200, json={})

    def paths(self) -> list:
        return [r.url.path for r in self.requests]


class RecordingDispatcher:
    def __init__(self):
        self.order_ids = []

    def enqueue(self, order_id: str) -> bool:
        self.order_ids.append(order_id)
        return True


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'livey.db'}", poolclass=NullPool)

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def vault():
    return get_token_vault()


@pytest.fixture
def fake_google():
    return FakeGoogle()


@pytest.fixture
def state_store():
    return InMemoryOAuthStateStore()


@pytest.fixture
def auth_client(fake_google, state_store):
    return GoogleAuthClient(
        state_store,
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://test/api/sheets/callback",
        transport=fake_google.transport,
    )


@pytest.fixture
def sheets_client(fake_google):
    return GoogleSheetsClient(timezone="Africa/Algiers", transport=fake_google.transport)


@pytest.fixture
def sync_service(auth_client, sheets_client, vault):
    return SheetsSyncService(auth_client, sheets_client, vault)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
async def client(session_factory, auth_client, sheets_client, sync_service, dispatcher, state_store):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.oauth_state_store = state_store
    app.state.google_auth_client = auth_client
    app.state.google_sheets_client = sheets_client
    app.state.sheets_sync_service = sync_service
    app.state.sync_dispatcher = dispatcher
    limiter.reset()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def seller_headers():
    return {"Authorization": f"Bearer {create_access_token({'sub': SELLER_ID})}"}


@pytest.fixture
def other_seller_headers():
    return {"Authorization": f"Bearer {create_access_token({'sub': OTHER_SELLER_ID})}"}


@pytest.fixture
def cron_headers():
    return {"X-Cron-Secret": "test-cron-secret"}


@pytest.fixture
def make_product(session_factory):
    async def _make(price=2500, stock=10, seller_id=SELLER_ID, deleted=False, name="Robe Kabyle"):
        async with session_factory() as session:
            product = Product(seller_id=seller_id, name=name, price=price, stock=stock,
                              deleted_at=utcnow() if deleted else None)
            session.add(product)
            await session.commit()
            return product
    return _make


@pytest.fixture
def make_connection(session_factory, vault):
    async def _make(seller_id=SELLER_ID, expired=False, refresh_token="refresh-stored"):
        offset = timedelta(hours=-1) if expired else timedelta(hours=1)
        async with session_factory() as session:
            connection = GoogleSheetsConnection(
                seller_id=seller_id,
                spreadsheet_id=SPREADSHEET_ID,
                spreadsheet_url=f"https://docs.google.com/spreadsheets/d/{SPREADSHEET_ID}/edit",
                refresh_token=vault.encrypt(refresh_token),
                access_token="access-cached",
                token_expires_at=utcnow() + offset,
            )
            session.add(connection)
            await session.commit()
            return connection
    return _make


@pytest.fixture
def order_payload():
    def _payload(product_id, **overrides):
        payload = {
            "product_id": product_id,
            "customer_name": "Amina Benali",
            "customer_phone": "0551234567",
            "customer_address": "12 Rue Didouche Mourad, Alger",
            "quantity": 2,
        }
        payload.update(overrides)
        return payload
    return _payload

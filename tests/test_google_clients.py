from datetime import datetime, timezone
from types import SimpleNamespace
from urllib.parse import parse_qs, urlparse
from zoneinfo import ZoneInfo

import httpx
import pytest

from services.sheets_service.google_auth import GoogleAuthClient, MissingRefreshTokenError
from services.sheets_service.google_sheets import SHEET_HEADERS, classify_response, format_order_row
from shared.errors import ExternalErrorKind, LiveyError, PermanentExternalError, TransientExternalError

from .conftest import SPREADSHEET_ID


def _order(**overrides):
    values = dict(
        order_number="ORD-20260115-a1b2",
        created_at=datetime(2026, 1, 15, 13, 5, 9, tzinfo=timezone.utc),
        customer_name="Amina Benali",
        customer_phone="0551234567",
        customer_address="Alger",
        product_name="Robe Kabyle",
        product_price=2500,
        quantity=3,
        total_price=7500,
        status="confirmed",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_format_order_row_uses_local_time_and_capitalized_status():
    row = format_order_row(_order(), ZoneInfo("Africa/Algiers"))

    assert len(row) == len(SHEET_HEADERS)
    assert row[0] == "ORD-20260115-a1b2"
    # Algiers is UTC+1 year round
    assert row[1] == "15/01/2026, 14:05:09"
    assert row[-1] == "Confirmed"


def test_format_order_row_handles_naive_timestamps():
    row = format_order_row(_order(created_at=datetime(2026, 1, 15, 23, 30)), ZoneInfo("Africa/Algiers"))
    assert row[1] == "16/01/2026, 00:30:00"


@pytest.mark.parametrize("status_code, body, kind", [
    (404, {"error": {"code": 404, "status": "NOT_FOUND"}}, ExternalErrorKind.NOT_FOUND),
    (403, {"error": {"code": 403, "status": "PERMISSION_DENIED"}}, ExternalErrorKind.NOT_FOUND),
    (429, {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED"}}, ExternalErrorKind.QUOTA),
    (403, {"error": {"code": 403, "status": "RESOURCE_EXHAUSTED"}}, ExternalErrorKind.QUOTA),
    (500, {"error": {"code": 500, "status": "INTERNAL"}}, ExternalErrorKind.TRANSIENT),
    (503, None, ExternalErrorKind.TRANSIENT),
    (502, ["bad gateway"], ExternalErrorKind.TRANSIENT),
    (500, "upstream error", ExternalErrorKind.TRANSIENT),
])
def test_classify_response(status_code, body, kind):
    if body is None:
        response = httpx.Response(status_code, text="oops")
    else:
        response = httpx.Response(status_code, json=body)
    assert classify_response(response) == kind


async def test_create_spreadsheet_writes_and_formats_header(sheets_client, fake_google):
    ref = await sheets_client.create_spreadsheet("token", "Livey Orders")

    assert ref.id == SPREADSHEET_ID
    assert ref.url.endswith(f"/d/{SPREADSHEET_ID}/edit")
    methods = [(r.method, r.url.path) for r in fake_google.requests]
    assert methods[0] == ("POST", "/v4/spreadsheets")
    assert methods[1][0] == "PUT" and methods[1][1].endswith("Orders!A1:J1")
    assert methods[2] == ("POST", f"/v4/spreadsheets/{SPREADSHEET_ID}:batchUpdate")


async def test_append_row_returns_row_number(sheets_client, fake_google):
    fake_google.next_row = 42

    row = await sheets_client.append_order_row("token", SPREADSHEET_ID, _order())

    assert row == 42
    request = fake_google.requests[0]
    assert request.headers["Authorization"] == "Bearer token"
    assert request.url.params["valueInputOption"] == "RAW"
    assert request.url.params["insertDataOption"] == "INSERT_ROWS"


async def test_append_row_classifies_failures(sheets_client, fake_google):
    fake_google.sheet_missing = True
    with pytest.raises(PermanentExternalError) as exc_info:
        await sheets_client.append_order_row("token", SPREADSHEET_ID, _order())
    assert exc_info.value.kind == ExternalErrorKind.NOT_FOUND

    fake_google.sheet_missing = False
    fake_google.quota_exceeded = True
    with pytest.raises(TransientExternalError) as exc_info:
        await sheets_client.append_order_row("token", SPREADSHEET_ID, _order())
    assert exc_info.value.kind == ExternalErrorKind.QUOTA


async def test_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    from services.sheets_service.google_sheets import GoogleSheetsClient

    client = GoogleSheetsClient(transport=httpx.MockTransport(handler))
    with pytest.raises(TransientExternalError) as exc_info:
        await client.test_connection("token", SPREADSHEET_ID)
    assert exc_info.value.kind == ExternalErrorKind.TRANSIENT


async def test_auth_url_requests_offline_access(auth_client, state_store):
    url = await auth_client.get_auth_url("seller-1")

    query = parse_qs(urlparse(url).query)
    assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth")
    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["client_id"] == ["test-client-id"]
    assert "https://www.googleapis.com/auth/spreadsheets" in query["scope"][0]
    assert await auth_client.validate_state(query["state"][0]) == "seller-1"
    assert await auth_client.validate_state(query["state"][0]) is None


async def test_missing_oauth_configuration(state_store):
    client = GoogleAuthClient(state_store)
    with pytest.raises(LiveyError) as exc_info:
        await client.get_auth_url("seller-1")
    assert exc_info.value.code == "oauth_not_configured"
    assert len(state_store) == 0


async def test_exchange_code(auth_client):
    tokens = await auth_client.exchange_code_for_tokens("code-1")

    assert tokens.access_token == "access-from-code"
    assert tokens.refresh_token == "refresh-from-code"
    assert tokens.expires_at > datetime.now(timezone.utc)


async def test_exchange_code_without_refresh_token(auth_client, fake_google):
    fake_google.issue_refresh_token = False
    with pytest.raises(MissingRefreshTokenError):
        await auth_client.exchange_code_for_tokens("code-1")


async def test_refresh_classifies_revocation(auth_client, fake_google):
    tokens = await auth_client.refresh_access_token("refresh-1")
    assert tokens.access_token == "access-refreshed"
    assert tokens.refresh_token is None

    fake_google.refresh_revoked = True
    with pytest.raises(PermanentExternalError) as exc_info:
        await auth_client.refresh_access_token("refresh-1")
    assert exc_info.value.kind == ExternalErrorKind.REVOKED


async def test_refresh_network_failure_is_transient(auth_client, fake_google):
    fake_google.unavailable = True
    with pytest.raises(TransientExternalError):
        await auth_client.refresh_access_token("refresh-1")


async def test_revoke_never_raises(auth_client, fake_google):
    assert await auth_client.revoke_token("refresh-1") is True
    fake_google.unavailable = True
    assert await auth_client.revoke_token("refresh-1") is False


@pytest.mark.parametrize("body", [["not", "an", "object"], "just a string", 42])
async def test_non_object_success_body_is_transient(body):
    from services.sheets_service.google_sheets import GoogleSheetsClient

    client = GoogleSheetsClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)))
    with pytest.raises(TransientExternalError) as exc_info:
        await client.test_connection("token", SPREADSHEET_ID)
    assert exc_info.value.kind == ExternalErrorKind.TRANSIENT


async def test_non_object_error_body_is_classified():
    from services.sheets_service.google_sheets import GoogleSheetsClient

    client = GoogleSheetsClient(transport=httpx.MockTransport(lambda request: httpx.Response(404, json=["gone"])))
    with pytest.raises(PermanentExternalError) as exc_info:
        await client.append_order_row("token", SPREADSHEET_ID, _order())
    assert exc_info.value.kind == ExternalErrorKind.NOT_FOUND

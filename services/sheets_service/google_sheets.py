"""
Google Sheets REST client.

Every provider failure leaves this module as an ExternalServiceError with a
kind: NOT_FOUND and REVOKED are permanent, QUOTA and TRANSIENT are retryable.
"""
import re
from dataclasses import dataclass
from zoneinfo import ZoneInfo

import httpx
import structlog

from shared.config import settings
from shared.errors import ExternalErrorKind, ExternalServiceError, TransientExternalError
from shared.time_utils import as_utc

logger = structlog.get_logger(__name__)

SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
SHEET_TITLE = "Orders"
SHEET_ID = 0

SHEET_HEADERS = [
    "Order ID",
    "Date/Time",
    "Customer Name",
    "Phone",
    "Full Address",
    "Product Name",
    "Price",
    "Quantity",
    "Total",
    "Status",
]
HEADER_RANGE = f"{SHEET_TITLE}!A1:J1"
APPEND_RANGE = f"{SHEET_TITLE}!A:J"

DATE_FORMAT = "%d/%m/%Y, %H:%M:%S"
_UPDATED_ROW = re.compile(r"!A(\d+):")


@dataclass
class SpreadsheetRef:
    id: str
    url: str


def format_order_row(order, tz: ZoneInfo) -> list:
    """One sheet row for an order, columns in SHEET_HEADERS order."""
    created_at = as_utc(order.created_at).astimezone(tz)
    return [
        order.order_number,
        created_at.strftime(DATE_FORMAT),
        order.customer_name,
        order.customer_phone,
        order.customer_address,
        order.product_name,
        order.product_price,
        order.quantity,
        order.total_price,
        order.status.capitalize(),
    ]


def classify_response(response: httpx.Response) -> ExternalErrorKind:
    """Map a failed Sheets API response to an error kind."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    error = body.get("error", {}) if isinstance(body, dict) else {}
    google_status = error.get("status", "") if isinstance(error, dict) else ""

    if response.status_code == 404 or google_status == "NOT_FOUND":
        return ExternalErrorKind.NOT_FOUND
    # drive.file scope: a spreadsheet the seller deleted or unshared reads as forbidden
    if response.status_code == 403 and google_status == "PERMISSION_DENIED":
        return ExternalErrorKind.NOT_FOUND
    if response.status_code == 429 or google_status == "RESOURCE_EXHAUSTED":
        return ExternalErrorKind.QUOTA
    return ExternalErrorKind.TRANSIENT


class GoogleSheetsClient:
    def __init__(
        self,
        timezone: str = "Africa/Algiers",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.tz = ZoneInfo(timezone)
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls) -> "GoogleSheetsClient":
        return cls(timezone=settings.SHEETS_TIMEZONE, timeout=settings.EXTERNAL_HTTP_TIMEOUT_SECONDS)

    async def _request(self, access_token: str, method: str, url: str, action: str, **kwargs) -> dict:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("sheets_request_timeout", action=action)
            raise TransientExternalError(ExternalErrorKind.TRANSIENT, f"{action}: timeout") from e
        except httpx.HTTPError as e:
            logger.error("sheets_request_failed", action=action, error=str(e))
            raise TransientExternalError(ExternalErrorKind.TRANSIENT, f"{action}: {e}") from e

        if response.is_error:
            kind = classify_response(response)
            logger.error("sheets_api_error", action=action, status_code=response.status_code, kind=kind.value)
            raise ExternalServiceError.classify(kind, f"{action}: HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise TransientExternalError(ExternalErrorKind.TRANSIENT, f"{action}: malformed response") from e
        if not isinstance(body, dict):
            raise TransientExternalError(ExternalErrorKind.TRANSIENT, f"{action}: malformed response")
        return body

    async def create_spreadsheet(self, access_token: str, title: str) -> SpreadsheetRef:
        """Create a spreadsheet with a frozen, bold, shaded header row."""
        created = await self._request(
            access_token,
            "POST",
            SHEETS_API_URL,
            "create_spreadsheet",
            json={
                "properties": {"title": title},
                "sheets": [
                    {
                        "properties": {
                            "sheetId": SHEET_ID,
                            "title": SHEET_TITLE,
                            "gridProperties": {"frozenRowCount": 1},
                        }
                    }
                ],
            },
        )
        spreadsheet_id = created.get("spreadsheetId")
        if not spreadsheet_id:
            raise TransientExternalError(ExternalErrorKind.TRANSIENT, "create_spreadsheet: no spreadsheetId")
        spreadsheet_url = created.get("spreadsheetUrl") or (
            f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit"
        )

        await self._request(
            access_token,
            "PUT",
            f"{SHEETS_API_URL}/{spreadsheet_id}/values/{HEADER_RANGE}",
            "write_headers",
            params={"valueInputOption": "RAW"},
            json={"values": [SHEET_HEADERS]},
        )

        await self._request(
            access_token,
            "POST",
            f"{SHEETS_API_URL}/{spreadsheet_id}:batchUpdate",
            "format_headers",
            json={
                "requests": [
                    {
                        "repeatCell": {
                            "range": {"sheetId": SHEET_ID, "startRowIndex": 0, "endRowIndex": 1},
                            "cell": {
                                "userEnteredFormat": {
                                    "textFormat": {"bold": True},
                                    "backgroundColor": {"red": 0.9, "green": 0.9, "blue": 0.9},
                                }
                            },
                            "fields": "userEnteredFormat(textFormat,backgroundColor)",
                        }
                    }
                ]
            },
        )

        logger.info("spreadsheet_created", spreadsheet_id=spreadsheet_id)
        return SpreadsheetRef(id=spreadsheet_id, url=spreadsheet_url)

    async def append_order_row(self, access_token: str, spreadsheet_id: str, order) -> int | None:
        """Append one order row. Returns the sheet row number, or None if Google didn't say."""
        result = await self._request(
            access_token,
            "POST",
            f"{SHEETS_API_URL}/{spreadsheet_id}/values/{APPEND_RANGE}:append",
            "append_order_row",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [format_order_row(order, self.tz)]},
        )

        updated_range = (result.get("updates") or {}).get("updatedRange", "")
        match = _UPDATED_ROW.search(updated_range)
        row_number = int(match.group(1)) if match else None
        logger.info("order_row_appended", order_number=order.order_number,
                    spreadsheet_id=spreadsheet_id, row_number=row_number)
        return row_number

    async def test_connection(self, access_token: str, spreadsheet_id: str) -> str:
        """Read the spreadsheet title. Raises ExternalServiceError if it's unreachable."""
        result = await self._request(
            access_token,
            "GET",
            f"{SHEETS_API_URL}/{spreadsheet_id}",
            "test_connection",
            params={"fields": "properties.title"},
        )
        return (result.get("properties") or {}).get("title", "")

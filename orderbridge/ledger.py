# orderbridge/ledger.py
"""Order ledger backed by one Google Sheets tab (REST v4 over httpx).

One row per order, columns laid out as in ``models.OrderRecord``. There is
no index: lookups scan the tracking id column top to bottom.
"""
import logging
import re
from typing import Iterable, Optional
from urllib.parse import quote

import httpx

from .config import Settings, load_service_account_info
from .errors import LedgerError, RemoteWriteError
from .http_utils import CONNECT_ERRORS, request_with_retry
from .models import FIRST_COLUMN, LAST_COLUMN, OrderRecord, column_letter
from .sheets_auth import ServiceAccountTokenSource

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4"
# cells are stored as sent, never parsed as formulas, dates or numbers
VALUE_INPUT_OPTION = "RAW"


class LedgerClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        token_source,
        spreadsheet_id: str,
        sheet_name: str = "Sheet1",
        max_retries: int = 3,
        base_delay: float = 0.3,
        api_base: str = SHEETS_API,
    ):
        self._client = client
        self._token_source = token_source
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._api_base = api_base.rstrip("/")

    # ---------- helpers ----------
    def a1(self, cells: str) -> str:
        sheet = self.sheet_name
        if not re.fullmatch(r"\w+", sheet):
            sheet = "'" + sheet.replace("'", "''") + "'"
        return f"{sheet}!{cells}"

    def _values_url(self, cells: str, suffix: str = "") -> str:
        if not self.spreadsheet_id:
            raise LedgerError("SPREADSHEET_ID is not configured")
        rng = quote(self.a1(cells), safe="!:'")
        return f"{self._api_base}/spreadsheets/{self.spreadsheet_id}/values/{rng}{suffix}"

    async def _call(self, method: str, url: str, *, idempotent: bool, error_cls=LedgerError, **kwargs) -> dict:
        token = await self._token_source.token()
        retry = {}
        if not idempotent:
            # a repeated append would duplicate the row
            retry = {"retry_on_status": frozenset(), "retry_on": CONNECT_ERRORS}
        try:
            resp = await request_with_retry(
                self._client, method, url,
                headers={"Authorization": f"Bearer {token}"},
                max_retries=self._max_retries, base_delay=self._base_delay,
                **retry, **kwargs,
            )
        except httpx.HTTPError as e:
            raise error_cls(f"Ledger request failed: {e}") from e
        if resp.status_code >= 400:
            raise error_cls(f"Ledger returned {resp.status_code}: {resp.text}")
        if not resp.content:
            return {}
        try:
            body = resp.json()
        except ValueError as e:
            raise error_cls(f"Ledger returned a non-JSON body: {resp.text[:200]}") from e
        if not isinstance(body, dict):
            raise error_cls(f"Unexpected ledger response: {resp.text[:200]}")
        return body

    # ---------- operations ----------
    async def append_row(self, record: OrderRecord) -> int:
        """Append one order row and return its 1-based row number."""
        url = self._values_url(f"{FIRST_COLUMN}:{LAST_COLUMN}", ":append")
        body = await self._call(
            "POST", url, idempotent=False, error_cls=RemoteWriteError,
            params={"valueInputOption": VALUE_INPUT_OPTION, "insertDataOption": "INSERT_ROWS"},
            json={"values": [record.to_row()]},
        )
        updated = (body.get("updates") or {}).get("updatedRange", "")
        m = re.search(r"![A-Z]+(\d+)", updated)
        if not m:
            raise RemoteWriteError(f"Unexpected append response range: {updated!r}")
        row = int(m.group(1))
        logger.info("Ledger row %d appended for %s", row, record.tracking_id)
        return row

    async def read_tracking_ids(self) -> list[str]:
        """Every value in the tracking id column, header included."""
        col = column_letter("tracking_id")
        body = await self._call("GET", self._values_url(f"{col}:{col}"), idempotent=True)
        return [row[0] if row else "" for row in body.get("values", [])]

    async def find_row_index(self, tracking_id: str) -> Optional[int]:
        for i, value in enumerate(await self.read_tracking_ids(), start=1):
            if value == tracking_id:
                return i
        return None

    async def update_cell(self, row: int, column: str, value) -> None:
        await self._call(
            "PUT", self._values_url(f"{column}{row}"), idempotent=True, error_cls=RemoteWriteError,
            params={"valueInputOption": VALUE_INPUT_OPTION},
            json={"values": [[value]]},
        )

    async def update_cells(self, row: int, updates: Iterable[tuple[str, object]]) -> None:
        """Write several cells of one row in a single request, in the given order."""
        if not self.spreadsheet_id:
            raise LedgerError("SPREADSHEET_ID is not configured")
        data = [{"range": self.a1(f"{column}{row}"), "values": [[value]]} for column, value in updates]
        url = f"{self._api_base}/spreadsheets/{self.spreadsheet_id}/values:batchUpdate"
        await self._call(
            "POST", url, idempotent=True, error_cls=RemoteWriteError,
            json={"valueInputOption": VALUE_INPUT_OPTION, "data": data},
        )


def build_ledger(settings: Settings, client: httpx.AsyncClient) -> LedgerClient:
    token_source = ServiceAccountTokenSource(
        client, lambda: load_service_account_info(settings), max_retries=settings.http_max_retries,
    )
    return LedgerClient(
        client, token_source, settings.spreadsheet_id, settings.sheet_name,
        max_retries=settings.http_max_retries,
    )

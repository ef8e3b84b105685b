"""
Google Sheets Remote Record Store

DESIGN DECISION: Google Sheets is used as the remote record table because:
1. Support staff can inspect a user's state directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (a few rows per user is fine)
- No transactions (insert-or-replace by user_id is the only write)
- Limited query capabilities (we scan for the user_id in Python)

Each table is a worksheet whose first row is the column list. One row
per user; "user_id" is the conflict key.
"""

from datetime import date, datetime
from typing import Any, Optional, Sequence

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    AsyncRetrying,
    retry,
    stop_after_attempt,
    wait_exponential,
)

from budgetkeep.config import GoogleSheetsSettings, get_settings
from budgetkeep.services.storage.interface import RemoteBackend, RemoteFailure


CONFLICT_COLUMN = "user_id"

logger = structlog.get_logger(__name__)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise RemoteFailure(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise RemoteFailure(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound as e:
                raise RemoteFailure(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def get_table(self, name: str, columns: Sequence[str]) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=name,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(list(columns), value_input_option="RAW")
        return sheet


def _to_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class GoogleSheetsRemoteBackend(RemoteBackend):
    """
    Google Sheets implementation of a remote record table.

    Cells are written RAW as text; empty cells read back as None and
    the entity store's pydantic models coerce the rest ("true" -> bool,
    ISO text -> datetime).
    """

    def __init__(
        self,
        table: str,
        columns: Sequence[str],
        client: Optional[GoogleSheetsClient] = None,
        attempts: int = 3,
        max_wait_seconds: float = 10,
    ):
        if CONFLICT_COLUMN not in columns:
            raise ValueError(f"Remote table {table!r} needs a {CONFLICT_COLUMN!r} column")
        self.table = table
        self._columns = list(columns)
        self._client = client or GoogleSheetsClient()
        self._attempts = attempts
        self._max_wait = max_wait_seconds

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=1, min=0, max=self._max_wait),
            reraise=True,
        )

    def _header(self, rows: list[list[str]]) -> list[str]:
        """
        Column names as the worksheet orders them.

        An empty sheet falls back to our own column order. Columns are
        always looked up by name, so a reordered sheet still reads right.
        """
        if not rows or not any(rows[0]):
            return list(self._columns)
        header = [cell.strip() for cell in rows[0]]
        if CONFLICT_COLUMN not in header:
            raise RemoteFailure(f"Worksheet {self.table!r} has no {CONFLICT_COLUMN!r} column")
        return header

    def _record_to_row(self, header: list[str], record: dict, existing: Optional[list] = None) -> list[str]:
        """Convert a record to a spreadsheet row in the sheet's column order."""
        row = []
        for idx, column in enumerate(header):
            if column in self._columns:
                row.append(_to_cell(record.get(column)))
            elif existing is not None and idx < len(existing):
                # Columns we do not own keep their current value
                row.append(existing[idx])
            else:
                row.append("")
        return row

    def _row_to_record(self, header: list[str], row: list) -> dict:
        """Convert a spreadsheet row to a record."""
        positions = {column: idx for idx, column in enumerate(header)}

        def safe_get(column: str) -> Optional[str]:
            idx = positions.get(column)
            if idx is None or idx >= len(row) or row[idx] == "":
                return None
            return row[idx]

        return {column: safe_get(column) for column in self._columns}

    def _find_row(self, header: list[str], rows: list[list[str]], user_id: str) -> Optional[int]:
        """Return the 1-based sheet row index of a user's record."""
        key_idx = header.index(CONFLICT_COLUMN)
        for idx, row in enumerate(rows[1:], start=2):  # Row 1 is the header
            if len(row) > key_idx and row[key_idx] == user_id:
                return idx
        return None

    async def fetch(self, user_id: str) -> Optional[dict]:
        """Retrieve a user's record."""
        try:
            async for attempt in self._retrying():
                with attempt:
                    sheet = self._client.get_table(self.table, self._columns)
                    rows = sheet.get_all_values()
        except RemoteFailure:
            raise
        except Exception as e:
            raise RemoteFailure(f"Failed to fetch from {self.table}: {e}") from e

        header = self._header(rows)
        idx = self._find_row(header, rows, user_id)
        if idx is None:
            return None
        return self._row_to_record(header, rows[idx - 1])

    async def upsert(self, record: dict) -> None:
        """Insert or replace the row whose user_id matches."""
        user_id = record.get(CONFLICT_COLUMN)
        if not user_id:
            raise RemoteFailure("Record has no user_id conflict key")

        try:
            async for attempt in self._retrying():
                with attempt:
                    sheet = self._client.get_table(self.table, self._columns)
                    rows = sheet.get_all_values()
                    header = self._header(rows)
                    idx = self._find_row(header, rows, user_id)
                    if idx is None:
                        sheet.append_row(
                            self._record_to_row(header, record),
                            value_input_option="RAW",
                        )
                    else:
                        sheet.update(
                            range_name=f"A{idx}",
                            values=[self._record_to_row(header, record, rows[idx - 1])],
                            value_input_option="RAW",
                        )
        except RemoteFailure:
            raise
        except Exception as e:
            raise RemoteFailure(f"Failed to upsert into {self.table}: {e}") from e

        logger.debug("remote_upsert", table=self.table, user_id=user_id)

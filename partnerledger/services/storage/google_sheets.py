"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a shared backend because:
1. Partners can see the raw collections without installing anything
2. No database setup required
3. Built-in backup (Google's infrastructure)

Each collection is one row in a single worksheet:

    name | blob (JSON) | updated_at

TRADEOFFS:
- A cell holds at most 50,000 characters, so very large collections
  must use the JSON file store instead
- No transactions (one row write per collection)

The implementation follows the abstract interface, so the ledger never
knows which backend it is talking to.
"""

from datetime import datetime
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from partnerledger.config import GoogleSheetsSettings, get_settings
from partnerledger.services.storage.interface import (
    KeyValueStoreInterface,
    StorageError,
    StoreConnectionError,
)


logger = structlog.get_logger(__name__)

COLLECTION_COLUMNS = [
    "name",
    "blob",
    "updated_at",
]

MAX_CELL_CHARS = 50_000


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
            except FileNotFoundError:
                raise StoreConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StoreConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_collections_sheet(self) -> gspread.Worksheet:
        """Get or create the worksheet holding one row per collection."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.collections_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.collections_sheet_name,
                rows=100,
                cols=len(COLLECTION_COLUMNS),
            )
            sheet.append_row(COLLECTION_COLUMNS)
        return sheet


class GoogleSheetsKeyValueStore(KeyValueStoreInterface):
    """
    Google Sheets implementation of the key-value store.

    Rows are looked up by the name column; the header row is skipped.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _find_row(self, sheet: gspread.Worksheet, name: str) -> tuple[Optional[int], list]:
        """1-based row index and values for a name, or (None, [])."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == name:
                return idx, row
        return None, []

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_row(self, name: str) -> tuple[Optional[int], list]:
        sheet = self._client.get_collections_sheet()
        return self._find_row(sheet, name)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _write_row(self, name: str, blob: str, updated_at: str) -> None:
        sheet = self._client.get_collections_sheet()
        idx, _ = self._find_row(sheet, name)
        if idx is None:
            sheet.append_row([name, blob, updated_at], value_input_option="RAW")
        else:
            sheet.update_cell(idx, 2, blob)
            sheet.update_cell(idx, 3, updated_at)

    async def load(self, name: str) -> Optional[str]:
        try:
            idx, row = self._read_row(name)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load collection '{name}': {e}")

        if idx is None or len(row) < 2 or row[1] == "":
            return None
        return row[1]

    async def save(self, name: str, blob: str) -> None:
        if len(blob) > MAX_CELL_CHARS:
            raise StorageError(
                f"Collection '{name}' is {len(blob)} characters; "
                f"a sheet cell holds at most {MAX_CELL_CHARS}"
            )

        updated_at = datetime.utcnow().isoformat()
        try:
            self._write_row(name, blob, updated_at)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save collection '{name}': {e}")

        logger.debug("collection_saved", name=name, size=len(blob), backend="sheets")

    async def delete(self, name: str) -> bool:
        try:
            sheet = self._client.get_collections_sheet()
            idx, _ = self._find_row(sheet, name)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete collection '{name}': {e}")

"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the persistent backend because:
1. Non-technical users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Every collection is a worksheet with two columns: the record id and the
record itself as JSON. A write replaces the whole worksheet.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the repository serializes writes per collection)
- Limited query capabilities (we filter in Python)
"""

import asyncio
import json
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from pocketledger.config import GoogleSheetsSettings, get_settings
from pocketledger.services.storage.interface import (
    CollectionStore,
    ConnectionError,
    Record,
    StorageError,
)

logger = structlog.get_logger(__name__)

# Column layout shared by every collection worksheet
COLLECTION_COLUMNS = ["id", "record_json"]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        if collection in self._worksheets:
            return self._worksheets[collection]

        title = f"{self._settings.worksheet_prefix}{collection}"
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=self._settings.worksheet_rows,
                cols=len(COLLECTION_COLUMNS),
            )
            sheet.append_row(COLLECTION_COLUMNS)
            logger.info("worksheet_created", title=title)

        self._worksheets[collection] = sheet
        return sheet


class GoogleSheetsCollectionStore(CollectionStore):
    """
    Google Sheets implementation of the collection store.

    Records are stored one per row, JSON-serialized in the second column.
    gspread is synchronous, so calls run in a worker thread.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _record_to_row(record: Record) -> list[str]:
        return [str(record.get("id", "")), json.dumps(record)]

    @staticmethod
    def _row_to_record(row: list[str]) -> Optional[Record]:
        if len(row) < 2 or not row[1]:
            return None
        return json.loads(row[1])

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _fetch_rows(self, collection: str) -> list[list[str]]:
        sheet = self._client.get_collection_sheet(collection)
        return sheet.get_all_values()[1:]  # Skip header

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _write(self, collection: str, records: list[Record]) -> None:
        sheet = self._client.get_collection_sheet(collection)
        rows = [COLLECTION_COLUMNS] + [self._record_to_row(r) for r in records]
        sheet.clear()
        sheet.update(range_name="A1", values=rows, value_input_option="RAW")

    async def get(self, collection: str) -> list[Record]:
        """Read every record of a collection."""
        try:
            rows = await asyncio.to_thread(self._fetch_rows, collection)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read '{collection}': {e}")

        records = []
        for row in rows:
            try:
                record = self._row_to_record(row)
            except json.JSONDecodeError as e:
                raise StorageError(f"Corrupt record in '{collection}' (id={row[0]}): {e}")
            if record is not None:
                records.append(record)
        return records

    async def set(self, collection: str, records: list[Record]) -> None:
        """Replace a collection's worksheet content."""
        try:
            await asyncio.to_thread(self._write, collection, records)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write '{collection}': {e}")
        logger.debug("collection_written", collection=collection, count=len(records))

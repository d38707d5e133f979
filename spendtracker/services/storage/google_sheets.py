"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Each collection lives in its own worksheet. Rows are [id, json] where
json is the item's full serialized form, so the sheet round-trips
exactly what the JSON backend stores.

TRADEOFFS:
- A save clears and rewrites the worksheet; there is no transaction,
  so a failure mid-save can leave a partial sheet. The stores roll back
  their in-memory state and surface PersistenceError in that case.
- Not suitable for large ledgers (fine for personal use)
"""

import json
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from spendtracker.config import GoogleSheetsSettings, get_settings
from spendtracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from spendtracker.services.storage.interface import (
    AuditStorageInterface,
    CollectionRepository,
    CorruptDataError,
    StorageConnectionError,
    StorageError,
    T,
)


COLLECTION_COLUMNS = ["id", "json"]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
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
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, headers: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(headers),
            )
            sheet.append_row(headers)
        return sheet


class GoogleSheetsRepository(CollectionRepository[T]):
    """Whole-collection repository stored in one worksheet."""

    def __init__(
        self,
        client: GoogleSheetsClient,
        worksheet_name: str,
        model: type[T],
        collection: str,
    ):
        super().__init__(model, collection)
        self._client = client
        self._worksheet_name = worksheet_name

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._worksheet_name, COLLECTION_COLUMNS)

    def load(self) -> list[T]:
        try:
            all_rows = self._sheet().get_all_values()[1:]  # Skip header
        except StorageConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load {self._collection}: {e}")

        records = []
        for row in all_rows:
            if len(row) < 2 or not row[0]:
                continue  # Skip empty rows
            try:
                records.append(json.loads(row[1]))
            except json.JSONDecodeError as e:
                raise CorruptDataError(
                    f"Row for {self._collection} {row[0]} is not valid JSON: {e}"
                ) from e
        return self._deserialize(records)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def save(self, items: Sequence[T]) -> None:
        rows = [
            [record["id"], json.dumps(record)]
            for record in self._serialize(items)
        ]
        try:
            sheet = self._sheet()
            sheet.clear()
            sheet.append_rows([COLLECTION_COLUMNS] + rows, value_input_option="RAW")
        except StorageConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {self._collection}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
        )

    def _all_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, ValidationError):
                continue  # Skip malformed rows
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append_event(self, event: AuditEvent) -> bool:
        self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._all_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

"""
Google Sheets Storage Implementation

DESIGN DECISION: A Google spreadsheet acts as the hosted document store:
one worksheet per collection, one document per row.
1. Users can see and export their own data directly
2. No database to run
3. Access control and backup come from Google's infrastructure

TRADEOFFS:
- Not suitable for high-volume data (fine for personal finance)
- No transactions: a transaction write and its budget write are two
  separate row writes, exactly the best-effort model reconciliation expects
- Limited query capabilities (we filter in Python)

Row layout: the four "$" metadata columns, then the collection's fields.
Empty cells read back as None.
"""

import json
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_tracker.config import get_settings
from finance_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_tracker.services.storage.interface import (
    CREATED_AT_KEY,
    ID_KEY,
    META_KEYS,
    PERMISSIONS_KEY,
    UPDATED_AT_KEY,
    AuditStorageInterface,
    Document,
    DocumentPage,
    DocumentStoreInterface,
    DuplicateError,
    Filter,
    NotFoundError,
    PermissionDeniedError,
    StorageConnectionError,
    StorageError,
    can_read,
    can_write,
    matches_all,
    to_cell,
)


logger = structlog.get_logger(__name__)


# Field columns per collection (after the metadata columns)
COLLECTION_FIELDS = {
    "transactions": [
        "userId",
        "type",
        "amount",
        "category",
        "date",
        "note",
    ],
    "goals": [
        "userId",
        "title",
        "targetAmount",
        "savedAmount",
        "deadline",
        "description",
        "completed",
    ],
    "budgets": [
        "userId",
        "category",
        "month",
        "budgetAmount",
        "spentAmount",
        "notes",
        "alertThreshold",
        "autoCreated",
    ],
    "profiles": [
        "username",
        "email",
        "firstName",
        "lastName",
        "birthDate",
        "avatarUrl",
        "createdDate",
    ],
    "accounts": [
        "email",
        "name",
        "passwordHash",
        "createdAt",
    ],
}

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "user_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

_read_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def columns_for(collection: str) -> list[str]:
    try:
        return list(META_KEYS) + COLLECTION_FIELDS[collection]
    except KeyError:
        raise StorageError(f"Unknown collection: {collection}")


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

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
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        return self._get_or_create(
            self._settings.sheet_name_for(collection),
            columns_for(collection),
            rows=1000,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsDocumentStore(DocumentStoreInterface):
    """
    Google Sheets implementation of the document store.

    Field values are written in their normalized string form; parsing
    them back into typed values is the repositories' job.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _document_to_row(self, collection: str, document: Document) -> list[str]:
        unknown = set(document) - set(columns_for(collection))
        if unknown:
            raise StorageError(
                f"Unknown attributes for {collection}: {sorted(unknown)}"
            )
        row = []
        for column in columns_for(collection):
            if column == PERMISSIONS_KEY:
                row.append(json.dumps(document.get(PERMISSIONS_KEY, [])))
            else:
                row.append(to_cell(document.get(column)))
        return row

    def _row_to_document(self, collection: str, row: list) -> Document:
        document: Document = {}
        for index, column in enumerate(columns_for(collection)):
            value = row[index] if index < len(row) else ""
            if column == PERMISSIONS_KEY:
                document[column] = json.loads(value) if value else []
            else:
                document[column] = value if value != "" else None
        return document

    @_read_retry
    def _read_rows(self, collection: str) -> tuple[gspread.Worksheet, list[list]]:
        sheet = self._client.get_collection_sheet(collection)
        return sheet, sheet.get_all_values()

    def _locate(self, collection: str, document_id: str) -> tuple[gspread.Worksheet, int, Document]:
        """Find a document's sheet row (1-based, header is row 1)."""
        sheet, all_rows = self._read_rows(collection)
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == document_id:
                return sheet, idx, self._row_to_document(collection, row)
        raise NotFoundError(f"Document not found: {collection}/{document_id}")

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: int = 25,
        offset: int = 0,
        owner: Optional[str] = None,
    ) -> DocumentPage:
        try:
            _, all_rows = self._read_rows(collection)
        except gspread.exceptions.APIError as e:
            raise StorageConnectionError(f"Failed to query {collection}: {e}")

        matching = []
        for row in all_rows[1:]:  # Skip header
            if not row or not row[0]:  # Skip empty rows
                continue
            document = self._row_to_document(collection, row)
            if not matches_all(document, filters):
                continue
            if owner is not None and not can_read(document, owner):
                continue
            matching.append(document)

        return DocumentPage(
            documents=matching[offset:offset + limit],
            total=len(matching),
        )

    async def get(
        self,
        collection: str,
        document_id: str,
        owner: Optional[str] = None,
    ) -> Document:
        try:
            _, _, document = self._locate(collection, document_id)
        except gspread.exceptions.APIError as e:
            raise StorageConnectionError(f"Failed to get {collection}/{document_id}: {e}")
        if owner is not None and not can_read(document, owner):
            raise PermissionDeniedError(f"Read not allowed: {collection}/{document_id}")
        return document

    async def create(
        self,
        collection: str,
        document_id: str,
        fields: Document,
        permissions: Optional[list[str]] = None,
    ) -> Document:
        now = datetime.utcnow().isoformat()
        document = {k: v for k, v in fields.items() if k not in META_KEYS}
        document[ID_KEY] = document_id
        document[PERMISSIONS_KEY] = list(permissions or [])
        document[CREATED_AT_KEY] = now
        document[UPDATED_AT_KEY] = now
        row = self._document_to_row(collection, document)

        try:
            sheet, all_rows = self._read_rows(collection)
            if any(r and r[0] == document_id for r in all_rows[1:]):
                raise DuplicateError(f"Document already exists: {collection}/{document_id}")
            sheet.append_row(row, value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create {collection} document: {e}")

        return self._row_to_document(collection, row)

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: Document,
        owner: Optional[str] = None,
    ) -> Document:
        try:
            sheet, idx, document = self._locate(collection, document_id)
            if owner is not None and not can_write(document, owner):
                raise PermissionDeniedError(f"Write not allowed: {collection}/{document_id}")

            document.update({k: v for k, v in fields.items() if k not in META_KEYS})
            document[UPDATED_AT_KEY] = datetime.utcnow().isoformat()
            row = self._document_to_row(collection, document)

            last_cell = rowcol_to_a1(idx, len(row))
            sheet.update(
                range_name=f"A{idx}:{last_cell}",
                values=[row],
                value_input_option="RAW",
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection}/{document_id}: {e}")

        return self._row_to_document(collection, row)

    async def delete(
        self,
        collection: str,
        document_id: str,
        owner: Optional[str] = None,
    ) -> None:
        try:
            sheet, idx, document = self._locate(collection, document_id)
            if owner is not None and not can_write(document, owner):
                raise PermissionDeniedError(f"Write not allowed: {collection}/{document_id}")
            sheet.delete_rows(idx)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {collection}/{document_id}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

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
            entity_id=safe_get(5) or None,
            user_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, KeyError) as e:
                logger.warning("audit_row_unreadable", error=str(e), event_id=row[0])
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. Users can view and export their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

Only transactions and the audit log are kept in Sheets. Profiles,
receipts and chat history use the in-memory backends alongside it.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pocketledger.config import GoogleSheetsSettings, get_settings
from pocketledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pocketledger.models.finance import (
    Transaction,
    TransactionSource,
    TransactionType,
)
from pocketledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)

TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "slug",
    "title",
    "type",
    "amount",
    "category",
    "date",
    "notes",
    "receipt_url",
    "source",
    "created_at",
    "updated_at",
]

# Matches AuditEvent.to_sheets_row()
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


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
        """Authenticate with the service account credentials."""
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

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name,
            TRANSACTION_COLUMNS,
            rows=1000,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,
        )


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row, every user in the same sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _transaction_to_row(transaction: Transaction) -> list:
        return [
            str(transaction.id),
            transaction.user_id,
            transaction.slug,
            transaction.title,
            transaction.type.value,
            str(transaction.amount),
            transaction.category,
            transaction.date.isoformat(),
            transaction.notes or "",
            transaction.receipt_url or "",
            transaction.source.value,
            transaction.created_at.isoformat(),
            transaction.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_transaction(row: list) -> Transaction:
        return Transaction(
            id=UUID(_safe_get(row, 0)),
            user_id=_safe_get(row, 1),
            slug=_safe_get(row, 2),
            title=_safe_get(row, 3),
            type=TransactionType(_safe_get(row, 4)),
            amount=Decimal(_safe_get(row, 5)),
            category=_safe_get(row, 6),
            date=date.fromisoformat(_safe_get(row, 7)),
            notes=_safe_get(row, 8) or None,
            receipt_url=_safe_get(row, 9) or None,
            source=TransactionSource(_safe_get(row, 10, TransactionSource.MANUAL.value)),
            created_at=datetime.fromisoformat(_safe_get(row, 11)),
            updated_at=datetime.fromisoformat(_safe_get(row, 12)),
        )

    def _load_all(self) -> list[Transaction]:
        sheet = self._client.get_transactions_sheet()
        transactions = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except (ValueError, TypeError, InvalidOperation) as e:
                logger.warning("sheets_malformed_row", sheet="transactions", error=str(e))
        return transactions

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def save_transaction(self, transaction: Transaction) -> bool:
        try:
            existing = self._load_all()
            if any(
                t.id == transaction.id
                or (t.user_id == transaction.user_id and t.slug == transaction.slug)
                for t in existing
            ):
                raise DuplicateError(f"Transaction already exists: {transaction.slug}")
            sheet = self._client.get_transactions_sheet()
            sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        try:
            for transaction in self._load_all():
                if transaction.id == transaction_id:
                    return transaction
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def get_transaction_by_slug(
        self,
        user_id: str,
        slug: str,
    ) -> Optional[Transaction]:
        try:
            for transaction in self._load_all():
                if transaction.user_id == user_id and transaction.slug == slug:
                    return transaction
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def update_transaction(self, transaction: Transaction) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()

            # Row 1 is the header
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(transaction.id):
                    sheet.update(
                        values=[self._transaction_to_row(transaction)],
                        range_name=f"A{idx}",
                    )
                    return True

            raise NotFoundError(f"Transaction not found: {transaction.id}")
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(transaction_id):
                    sheet.delete_rows(idx)
                    return True

            return False
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def list_transactions(
        self,
        user_id: str,
        type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Transaction]:
        try:
            transactions = []
            for t in self._load_all():
                if t.user_id != user_id:
                    continue
                if type and t.type != type:
                    continue
                if category and t.category.lower() != category.lower():
                    continue
                if date_from and t.date < date_from:
                    continue
                if date_to and t.date > date_to:
                    continue
                transactions.append(t)

            transactions.sort(key=lambda t: (t.date, t.created_at), reverse=True)
            return transactions[offset:offset + limit]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

    async def list_all_transactions(self, limit: Optional[int] = None) -> list[Transaction]:
        try:
            transactions = self._load_all()
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")
        transactions.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return transactions if limit is None else transactions[:limit]

    async def list_slugs(self, user_id: str) -> set[str]:
        try:
            return {t.slug for t in self._load_all() if t.user_id == user_id}
        except Exception as e:
            raise StorageError(f"Failed to list slugs: {e}")

    async def count_transactions(self, user_id: Optional[str] = None) -> int:
        try:
            transactions = self._load_all()
        except Exception as e:
            raise StorageError(f"Failed to count transactions: {e}")
        if user_id is None:
            return len(transactions)
        return sum(1 for t in transactions if t.user_id == user_id)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_event(row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            user_id=_safe_get(row, 4) or None,
            entity_type=_safe_get(row, 5) or None,
            entity_id=_safe_get(row, 6) or None,
            correlation_id=UUID(_safe_get(row, 7)) if _safe_get(row, 7) else None,
            description=_safe_get(row, 8),
            details=json.loads(_safe_get(row, 9)) if _safe_get(row, 9) else {},
            error_message=_safe_get(row, 10) or None,
            is_user_action=_safe_get(row, 11).lower() == "true",
        )

    def _load_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, TypeError) as e:
                logger.warning("sheets_malformed_row", sheet="audit", error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._load_events() if e.correlation_id == correlation_id]
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
                e for e in self._load_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._load_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

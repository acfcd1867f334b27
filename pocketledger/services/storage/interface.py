"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the flows and pages need.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Collection
from datetime import date
from typing import Optional
from uuid import UUID

from pocketledger.models.audit import AuditEvent
from pocketledger.models.finance import (
    ChatMessage,
    FinancialProfile,
    ReceiptImage,
    Transaction,
    TransactionType,
)


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Slugs are unique per user, not globally.
    """

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Save a new transaction.

        Raises:
            DuplicateError: If the id or the (user, slug) pair already exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def get_transaction_by_slug(
        self,
        user_id: str,
        slug: str,
    ) -> Optional[Transaction]:
        """Look up one of a user's transactions by its slug."""
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> bool:
        """
        Replace a stored transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """Returns False if there was nothing to delete."""
        pass

    @abstractmethod
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
        """
        List a user's transactions, newest date first.

        Args:
            user_id: Owner of the transactions
            type: Only income or only expenses
            category: Exact category match (case-insensitive)
            date_from: Transactions on or after this date
            date_to: Transactions on or before this date
            limit: Maximum number of results
            offset: Number of results to skip
        """
        pass

    @abstractmethod
    async def list_all_transactions(self, limit: Optional[int] = None) -> list[Transaction]:
        """Every user's transactions, newest first. Admin only."""
        pass

    @abstractmethod
    async def list_slugs(self, user_id: str) -> set[str]:
        pass

    @abstractmethod
    async def count_transactions(self, user_id: Optional[str] = None) -> int:
        """Number of transactions, for one user or (None) for everyone."""
        pass


class ProfileStorageInterface(ABC):
    """Financial profiles, one per user."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[FinancialProfile]:
        pass

    @abstractmethod
    async def save_profile(self, profile: FinancialProfile) -> bool:
        """Insert or replace the user's profile."""
        pass

    @abstractmethod
    async def list_profiles(self) -> list[FinancialProfile]:
        pass


class ReceiptStorageInterface(ABC):
    """Metadata of receipt images. The image bytes live in object storage."""

    @abstractmethod
    async def save_receipt(self, receipt: ReceiptImage) -> bool:
        pass

    @abstractmethod
    async def get_receipt(self, receipt_id: UUID) -> Optional[ReceiptImage]:
        pass

    @abstractmethod
    async def list_receipts(
        self,
        user_id: Optional[str] = None,
        transaction_id: Optional[UUID] = None,
    ) -> list[ReceiptImage]:
        """
        List receipts, newest upload first.

        With no arguments every receipt is returned (admin statistics).
        """
        pass

    @abstractmethod
    async def delete_receipt(self, receipt_id: UUID) -> bool:
        pass


class MessageStorageInterface(ABC):
    """Persisted chat history, per user and assistant."""

    @abstractmethod
    async def append_message(self, message: ChatMessage) -> bool:
        pass

    @abstractmethod
    async def list_messages(
        self,
        user_id: str,
        assistant_id: str,
        limit: Optional[int] = None,
    ) -> list[ChatMessage]:
        """
        Conversation in chronological order.

        With a limit, the most recent `limit` messages are returned
        (still oldest first).
        """
        pass

    @abstractmethod
    async def delete_messages(self, user_id: str, assistant_id: str) -> int:
        """Delete a conversation. Returns how many messages were removed."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


_NON_SLUG_CHARS = re.compile(r"[^a-zA-Z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def generate_slug(title: str, taken: Collection[str] = ()) -> str:
    """
    Build a URL slug from a transaction title.

    "Coffee @ Joe's" -> "coffee-joes". If the slug is already in `taken`
    (the user's existing slugs) a counter is appended: "coffee-joes-1",
    "coffee-joes-2", ...
    """
    base = _NON_SLUG_CHARS.sub("", title).strip().lower()
    base = _WHITESPACE.sub("-", base).strip("-")
    if not base:
        base = "transaction"

    slug = base
    counter = 0
    while slug in taken:
        counter += 1
        slug = f"{base}-{counter}"
    return slug

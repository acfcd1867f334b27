"""
In-memory storage backends.

Used when Google Sheets is not configured, and by the tests. Data lives
for the lifetime of the process only.
"""

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
from pocketledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    MessageStorageInterface,
    NotFoundError,
    ProfileStorageInterface,
    ReceiptStorageInterface,
    TransactionStorageInterface,
)


def _newest_first(transactions: list[Transaction]) -> list[Transaction]:
    return sorted(
        transactions,
        key=lambda t: (t.date, t.created_at),
        reverse=True,
    )


class InMemoryTransactionStorage(TransactionStorageInterface):

    def __init__(self):
        self._transactions: dict[UUID, Transaction] = {}

    async def save_transaction(self, transaction: Transaction) -> bool:
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction {transaction.id} already exists")
        if transaction.slug in await self.list_slugs(transaction.user_id):
            raise DuplicateError(f"Slug already in use: {transaction.slug}")
        self._transactions[transaction.id] = transaction
        return True

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    async def get_transaction_by_slug(
        self,
        user_id: str,
        slug: str,
    ) -> Optional[Transaction]:
        for transaction in self._transactions.values():
            if transaction.user_id == user_id and transaction.slug == slug:
                return transaction
        return None

    async def update_transaction(self, transaction: Transaction) -> bool:
        if transaction.id not in self._transactions:
            raise NotFoundError(f"Transaction {transaction.id} not found")
        self._transactions[transaction.id] = transaction
        return True

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

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
        results = [
            t for t in self._transactions.values()
            if t.user_id == user_id
            and (type is None or t.type == type)
            and (category is None or t.category.lower() == category.lower())
            and (date_from is None or t.date >= date_from)
            and (date_to is None or t.date <= date_to)
        ]
        return _newest_first(results)[offset:offset + limit]

    async def list_all_transactions(self, limit: Optional[int] = None) -> list[Transaction]:
        results = _newest_first(list(self._transactions.values()))
        return results if limit is None else results[:limit]

    async def list_slugs(self, user_id: str) -> set[str]:
        return {t.slug for t in self._transactions.values() if t.user_id == user_id}

    async def count_transactions(self, user_id: Optional[str] = None) -> int:
        if user_id is None:
            return len(self._transactions)
        return sum(1 for t in self._transactions.values() if t.user_id == user_id)


class InMemoryProfileStorage(ProfileStorageInterface):

    def __init__(self):
        self._profiles: dict[str, FinancialProfile] = {}

    async def get_profile(self, user_id: str) -> Optional[FinancialProfile]:
        return self._profiles.get(user_id)

    async def save_profile(self, profile: FinancialProfile) -> bool:
        self._profiles[profile.user_id] = profile
        return True

    async def list_profiles(self) -> list[FinancialProfile]:
        return sorted(self._profiles.values(), key=lambda p: p.created_at, reverse=True)


class InMemoryReceiptStorage(ReceiptStorageInterface):

    def __init__(self):
        self._receipts: dict[UUID, ReceiptImage] = {}

    async def save_receipt(self, receipt: ReceiptImage) -> bool:
        if receipt.id in self._receipts:
            raise DuplicateError(f"Receipt {receipt.id} already exists")
        self._receipts[receipt.id] = receipt
        return True

    async def get_receipt(self, receipt_id: UUID) -> Optional[ReceiptImage]:
        return self._receipts.get(receipt_id)

    async def list_receipts(
        self,
        user_id: Optional[str] = None,
        transaction_id: Optional[UUID] = None,
    ) -> list[ReceiptImage]:
        results = [
            r for r in self._receipts.values()
            if (user_id is None or r.user_id == user_id)
            and (transaction_id is None or r.transaction_id == transaction_id)
        ]
        return sorted(results, key=lambda r: r.uploaded_at, reverse=True)

    async def delete_receipt(self, receipt_id: UUID) -> bool:
        return self._receipts.pop(receipt_id, None) is not None


class InMemoryMessageStorage(MessageStorageInterface):

    def __init__(self):
        self._messages: list[ChatMessage] = []

    async def append_message(self, message: ChatMessage) -> bool:
        self._messages.append(message)
        return True

    async def list_messages(
        self,
        user_id: str,
        assistant_id: str,
        limit: Optional[int] = None,
    ) -> list[ChatMessage]:
        conversation = [
            m for m in self._messages
            if m.user_id == user_id and m.assistant_id == assistant_id
        ]
        if limit is not None:
            conversation = conversation[-limit:] if limit > 0 else []
        return conversation

    async def delete_messages(self, user_id: str, assistant_id: str) -> int:
        kept = [
            m for m in self._messages
            if not (m.user_id == user_id and m.assistant_id == assistant_id)
        ]
        removed = len(self._messages) - len(kept)
        self._messages = kept
        return removed


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]

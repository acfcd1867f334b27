"""Tests for slugs and the storage backends."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from pocketledger.models import (
    AuditEventBuilder,
    ChatMessage,
    ReceiptImage,
    Transaction,
    TransactionType,
)
from pocketledger.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryMessageStorage,
    InMemoryReceiptStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    generate_slug,
)
from pocketledger.services.storage.google_sheets import TRANSACTION_COLUMNS


def make_transaction(slug="coffee", user_id="user-1", **overrides) -> Transaction:
    fields = {
        "user_id": user_id,
        "slug": slug,
        "title": slug.title(),
        "type": TransactionType.EXPENSE,
        "amount": Decimal("4.50"),
        "category": "Food & Dining",
        "date": date(2024, 3, 1),
    }
    fields.update(overrides)
    return Transaction(**fields)


class TestGenerateSlug:
    """Slugs are URL-safe and unique per user."""

    @pytest.mark.parametrize("title,slug", [
        ("Coffee", "coffee"),
        ("Coffee @ Joe's", "coffee-joes"),
        ("  Monthly   Rent  ", "monthly-rent"),
        ("Café 2024", "caf-2024"),
        ("!!!", "transaction"),
        ("", "transaction"),
    ])
    def test_slug_from_title(self, title, slug):
        assert generate_slug(title) == slug

    def test_counter_appended_until_unique(self):
        taken = {"coffee", "coffee-1"}
        assert generate_slug("Coffee", taken) == "coffee-2"

    def test_counter_starts_at_one(self):
        assert generate_slug("Coffee", {"coffee"}) == "coffee-1"


class TestInMemoryTransactionStorage:

    def test_save_and_get(self):
        storage = InMemoryTransactionStorage()
        transaction = make_transaction()

        asyncio.run(storage.save_transaction(transaction))

        assert asyncio.run(storage.get_transaction(transaction.id)) == transaction
        assert asyncio.run(storage.get_transaction_by_slug("user-1", "coffee")) == transaction
        assert asyncio.run(storage.get_transaction_by_slug("user-2", "coffee")) is None

    def test_duplicate_slug_rejected_per_user(self):
        storage = InMemoryTransactionStorage()
        asyncio.run(storage.save_transaction(make_transaction()))

        with pytest.raises(DuplicateError):
            asyncio.run(storage.save_transaction(make_transaction()))
        # another user may use the same slug
        asyncio.run(storage.save_transaction(make_transaction(user_id="user-2")))

    def test_update_missing_raises(self):
        storage = InMemoryTransactionStorage()
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update_transaction(make_transaction()))

    def test_delete(self):
        storage = InMemoryTransactionStorage()
        transaction = make_transaction()
        asyncio.run(storage.save_transaction(transaction))

        assert asyncio.run(storage.delete_transaction(transaction.id)) is True
        assert asyncio.run(storage.delete_transaction(transaction.id)) is False

    def test_list_filters_and_orders_newest_first(self):
        storage = InMemoryTransactionStorage()
        for slug, day, type_, category in [
            ("a", 1, TransactionType.EXPENSE, "Food & Dining"),
            ("b", 5, TransactionType.INCOME, "Business"),
            ("c", 3, TransactionType.EXPENSE, "Travel"),
            ("d", 9, TransactionType.EXPENSE, "food & dining"),
        ]:
            asyncio.run(storage.save_transaction(make_transaction(
                slug=slug, date=date(2024, 3, day), type=type_, category=category
            )))
        asyncio.run(storage.save_transaction(make_transaction(slug="z", user_id="user-2")))

        all_mine = asyncio.run(storage.list_transactions("user-1"))
        assert [t.slug for t in all_mine] == ["d", "b", "c", "a"]

        expenses = asyncio.run(storage.list_transactions("user-1", type=TransactionType.EXPENSE))
        assert [t.slug for t in expenses] == ["d", "c", "a"]

        food = asyncio.run(storage.list_transactions("user-1", category="FOOD & DINING"))
        assert [t.slug for t in food] == ["d", "a"]

        ranged = asyncio.run(storage.list_transactions(
            "user-1", date_from=date(2024, 3, 3), date_to=date(2024, 3, 5)
        ))
        assert [t.slug for t in ranged] == ["b", "c"]

        page = asyncio.run(storage.list_transactions("user-1", limit=2, offset=1))
        assert [t.slug for t in page] == ["b", "c"]

    def test_counts_and_slugs(self):
        storage = InMemoryTransactionStorage()
        asyncio.run(storage.save_transaction(make_transaction("a")))
        asyncio.run(storage.save_transaction(make_transaction("b")))
        asyncio.run(storage.save_transaction(make_transaction("a", user_id="user-2")))

        assert asyncio.run(storage.count_transactions("user-1")) == 2
        assert asyncio.run(storage.count_transactions()) == 3
        assert asyncio.run(storage.list_slugs("user-1")) == {"a", "b"}
        assert len(asyncio.run(storage.list_all_transactions(limit=2))) == 2


class TestInMemoryReceiptStorage:

    def test_list_by_user_and_transaction(self):
        storage = InMemoryReceiptStorage()
        transaction_id = uuid4()
        linked = ReceiptImage(
            user_id="user-1", transaction_id=transaction_id, file_name="a.jpg", file_path="p/a"
        )
        loose = ReceiptImage(user_id="user-1", file_name="b.jpg", file_path="p/b")
        other = ReceiptImage(user_id="user-2", file_name="c.jpg", file_path="p/c")
        for receipt in (linked, loose, other):
            asyncio.run(storage.save_receipt(receipt))

        assert len(asyncio.run(storage.list_receipts())) == 3
        assert len(asyncio.run(storage.list_receipts(user_id="user-1"))) == 2
        assert asyncio.run(storage.list_receipts(transaction_id=transaction_id)) == [linked]

    def test_delete(self):
        storage = InMemoryReceiptStorage()
        receipt = ReceiptImage(user_id="user-1", file_name="a.jpg", file_path="p/a")
        asyncio.run(storage.save_receipt(receipt))

        assert asyncio.run(storage.delete_receipt(receipt.id)) is True
        assert asyncio.run(storage.get_receipt(receipt.id)) is None


class TestInMemoryMessageStorage:

    def _message(self, content, assistant_id="income", user_id="user-1"):
        return ChatMessage(
            user_id=user_id, assistant_id=assistant_id, role="user", content=content
        )

    def test_conversation_is_chronological_and_scoped(self):
        storage = InMemoryMessageStorage()
        for message in [
            self._message("one"),
            self._message("other assistant", assistant_id="expenditure"),
            self._message("two"),
            self._message("other user", user_id="user-2"),
            self._message("three"),
        ]:
            asyncio.run(storage.append_message(message))

        conversation = asyncio.run(storage.list_messages("user-1", "income"))
        assert [m.content for m in conversation] == ["one", "two", "three"]

        latest = asyncio.run(storage.list_messages("user-1", "income", limit=2))
        assert [m.content for m in latest] == ["two", "three"]

    def test_delete_only_that_conversation(self):
        storage = InMemoryMessageStorage()
        asyncio.run(storage.append_message(self._message("a")))
        asyncio.run(storage.append_message(self._message("b")))
        asyncio.run(storage.append_message(self._message("c", assistant_id="expenditure")))

        assert asyncio.run(storage.delete_messages("user-1", "income")) == 2
        assert asyncio.run(storage.list_messages("user-1", "income")) == []
        assert len(asyncio.run(storage.list_messages("user-1", "expenditure"))) == 1


class TestInMemoryAuditStorage:

    def test_lookup_by_entity_and_correlation(self):
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        transaction_id = uuid4()
        created = AuditEventBuilder.transaction_created(
            "user-1", transaction_id, "Coffee", "4.50", correlation_id=correlation_id
        )
        deleted = AuditEventBuilder.transaction_deleted("user-1", transaction_id)
        asyncio.run(storage.append_event(created))
        asyncio.run(storage.append_event(deleted))

        assert asyncio.run(storage.get_events_by_correlation_id(correlation_id)) == [created]
        by_entity = asyncio.run(storage.get_events_by_entity("transaction", str(transaction_id)))
        assert by_entity == [created, deleted]
        assert asyncio.run(storage.get_recent_events(limit=1)) == [deleted]


# =============================================================================
# GOOGLE SHEETS (with a fake worksheet)
# =============================================================================

class FakeWorksheet:
    """The slice of gspread.Worksheet the storage uses."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append(list(row))

    def update(self, values, range_name):
        index = int(range_name[1:]) - 1
        self.rows[index] = list(values[0])

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.transactions = FakeWorksheet(TRANSACTION_COLUMNS)
        self.audit = FakeWorksheet(["event_id"])

    def get_transactions_sheet(self):
        return self.transactions

    def get_audit_sheet(self):
        return self.audit


class TestGoogleSheetsTransactionStorage:

    def test_row_round_trip(self):
        transaction = make_transaction(
            notes="Morning coffee",
            created_at=datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc),
        )
        row = GoogleSheetsTransactionStorage._transaction_to_row(transaction)

        assert len(row) == len(TRANSACTION_COLUMNS)
        assert row[5] == "4.50"
        assert GoogleSheetsTransactionStorage._row_to_transaction(row) == transaction

    def test_save_get_update_delete(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsTransactionStorage(client)
        transaction = make_transaction()

        asyncio.run(storage.save_transaction(transaction))
        assert len(client.transactions.rows) == 2
        assert asyncio.run(storage.get_transaction_by_slug("user-1", "coffee")) == transaction

        with pytest.raises(DuplicateError):
            asyncio.run(storage.save_transaction(make_transaction()))

        changed = transaction.model_copy(update={"amount": Decimal("5.00")})
        asyncio.run(storage.update_transaction(changed))
        assert asyncio.run(storage.get_transaction(transaction.id)).amount == Decimal("5.00")

        assert asyncio.run(storage.delete_transaction(transaction.id)) is True
        assert len(client.transactions.rows) == 1
        assert asyncio.run(storage.delete_transaction(transaction.id)) is False

    def test_update_missing_raises_not_found(self):
        storage = GoogleSheetsTransactionStorage(FakeSheetsClient())
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update_transaction(make_transaction()))

    def test_malformed_rows_are_skipped(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsTransactionStorage(client)
        asyncio.run(storage.save_transaction(make_transaction()))
        client.transactions.rows.append(["not-a-uuid", "user-1", "bad"])
        client.transactions.rows.append([])

        transactions = asyncio.run(storage.list_transactions("user-1"))
        assert [t.slug for t in transactions] == ["coffee"]
        assert asyncio.run(storage.count_transactions()) == 1

    def test_list_orders_newest_first(self):
        storage = GoogleSheetsTransactionStorage(FakeSheetsClient())
        for slug, day in [("a", 1), ("b", 3), ("c", 2)]:
            asyncio.run(storage.save_transaction(make_transaction(slug, date=date(2024, 3, day))))

        assert [t.slug for t in asyncio.run(storage.list_transactions("user-1"))] == ["b", "c", "a"]
        assert asyncio.run(storage.list_slugs("user-1")) == {"a", "b", "c"}


class TestGoogleSheetsAuditStorage:

    def test_append_and_read_back(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsAuditStorage(client)
        older = AuditEventBuilder.rate_limit_exceeded("user-1", "chat:user-1", 10, 30)
        older = older.model_copy(update={"timestamp": older.timestamp - timedelta(minutes=1)})
        newer = AuditEventBuilder.chat_request_invalid("user-1", "Message cannot be empty")

        asyncio.run(storage.append_event(older))
        asyncio.run(storage.append_event(newer))

        recent = asyncio.run(storage.get_recent_events())
        assert [e.event_id for e in recent] == [newer.event_id, older.event_id]
        assert recent[1].details == {"limit": 10, "retry_after": 30}
        assert recent[0].is_user_action is False

        by_entity = asyncio.run(storage.get_events_by_entity("rate_limit", "chat:user-1"))
        assert [e.event_id for e in by_entity] == [older.event_id]

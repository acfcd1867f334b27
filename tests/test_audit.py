"""Tests for the audit logger."""

import asyncio

from pocketledger.audit import AuditLogger
from pocketledger.models import AuditEventBuilder, AuditSeverity
from pocketledger.services.storage import InMemoryAuditStorage, StorageError


class BrokenAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise StorageError("sheet unavailable")


class TestAuditLogger:

    def test_persists_event(self):
        storage = InMemoryAuditStorage()
        event = AuditEventBuilder.chat_request_invalid("user-1", "Message cannot be empty")

        assert asyncio.run(AuditLogger(storage).log(event))
        assert storage.events == [event]

    def test_storage_failure_does_not_raise(self):
        event = AuditEventBuilder.chat_request_invalid("user-1", "Message cannot be empty")
        assert asyncio.run(AuditLogger(BrokenAuditStorage()).log(event)) is False

    def test_without_storage(self):
        event = AuditEventBuilder.chat_request_invalid("user-1", "Message cannot be empty")
        assert asyncio.run(AuditLogger().log(event))

    def test_rate_limit_event_is_a_warning(self):
        storage = InMemoryAuditStorage()
        asyncio.run(AuditLogger(storage).log_rate_limited(
            user_id="user-1", key="chat:user-1", limit=10, retry_after=30
        ))

        event = storage.events[0]
        assert event.severity == AuditSeverity.WARNING
        assert event.details["retry_after"] == 30

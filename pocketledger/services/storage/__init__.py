"""
Storage Services Package

Abstract interfaces plus two sets of backends: in-memory (default, tests)
and Google Sheets for transactions and the audit log.
"""

from pocketledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    MessageStorageInterface,
    NotFoundError,
    ProfileStorageInterface,
    ReceiptStorageInterface,
    StorageError,
    TransactionStorageInterface,
    generate_slug,
)
from pocketledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
)
from pocketledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryMessageStorage,
    InMemoryProfileStorage,
    InMemoryReceiptStorage,
    InMemoryTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "MessageStorageInterface",
    "ProfileStorageInterface",
    "ReceiptStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory backends
    "InMemoryAuditStorage",
    "InMemoryMessageStorage",
    "InMemoryProfileStorage",
    "InMemoryReceiptStorage",
    "InMemoryTransactionStorage",
    # Google Sheets backends
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTransactionStorage",
    "generate_slug",
]

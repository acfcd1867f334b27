"""
Data Models Package

All Pydantic models used in PocketLedger. Everything the application
stores or hands to an external service conforms to these schemas.
"""

from pocketledger.models.finance import (
    ChatMessage,
    ChatRole,
    ExtractedReceipt,
    FinancialProfile,
    ReceiptImage,
    Transaction,
    TRANSACTION_CATEGORIES,
    TransactionInput,
    TransactionSource,
    TransactionType,
    TransactionUpdate,
    UserRole,
    ValidationIssue,
    ValidationResult,
    parse_financial_amount,
    utcnow,
)
from pocketledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "ChatMessage",
    "ChatRole",
    "ExtractedReceipt",
    "FinancialProfile",
    "ReceiptImage",
    "Transaction",
    "TRANSACTION_CATEGORIES",
    "TransactionInput",
    "TransactionSource",
    "TransactionType",
    "TransactionUpdate",
    "UserRole",
    "ValidationIssue",
    "ValidationResult",
    "parse_financial_amount",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

"""
Audit Models for PocketLedger

Every significant action in the system is logged for audit purposes:
transaction changes, receipt processing, assistant conversations and
rate limit rejections.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from pocketledger.models.finance import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Receipts
    RECEIPT_UPLOADED = "receipt_uploaded"
    RECEIPT_QUALITY_FAILED = "receipt_quality_failed"
    RECEIPT_EXTRACTED = "receipt_extracted"
    RECEIPT_REJECTED = "receipt_rejected"
    RECEIPT_VALIDATION_FAILED = "receipt_validation_failed"
    RECEIPT_CONFIRMED = "receipt_confirmed"
    RECEIPT_DELETED = "receipt_deleted"

    # Profile
    PROFILE_UPDATED = "profile_updated"

    # Chat
    CHAT_MESSAGE_SENT = "chat_message_sent"
    CHAT_REQUEST_INVALID = "chat_request_invalid"
    CHAT_HISTORY_CLEARED = "chat_history_cleared"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who and what the event is about
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g. 'transaction', 'receipt', 'chat')"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Ties together the events of one user action"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Columns: [event_id, timestamp, event_type, severity, user_id,
        entity_type, entity_id, correlation_id, description, details_json,
        error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(user_id, transaction)
        event = AuditEventBuilder.rate_limit_exceeded(user_id, "chat", 10, 42)
    """

    @staticmethod
    def transaction_created(
        user_id: str,
        transaction_id: UUID,
        title: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description=f"Transaction created: {title} - {amount}",
            details={"title": title, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: UUID,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            description=f"Transaction updated: {', '.join(fields) or 'no changes'}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(user_id: str, transaction_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def receipt_uploaded(
        user_id: str,
        receipt_id: UUID,
        file_name: str,
        file_size: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_UPLOADED,
            user_id=user_id,
            entity_type="receipt",
            entity_id=str(receipt_id),
            correlation_id=correlation_id,
            description=f"Receipt uploaded: {file_name}",
            details={"file_name": file_name, "file_size_bytes": file_size},
            is_user_action=True,
        )

    @staticmethod
    def receipt_quality_failed(
        user_id: str,
        file_name: str,
        score: float,
        issues: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_QUALITY_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Receipt image quality too low: {file_name}",
            details={"quality_score": score, "issues": issues},
        )

    @staticmethod
    def receipt_extracted(
        user_id: str,
        extraction_id: UUID,
        confidence: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_EXTRACTED,
            user_id=user_id,
            entity_type="extraction",
            entity_id=str(extraction_id),
            correlation_id=correlation_id,
            description=f"Receipt read with {confidence:.0%} confidence",
            details={"confidence_score": confidence},
        )

    @staticmethod
    def receipt_rejected(
        user_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description="Receipt could not be read",
            details={"reason": reason},
        )

    @staticmethod
    def receipt_validation_failed(
        user_id: str,
        extraction_id: UUID,
        stage: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="extraction",
            entity_id=str(extraction_id),
            correlation_id=correlation_id,
            description=f"{stage.capitalize()} validation failed with {len(issues)} issues",
            details={"stage": stage, "issues": issues},
        )

    @staticmethod
    def receipt_confirmed(
        user_id: str,
        transaction_id: UUID,
        receipt_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_CONFIRMED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description="User confirmed receipt data",
            details={"receipt_id": str(receipt_id)},
            is_user_action=True,
        )

    @staticmethod
    def receipt_deleted(
        user_id: str,
        receipt_id: UUID,
        storage_removed: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_DELETED,
            severity=AuditSeverity.INFO if storage_removed else AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="receipt",
            entity_id=str(receipt_id),
            description="Receipt image deleted",
            details={"storage_removed": storage_removed},
            is_user_action=True,
        )

    @staticmethod
    def profile_updated(user_id: str, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            user_id=user_id,
            entity_type="profile",
            entity_id=user_id,
            description="Profile updated",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def chat_message_sent(
        user_id: str,
        assistant_id: str,
        message_count: int,
        remaining: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAT_MESSAGE_SENT,
            user_id=user_id,
            entity_type="chat",
            entity_id=assistant_id,
            description=f"Chat message sent to {assistant_id} assistant",
            details={"message_count": message_count, "remaining": remaining},
            is_user_action=True,
        )

    @staticmethod
    def chat_request_invalid(user_id: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAT_REQUEST_INVALID,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="chat",
            description="Chat request rejected by validation",
            details={"reason": reason},
        )

    @staticmethod
    def chat_history_cleared(user_id: str, assistant_id: str, count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAT_HISTORY_CLEARED,
            user_id=user_id,
            entity_type="chat",
            entity_id=assistant_id,
            description=f"Cleared {count} messages",
            details={"deleted": count},
            is_user_action=True,
        )

    @staticmethod
    def rate_limit_exceeded(
        user_id: str,
        key: str,
        limit: int,
        retry_after: Optional[int],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_LIMIT_EXCEEDED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="rate_limit",
            entity_id=key,
            description=f"Rate limit exceeded for {key}",
            details={"limit": limit, "retry_after": retry_after},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )

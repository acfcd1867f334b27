"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of changes to a user's ledger
2. Debugging capability for receipt and chat failures
3. Visibility into abuse (rate limit rejections, invalid chat requests)

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocketledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from pocketledger.services.storage import AuditStorageInterface


_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structlog for JSON output. Safe to call more than once."""
    global _configured
    if _configured:
        return

    logging.basicConfig(format="%(message)s", level=level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (Google Sheets or in-memory)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("pocketledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # audit persistence never breaks the user's action
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_rate_limited(
        self,
        user_id: str,
        key: str,
        limit: int,
        retry_after: Optional[int],
    ) -> None:
        await self.log(AuditEventBuilder.rate_limit_exceeded(
            user_id=user_id,
            key=key,
            limit=limit,
            retry_after=retry_after,
        ))

    async def log_chat_invalid(self, user_id: str, reason: str) -> None:
        await self.log(AuditEventBuilder.chat_request_invalid(user_id, reason))

    async def log_chat_sent(
        self,
        user_id: str,
        assistant_id: str,
        message_count: int,
        remaining: int,
    ) -> None:
        await self.log(AuditEventBuilder.chat_message_sent(
            user_id=user_id,
            assistant_id=assistant_id,
            message_count=message_count,
            remaining=remaining,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g. a receipt upload).
    Pass it through all subsequent operations.
    """
    return uuid4()

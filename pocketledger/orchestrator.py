"""
Main Orchestrator for PocketLedger

This module ties together all the components and defines the
end-to-end flows for:
1. Chat (rate limit → validate → context → assistant → persist)
2. Transactions (create / update / delete by slug, dashboard data)
3. Receipts (upload → quality → OCR → validate → confirm → save)
4. Account (profile and targets, admin statistics and overviews)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No chat request reaches the assistant before the rate limit and the
  message validators have passed
- No receipt becomes a transaction without user confirmation
- Every mutation is audited
"""

from datetime import date, datetime
from typing import Any, NamedTuple, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel

from pocketledger.agents import (
    AssistantAgent,
    AssistantUnavailableError,
    ChatAgent,
    ChatError,
    get_assistant,
)
from pocketledger.analytics import (
    AdminReceiptRow,
    AdminStatistics,
    AdminTransactionRow,
    AdminUserRow,
    CategoryTotal,
    DashboardTotals,
    FinancialContext,
    ReceiptStats,
    ReceiptStorageStats,
    TrendPoint,
    admin_receipt_rows,
    admin_statistics,
    admin_transaction_rows,
    admin_user_rows,
    category_chart_data,
    dashboard_totals,
    income_expense_trend,
    receipt_stats,
    receipt_storage_stats,
)
from pocketledger.audit import AuditLogger, create_correlation_id
from pocketledger.config import AppSettings, get_settings, validate_all_settings
from pocketledger.formatting import format_full_timestamp
from pocketledger.models import (
    AuditEventBuilder,
    ChatMessage,
    ChatRole,
    ExtractedReceipt,
    FinancialProfile,
    ReceiptImage,
    Transaction,
    TransactionInput,
    TransactionSource,
    TransactionType,
    TransactionUpdate,
    UserRole,
    ValidationResult,
    utcnow,
)
from pocketledger.ratelimit import RATE_LIMITS, RateLimiter, RateLimitResult
from pocketledger.services.image import (
    CloudinaryReceiptService,
    ImageUploadError,
    ReceiptImageError,
)
from pocketledger.services.ocr import DocumentTypeRejectedError, MindeeReceiptService
from pocketledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryMessageStorage,
    InMemoryProfileStorage,
    InMemoryReceiptStorage,
    InMemoryTransactionStorage,
    MessageStorageInterface,
    NotFoundError,
    ProfileStorageInterface,
    ReceiptStorageInterface,
    StorageError,
    TransactionStorageInterface,
    generate_slug,
)
from pocketledger.validation import ReceiptValidator, validate_chat_messages


logger = structlog.get_logger(__name__)

NO_TURNS_MESSAGE = "At least one user or assistant message is required"


# =============================================================================
# ERRORS
# =============================================================================

class RateLimitExceededError(ChatError):
    """The caller used up its window. `result` carries the 429 details."""

    def __init__(self, result: RateLimitResult):
        self.result = result
        super().__init__(f"Rate limit exceeded, retry in {result.retry_after}s")


class InvalidChatRequestError(ChatError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class UnknownAssistantError(ChatError):
    def __init__(self, assistant_id: Any):
        self.assistant_id = assistant_id
        super().__init__(f"Invalid assistant ID: {assistant_id}")


# =============================================================================
# TRANSACTIONS
# =============================================================================

class DashboardData(BaseModel):
    totals: DashboardTotals
    categories: list[CategoryTotal]
    trend: list[TrendPoint]
    recent: list[Transaction]


class TransactionFlow:
    """
    Create, edit and delete a user's transactions.

    Transactions are addressed by their per-user slug, the same way the
    detail and edit pages address them.
    """

    def __init__(
        self,
        transaction_storage: Optional[TransactionStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = transaction_storage or InMemoryTransactionStorage()
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def storage(self) -> TransactionStorageInterface:
        return self._storage

    async def create(
        self,
        user_id: str,
        data: TransactionInput,
        source: TransactionSource = TransactionSource.MANUAL,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """Save a new transaction under a slug that is unique for the user."""
        taken = await self._storage.list_slugs(user_id)
        transaction = Transaction(
            **data.model_dump(),
            user_id=user_id,
            slug=generate_slug(data.title, taken),
            source=source,
        )
        await self._storage.save_transaction(transaction)

        await self._audit_logger.log(AuditEventBuilder.transaction_created(
            user_id=user_id,
            transaction_id=transaction.id,
            title=transaction.title,
            amount=str(transaction.amount),
            correlation_id=correlation_id,
        ))
        return transaction

    async def get(self, user_id: str, slug: str) -> Optional[Transaction]:
        return await self._storage.get_transaction_by_slug(user_id, slug)

    async def _require(self, user_id: str, slug: str) -> Transaction:
        transaction = await self.get(user_id, slug)
        if transaction is None:
            raise NotFoundError(f"Transaction '{slug}' not found")
        return transaction

    async def update(
        self,
        user_id: str,
        slug: str,
        update: TransactionUpdate,
    ) -> Transaction:
        """
        Apply a partial update.

        The slug is kept even when the title changes so existing links
        keep working.

        Raises:
            NotFoundError: If the user has no transaction with this slug
        """
        current = await self._require(user_id, slug)
        updated = current.apply(update)
        await self._storage.update_transaction(updated)

        await self._audit_logger.log(AuditEventBuilder.transaction_updated(
            user_id=user_id,
            transaction_id=updated.id,
            fields=sorted(update.model_fields_set),
        ))
        return updated

    async def delete(self, user_id: str, slug: str) -> bool:
        """
        Raises:
            NotFoundError: If the user has no transaction with this slug
        """
        transaction = await self._require(user_id, slug)
        deleted = await self._storage.delete_transaction(transaction.id)
        if deleted:
            await self._audit_logger.log(
                AuditEventBuilder.transaction_deleted(user_id, transaction.id)
            )
        return deleted

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
        return await self._storage.list_transactions(
            user_id,
            type=type,
            category=category,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        )

    async def all_for_user(self, user_id: str) -> list[Transaction]:
        count = await self._storage.count_transactions(user_id)
        return await self._storage.list_transactions(user_id, limit=count)

    async def dashboard(self, user_id: str, today: Optional[date] = None) -> DashboardData:
        """Totals, category chart, six month trend and the latest five."""
        transactions = await self.all_for_user(user_id)
        return DashboardData(
            totals=dashboard_totals(transactions),
            categories=category_chart_data(transactions, today=today),
            trend=income_expense_trend(transactions, today=today),
            recent=transactions[:5],
        )


# =============================================================================
# CHAT
# =============================================================================

class ChatReply(BaseModel):
    content: str
    rate_limit: RateLimitResult


class ChatExport(NamedTuple):
    filename: str
    content: str


class ChatFlow:
    """
    Orchestrates one chat turn with an assistant.

    CRITICAL BOUNDARIES:
    1. Rate limit first: a throttled caller costs nothing downstream
    2. Messages are validated before any storage or model access
    3. The assistant only sees context loaded here, for this user
    """

    def __init__(
        self,
        agent: Optional[ChatAgent] = None,
        limiter: Optional[RateLimiter] = None,
        transaction_storage: Optional[TransactionStorageInterface] = None,
        profile_storage: Optional[ProfileStorageInterface] = None,
        receipt_storage: Optional[ReceiptStorageInterface] = None,
        message_storage: Optional[MessageStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._agent = agent or AssistantAgent()
        self._limiter = limiter or RateLimiter()
        self._transactions = transaction_storage
        self._profiles = profile_storage
        self._receipts = receipt_storage
        self._messages = message_storage or InMemoryMessageStorage()
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    async def _load_context(self, user_id: str) -> Optional[FinancialContext]:
        """
        The user's recent transactions, receipts and profile.

        Returns None when there is nothing to show the assistant, so it
        asks the user to add data instead of reasoning over zeros.
        """
        try:
            transactions = []
            if self._transactions:
                transactions = await self._transactions.list_transactions(
                    user_id, limit=self._settings.chat_context_transactions
                )
            receipts = await self._receipts.list_receipts(user_id=user_id) if self._receipts else []
            profile = await self._profiles.get_profile(user_id) if self._profiles else None
        except StorageError as e:
            logger.warning("chat_context_unavailable", user_id=user_id, error=str(e))
            return None

        if not transactions and profile is None:
            return None
        return FinancialContext.build(transactions, receipts, profile)

    async def send(
        self,
        user_id: str,
        assistant_id: Any,
        messages: Any,
    ) -> ChatReply:
        """
        Run one chat request.

        Raises:
            RateLimitExceededError: Over the CHAT_API limit
            InvalidChatRequestError: Messages failed validation
            UnknownAssistantError: No assistant with this id
            AssistantUnavailableError: The model failed
        """
        config = RATE_LIMITS["CHAT_API"]
        rate_limit = self._limiter.check(user_id, config)
        if not rate_limit.success:
            await self._audit_logger.log_rate_limited(
                user_id=user_id,
                key=config.key_for(user_id),
                limit=rate_limit.limit,
                retry_after=rate_limit.retry_after,
            )
            raise RateLimitExceededError(rate_limit)

        validation = validate_chat_messages(messages)
        if not validation.valid:
            await self._audit_logger.log_chat_invalid(user_id, validation.reason)
            raise InvalidChatRequestError(validation.reason)

        # Gemini needs at least one turn besides the system instructions
        if all(m["role"] == ChatRole.SYSTEM.value for m in messages):
            await self._audit_logger.log_chat_invalid(user_id, NO_TURNS_MESSAGE)
            raise InvalidChatRequestError(NO_TURNS_MESSAGE)

        assistant = get_assistant(assistant_id) if isinstance(assistant_id, str) else None
        if assistant is None:
            await self._audit_logger.log_chat_invalid(user_id, "Invalid assistant ID")
            raise UnknownAssistantError(assistant_id)

        conversation = [{"role": m["role"], "content": m["content"]} for m in messages]
        context = await self._load_context(user_id)

        try:
            content = await self._agent.reply(assistant, context, conversation)
        except AssistantUnavailableError as e:
            await self._audit_logger.log_external_service_error("gemini", str(e))
            raise

        await self._persist_turn(user_id, assistant.id, conversation, content)
        await self._audit_logger.log_chat_sent(
            user_id=user_id,
            assistant_id=assistant.id,
            message_count=len(conversation),
            remaining=rate_limit.remaining,
        )
        return ChatReply(content=content, rate_limit=rate_limit)

    async def _persist_turn(
        self,
        user_id: str,
        assistant_id: str,
        conversation: list[dict[str, str]],
        reply: str,
    ) -> None:
        last_user = next(
            (m for m in reversed(conversation) if m["role"] == ChatRole.USER.value),
            None,
        )
        to_save = []
        if last_user is not None:
            to_save.append(ChatMessage(
                user_id=user_id,
                assistant_id=assistant_id,
                role=ChatRole.USER,
                content=last_user["content"],
            ))
        to_save.append(ChatMessage(
            user_id=user_id,
            assistant_id=assistant_id,
            role=ChatRole.ASSISTANT,
            content=reply,
        ))

        try:
            for message in to_save:
                await self._messages.append_message(message)
        except StorageError as e:
            # the reply is still returned, only history is incomplete
            logger.error("chat_history_save_failed", user_id=user_id, error=str(e))

    async def history(
        self,
        user_id: str,
        assistant_id: str,
        limit: Optional[int] = None,
    ) -> list[ChatMessage]:
        """Oldest first."""
        return await self._messages.list_messages(user_id, assistant_id, limit=limit)

    async def clear_history(self, user_id: str, assistant_id: str) -> int:
        count = await self._messages.delete_messages(user_id, assistant_id)
        await self._audit_logger.log(
            AuditEventBuilder.chat_history_cleared(user_id, assistant_id, count)
        )
        return count

    async def export_history(
        self,
        user_id: str,
        assistant_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[ChatExport]:
        """
        Plain text transcript of a conversation.

        Returns None when there is nothing to export.

        Raises:
            UnknownAssistantError: No assistant with this id
        """
        assistant = get_assistant(assistant_id)
        if assistant is None:
            raise UnknownAssistantError(assistant_id)

        messages = await self.history(user_id, assistant_id)
        if not messages:
            return None

        now = now or utcnow()
        lines = [
            f"Chat History with {assistant.name}",
            f"Exported on: {format_full_timestamp(now)}",
            f"Total Messages: {len(messages)}",
            "=" * 51,
            "",
        ]
        for message in messages:
            speaker = "You" if message.role == ChatRole.USER else assistant.name
            lines.append(
                f"[{format_full_timestamp(message.created_at)}] {speaker}:\n{message.content}\n"
            )

        filename = f"chat-history-{assistant_id}-{now:%Y-%m-%dT%H-%M-%S}.txt"
        return ChatExport(filename=filename, content="\n".join(lines))


# =============================================================================
# RECEIPTS
# =============================================================================

class ReceiptReview(BaseModel):
    """
    What the user sees after uploading a receipt photo.

    `receipt` is None when the photo was rejected before upload.
    Nothing is saved until confirm() is called.
    """
    receipt: Optional[ReceiptImage] = None
    extracted: Optional[ExtractedReceipt] = None
    validation: Optional[ValidationResult] = None
    can_proceed: bool
    message: str
    correlation_id: UUID


class ReceiptFlow:
    """
    Orchestrates the receipt flow.

    Flow:
    1. Upload → rate limit, format and size check
    2. Quality → heuristic check before spending an OCR call
    3. Store → Cloudinary
    4. Extract → Mindee, non-receipts rejected
    5. Validate → two-stage validation
    6. Review → user edits the proposed transaction (PAUSE)
    7. Confirm → transaction (source=receipt) and receipt record saved

    Human confirmation (step 7) is MANDATORY.
    """

    def __init__(
        self,
        transaction_flow: TransactionFlow,
        receipt_storage: Optional[ReceiptStorageInterface] = None,
        image_service: Optional[CloudinaryReceiptService] = None,
        ocr_service: Optional[MindeeReceiptService] = None,
        validator: Optional[ReceiptValidator] = None,
        limiter: Optional[RateLimiter] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transaction_flow
        self._receipts = receipt_storage or InMemoryReceiptStorage()
        self._image_service = image_service or CloudinaryReceiptService()
        self._ocr_service = ocr_service or MindeeReceiptService()
        self._validator = validator or ReceiptValidator(transaction_flow.storage)
        self._limiter = limiter or RateLimiter()
        self._audit_logger = audit_logger or AuditLogger()

    def _check_upload_limit(self, user_id: str) -> None:
        result = self._limiter.check(user_id, RATE_LIMITS["FILE_UPLOAD"])
        if not result.success:
            raise RateLimitExceededError(result)

    async def _store_image(
        self,
        user_id: str,
        file_name: str,
        data: bytes,
        mime_type: str,
        transaction_id: Optional[UUID],
        correlation_id: UUID,
    ) -> ReceiptImage:
        try:
            receipt = await self._image_service.upload(
                user_id, file_name, data, mime_type=mime_type, transaction_id=transaction_id
            )
        except ImageUploadError as e:
            await self._audit_logger.log_external_service_error(
                service="cloudinary",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log(AuditEventBuilder.receipt_uploaded(
            user_id=user_id,
            receipt_id=receipt.id,
            file_name=file_name,
            file_size=len(data),
            correlation_id=correlation_id,
        ))
        return receipt

    async def upload_and_extract(
        self,
        user_id: str,
        file_name: str,
        data: bytes,
        mime_type: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ReceiptReview:
        """
        Upload a photo and propose a transaction from it.

        Raises:
            RateLimitExceededError: Over the FILE_UPLOAD limit
            UnsupportedImageError: Wrong format, empty or too large
            ImageUploadError: Cloudinary failed
            ExtractionFailedError: Mindee failed
        """
        correlation_id = create_correlation_id()
        self._check_upload_limit(user_id)
        mime_type = self._image_service.validate_upload(file_name, data, mime_type)

        ok, score, issues = self._image_service.assess_quality(data)
        if not ok:
            await self._audit_logger.log(AuditEventBuilder.receipt_quality_failed(
                user_id=user_id,
                file_name=file_name,
                score=score,
                issues=issues,
                correlation_id=correlation_id,
            ))
            message = "📸 The photo is not clear enough to read:\n" + "\n".join(
                f"   • {issue}" for issue in issues
            )
            return ReceiptReview(can_proceed=False, message=message, correlation_id=correlation_id)

        receipt = await self._store_image(
            user_id, file_name, data, mime_type, None, correlation_id
        )

        try:
            extracted = await self._ocr_service.extract_receipt(receipt.url)
        except DocumentTypeRejectedError as e:
            await self._audit_logger.log(AuditEventBuilder.receipt_rejected(
                user_id=user_id,
                reason=str(e),
                correlation_id=correlation_id,
            ))
            return ReceiptReview(
                receipt=receipt,
                can_proceed=False,
                message=str(e),
                correlation_id=correlation_id,
            )
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="mindee",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log(AuditEventBuilder.receipt_extracted(
            user_id=user_id,
            extraction_id=extracted.extraction_id,
            confidence=extracted.confidence_score,
            correlation_id=correlation_id,
        ))

        ocr_ok, ocr_message = self._ocr_service.should_proceed(extracted)
        validation = await self._validator.validate(extracted, user_id=user_id, today=today)

        if not validation.is_valid:
            stage = "schema" if not validation.schema_valid else "semantic"
            await self._audit_logger.log(AuditEventBuilder.receipt_validation_failed(
                user_id=user_id,
                extraction_id=extracted.extraction_id,
                stage=stage,
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in validation.issues
                ],
                correlation_id=correlation_id,
            ))

        summary = self._validator.get_user_friendly_summary(validation)
        return ReceiptReview(
            receipt=receipt,
            extracted=extracted,
            validation=validation,
            can_proceed=ocr_ok and validation.can_proceed_with_review,
            message=f"{ocr_message}\n\n{summary}",
            correlation_id=correlation_id,
        )

    async def confirm(
        self,
        user_id: str,
        receipt: ReceiptImage,
        data: TransactionInput,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Save the reviewed transaction and link the receipt to it.

        CRITICAL: This is called ONLY after explicit user confirmation.
        """
        correlation_id = correlation_id or create_correlation_id()
        if receipt.user_id != user_id:
            raise NotFoundError("Receipt not found")

        data = data.model_copy(update={"receipt_url": receipt.url})
        transaction = await self._transactions.create(
            user_id,
            data,
            source=TransactionSource.RECEIPT,
            correlation_id=correlation_id,
        )

        linked = receipt.model_copy(update={"transaction_id": transaction.id})
        await self._receipts.save_receipt(linked)

        await self._audit_logger.log(AuditEventBuilder.receipt_confirmed(
            user_id=user_id,
            transaction_id=transaction.id,
            receipt_id=receipt.id,
            correlation_id=correlation_id,
        ))
        return transaction

    async def discard(self, user_id: str, receipt: ReceiptImage) -> bool:
        """User rejected the proposal: remove the unconfirmed photo."""
        if receipt.user_id != user_id:
            raise NotFoundError("Receipt not found")
        return await self._delete_image(receipt)

    async def attach_to_transaction(
        self,
        user_id: str,
        slug: str,
        file_name: str,
        data: bytes,
        mime_type: Optional[str] = None,
    ) -> ReceiptImage:
        """
        Add a receipt photo to one of the user's existing transactions.

        Raises:
            NotFoundError: If the user has no transaction with this slug
            RateLimitExceededError: Over the FILE_UPLOAD limit
            UnsupportedImageError: Wrong format, empty or too large
        """
        transaction = await self._transactions.get(user_id, slug)
        if transaction is None:
            raise NotFoundError(f"Transaction '{slug}' not found")

        self._check_upload_limit(user_id)
        mime_type = self._image_service.validate_upload(file_name, data, mime_type)
        receipt = await self._store_image(
            user_id, file_name, data, mime_type, transaction.id, create_correlation_id()
        )
        await self._receipts.save_receipt(receipt)
        return receipt

    async def list_for_transaction(self, user_id: str, transaction_id: UUID) -> list[ReceiptImage]:
        receipts = await self._receipts.list_receipts(
            user_id=user_id, transaction_id=transaction_id
        )
        return [r for r in receipts if r.user_id == user_id]

    async def list_for_user(self, user_id: str) -> list[ReceiptImage]:
        return await self._receipts.list_receipts(user_id=user_id)

    async def _delete_image(self, receipt: ReceiptImage) -> bool:
        try:
            return await self._image_service.delete(receipt.file_path)
        except ReceiptImageError as e:
            logger.warning(
                "receipt_image_delete_failed",
                receipt_id=str(receipt.id),
                error=str(e),
            )
            return False

    async def delete_receipt(self, user_id: str, receipt_id: UUID) -> bool:
        """
        Remove a receipt image and its record.

        The record is removed even if the photo can't be deleted from
        Cloudinary; an orphaned photo is better than a dangling link.

        Raises:
            NotFoundError: If the user has no such receipt
        """
        receipt = await self._receipts.get_receipt(receipt_id)
        if receipt is None or receipt.user_id != user_id:
            raise NotFoundError("Receipt not found")

        storage_removed = await self._delete_image(receipt)
        deleted = await self._receipts.delete_receipt(receipt_id)

        await self._audit_logger.log(AuditEventBuilder.receipt_deleted(
            user_id=user_id,
            receipt_id=receipt_id,
            storage_removed=storage_removed,
        ))
        return deleted

    async def monthly_stats(self, user_id: str, now: Optional[datetime] = None) -> ReceiptStats:
        receipts = await self._receipts.list_receipts(user_id=user_id)
        transactions = await self._transactions.all_for_user(user_id)
        return receipt_stats(receipts, {t.id: t for t in transactions}, now=now)


# =============================================================================
# ACCOUNT
# =============================================================================

class AccountFlow:
    """Profile, financial targets and the admin view."""

    def __init__(
        self,
        profile_storage: Optional[ProfileStorageInterface] = None,
        transaction_storage: Optional[TransactionStorageInterface] = None,
        receipt_storage: Optional[ReceiptStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._profiles = profile_storage or InMemoryProfileStorage()
        self._transactions = transaction_storage or InMemoryTransactionStorage()
        self._receipts = receipt_storage or InMemoryReceiptStorage()
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    async def get_profile(self, user_id: str) -> Optional[FinancialProfile]:
        return await self._profiles.get_profile(user_id)

    async def update_profile(self, user_id: str, **changes: Any) -> FinancialProfile:
        """
        Create or update a profile.

        The merged profile is re-validated, so an expense target above the
        income target raises a pydantic ValidationError and nothing is saved.
        Emails listed in ADMIN_EMAILS are promoted to admin.
        """
        current = await self._profiles.get_profile(user_id)
        base = current.model_dump() if current else {"user_id": user_id}
        profile = FinancialProfile.model_validate({**base, **changes, "user_id": user_id})

        if profile.email and profile.email.lower() in self._settings.admin_emails_list:
            profile = profile.model_copy(update={"role": UserRole.ADMIN})

        await self._profiles.save_profile(profile)
        await self._audit_logger.log(
            AuditEventBuilder.profile_updated(user_id, sorted(changes))
        )
        return profile

    async def _require_admin(self, user_id: str) -> None:
        profile = await self._profiles.get_profile(user_id)
        if profile is None or not profile.is_admin:
            raise PermissionError("Admin access required")

    async def admin_statistics(self, user_id: str) -> AdminStatistics:
        """
        Raises:
            PermissionError: If the user is not an admin
        """
        await self._require_admin(user_id)
        return admin_statistics(
            await self._profiles.list_profiles(),
            await self._transactions.list_all_transactions(),
            await self._receipts.list_receipts(),
        )

    async def admin_users(self, user_id: str) -> list[AdminUserRow]:
        """
        Raises:
            PermissionError: If the user is not an admin
        """
        await self._require_admin(user_id)
        return admin_user_rows(
            await self._profiles.list_profiles(),
            await self._transactions.list_all_transactions(),
        )

    async def admin_transactions(self, user_id: str) -> list[AdminTransactionRow]:
        """
        All transactions with owner and receipt count.

        Raises:
            PermissionError: If the user is not an admin
        """
        await self._require_admin(user_id)
        return admin_transaction_rows(
            await self._transactions.list_all_transactions(),
            await self._profiles.list_profiles(),
            await self._receipts.list_receipts(),
        )

    async def admin_receipts(self, user_id: str) -> list[AdminReceiptRow]:
        """
        Raises:
            PermissionError: If the user is not an admin
        """
        await self._require_admin(user_id)
        return admin_receipt_rows(
            await self._receipts.list_receipts(),
            await self._transactions.list_all_transactions(),
            await self._profiles.list_profiles(),
        )

    async def admin_receipt_storage(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> ReceiptStorageStats:
        """
        Raises:
            PermissionError: If the user is not an admin
        """
        await self._require_admin(user_id)
        return receipt_storage_stats(await self._receipts.list_receipts(), now=now)


# =============================================================================
# WIRING
# =============================================================================

class AppComponents(NamedTuple):
    transactions: TransactionFlow
    receipts: ReceiptFlow
    chat: ChatFlow
    account: AccountFlow
    audit_storage: AuditStorageInterface
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(use_storage: bool = True) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to try Google Sheets for transactions and
            audit events. Everything else, and the fallback when Sheets
            isn't configured, lives in memory.
    """
    sheets_client = None
    transaction_storage: TransactionStorageInterface = InMemoryTransactionStorage()
    audit_storage: AuditStorageInterface = InMemoryAuditStorage()

    if use_storage and validate_all_settings().get("google_sheets"):
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            transaction_storage = GoogleSheetsTransactionStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not reachable - continue in memory
            logger.warning("sheets_storage_unavailable", error=str(e))
            sheets_client = None

    profile_storage = InMemoryProfileStorage()
    receipt_storage = InMemoryReceiptStorage()
    message_storage = InMemoryMessageStorage()
    audit_logger = AuditLogger(audit_storage)
    limiter = RateLimiter()
    settings = get_settings().app

    transaction_flow = TransactionFlow(transaction_storage, audit_logger)
    receipt_flow = ReceiptFlow(
        transaction_flow,
        receipt_storage=receipt_storage,
        limiter=limiter,
        audit_logger=audit_logger,
    )
    chat_flow = ChatFlow(
        limiter=limiter,
        transaction_storage=transaction_storage,
        profile_storage=profile_storage,
        receipt_storage=receipt_storage,
        message_storage=message_storage,
        audit_logger=audit_logger,
        settings=settings,
    )
    account_flow = AccountFlow(
        profile_storage=profile_storage,
        transaction_storage=transaction_storage,
        receipt_storage=receipt_storage,
        audit_logger=audit_logger,
        settings=settings,
    )

    return AppComponents(
        transactions=transaction_flow,
        receipts=receipt_flow,
        chat=chat_flow,
        account=account_flow,
        audit_storage=audit_storage,
        sheets_client=sheets_client,
    )

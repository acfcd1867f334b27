"""
Tests for PocketLedger models

Test strategy:
1. Unit tests for individual components (models, validators, limiter)
2. Integration tests for flows (with fake external services)
3. No real API calls in tests (fakes are injected through constructors)
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pocketledger.models import (
    ChatMessage,
    ChatRole,
    ExtractedReceipt,
    FinancialProfile,
    Transaction,
    TransactionInput,
    TransactionSource,
    TransactionType,
    TransactionUpdate,
    UserRole,
    ValidationIssue,
    ValidationResult,
    parse_financial_amount,
)
from pocketledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def make_transaction(**overrides) -> Transaction:
    fields = {
        "user_id": "user-1",
        "slug": "coffee",
        "title": "Coffee",
        "type": TransactionType.EXPENSE,
        "amount": Decimal("4.50"),
        "category": "Food & Dining",
        "date": date(2024, 3, 1),
    }
    fields.update(overrides)
    return Transaction(**fields)


class TestTransactionModels:
    """Tests for transaction Pydantic models."""

    def test_transaction_creation(self):
        """Test Transaction defaults."""
        transaction = make_transaction()
        assert transaction.source == TransactionSource.MANUAL
        assert transaction.created_at.tzinfo is not None
        assert not transaction.is_income

    def test_title_strips_whitespace(self):
        """Test that whitespace is stripped from the title."""
        data = TransactionInput(
            title="  Rent  ",
            type="expense",
            amount=Decimal("1200"),
            category="Bills & Utilities",
            date=date(2024, 3, 1),
        )
        assert data.title == "Rent"

    def test_rejects_zero_and_negative_amounts(self):
        """Amounts must be positive; direction comes from the type."""
        with pytest.raises(ValueError):
            make_transaction(amount=Decimal("0"))
        with pytest.raises(ValueError):
            make_transaction(amount=Decimal("-5"))

    def test_rejects_more_than_two_decimals(self):
        with pytest.raises(ValueError):
            make_transaction(amount=Decimal("1.005"))

    def test_rejects_amount_above_maximum(self):
        with pytest.raises(ValueError):
            make_transaction(amount=Decimal("1000000000.00"))

    def test_rejects_empty_title(self):
        with pytest.raises(ValueError):
            make_transaction(title="   ")

    def test_apply_update_changes_only_set_fields(self):
        """Test partial updates."""
        transaction = make_transaction()
        updated = transaction.apply(TransactionUpdate(amount=Decimal("5.25")))

        assert updated.amount == Decimal("5.25")
        assert updated.title == "Coffee"
        assert updated.id == transaction.id
        assert updated.updated_at >= transaction.updated_at

    def test_apply_update_is_validated(self):
        """An update can't smuggle in an invalid value."""
        with pytest.raises(ValueError):
            TransactionUpdate(amount=Decimal("-1"))

    def test_to_context_dict(self):
        """Test the compact form handed to the assistants."""
        assert make_transaction().to_context_dict() == {
            "title": "Coffee",
            "amount": 4.5,
            "category": "Food & Dining",
            "date": "2024-03-01",
            "type": "expense",
        }


class TestFinancialProfile:
    """Tests for the profile and its targets."""

    def test_profile_defaults(self):
        profile = FinancialProfile(user_id="user-1")
        assert profile.role == UserRole.USER
        assert not profile.is_admin
        assert not profile.has_targets

    def test_name_allows_hyphens_and_apostrophes(self):
        profile = FinancialProfile(user_id="user-1", full_name="Mary O'Brien-Smith")
        assert profile.full_name == "Mary O'Brien-Smith"

    def test_name_rejects_digits(self):
        with pytest.raises(ValueError):
            FinancialProfile(user_id="user-1", full_name="R2D2")

    def test_expenses_cannot_exceed_income(self):
        """Test the cross-field target check."""
        with pytest.raises(ValueError, match="cannot exceed monthly income"):
            FinancialProfile(
                user_id="user-1",
                monthly_income=Decimal("1000"),
                monthly_expense=Decimal("1500"),
            )

    def test_expenses_equal_to_income_allowed(self):
        profile = FinancialProfile(
            user_id="user-1",
            monthly_income=Decimal("1000"),
            monthly_expense=Decimal("1000"),
        )
        assert profile.has_targets


class TestParseFinancialAmount:
    """Tests for form amount parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("1234.5", Decimal("1234.5")),
        ("  42  ", Decimal("42")),
        ("0", Decimal("0")),
        ("99999999.99", Decimal("99999999.99")),
    ])
    def test_valid_amounts(self, value, expected):
        assert parse_financial_amount(value) == expected

    @pytest.mark.parametrize("value", [
        None, "", "   ", "abc", "-1", "1.234", "100000000", "NaN", "Infinity",
    ])
    def test_invalid_amounts(self, value):
        assert parse_financial_amount(value) is None


class TestExtractedReceipt:
    """Tests for OCR output."""

    def test_confidence_bounds(self):
        with pytest.raises(ValueError):
            ExtractedReceipt(confidence_score=1.5)

    def test_to_transaction_input_defaults(self):
        """Missing title, date and category get form defaults."""
        extracted = ExtractedReceipt(confidence_score=0.9, amount=Decimal("12.00"))
        data = extracted.to_transaction_input()

        assert data.title == "Receipt"
        assert data.type == TransactionType.EXPENSE
        assert data.category == "Other"
        assert data.amount == Decimal("12.00")

    def test_to_transaction_input_category_override(self):
        extracted = ExtractedReceipt(
            confidence_score=0.9,
            title="Shell",
            amount=Decimal("40.00"),
            date=date(2024, 3, 1),
            category="Transportation",
        )
        data = extracted.to_transaction_input(category="Gas & Fuel")
        assert data.category == "Gas & Fuel"
        assert data.date == date(2024, 3, 1)


class TestChatMessage:

    def test_to_prompt_dict(self):
        message = ChatMessage(
            user_id="user-1",
            assistant_id="income",
            role=ChatRole.ASSISTANT,
            content="Hello",
        )
        assert message.to_prompt_dict() == {"role": "assistant", "content": "Hello"}

    def test_rejects_empty_content(self):
        with pytest.raises(ValueError):
            ChatMessage(user_id="u", assistant_id="income", role="user", content="")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Test event",
        )
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.RATE_LIMIT_EXCEEDED,
            user_id="user-1",
            description="Test",
            details={"limit": 10},
        )
        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "rate_limit_exceeded"
        assert log_dict["user_id"] == "user-1"
        assert log_dict["details"] == {"limit": 10}
        assert log_dict["correlation_id"] is None

    def test_audit_event_to_sheets_row(self):
        """Test conversion to Sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            description="Test error",
            error_message="Something went wrong",
        )
        row = event.to_sheets_row()

        assert len(row) == 12
        assert row[2] == "system_error"
        assert row[4] == ""
        assert row[10] == "Something went wrong"
        assert row[11] == "False"

    def test_builder_transaction_created(self):
        """Test AuditEventBuilder for transaction creation."""
        transaction_id = uuid4()
        correlation_id = uuid4()
        event = AuditEventBuilder.transaction_created(
            user_id="user-1",
            transaction_id=transaction_id,
            title="Coffee",
            amount="4.50",
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.entity_id == str(transaction_id)
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_builder_rate_limit_exceeded(self):
        event = AuditEventBuilder.rate_limit_exceeded(
            user_id="user-1", key="chat:user-1", limit=10, retry_after=42
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "chat:user-1"
        assert event.details == {"limit": 10, "retry_after": 42}

    def test_builder_receipt_deleted_severity(self):
        """A photo left behind in storage is worth a warning."""
        kept = AuditEventBuilder.receipt_deleted("user-1", uuid4(), storage_removed=False)
        removed = AuditEventBuilder.receipt_deleted("user-1", uuid4(), storage_removed=True)
        assert kept.severity == AuditSeverity.WARNING
        assert removed.severity == AuditSeverity.INFO


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        result = ValidationResult(
            extraction_id=uuid4(),
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            can_proceed_with_review=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Total amount is missing",
                    severity="error",
                ),
                ValidationIssue(
                    field="title",
                    issue_type="missing",
                    message="Merchant name is missing",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors
        assert result.error_count == 1

    def test_validation_issue_rejects_unknown_severity(self):
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="missing", message="m", severity="fatal")

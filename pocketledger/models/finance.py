"""
Core Data Models for PocketLedger

These models define the schemas for everything the application stores:
transactions, financial profiles, receipt images and chat messages.

They are designed to:
1. Enforce the same limits the forms enforce, at runtime
2. Give clear validation error messages
3. Be serializable for storage, logging and LLM context

DESIGN DECISION: User-supplied payloads (TransactionInput, FinancialProfile
updates) are validated by the models themselves. There is no separate form
validation layer to drift out of sync.
"""

import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


MAX_TRANSACTION_AMOUNT = Decimal("999999999.99")
MAX_PROFILE_AMOUNT = Decimal("99999999.99")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


TRANSACTION_CATEGORIES = (
    "Food & Dining",
    "Transportation",
    "Shopping",
    "Entertainment",
    "Bills & Utilities",
    "Healthcare",
    "Education",
    "Travel",
    "Groceries",
    "Gas & Fuel",
    "Home & Garden",
    "Personal Care",
    "Gifts & Donations",
    "Business",
    "Investment",
    "Other",
)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


class TransactionSource(str, Enum):
    """Where a transaction came from."""
    MANUAL = "manual"
    RECEIPT = "receipt"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ChatRole(str, Enum):
    """Roles accepted in a chat conversation."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionInput(BaseModel):
    """
    What a user submits when creating a transaction.

    Used by both the manual form and the receipt confirmation step.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Short description, e.g. the merchant name"
    )
    type: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        le=MAX_TRANSACTION_AMOUNT,
        decimal_places=2,
        description="Positive amount; direction comes from `type`"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    date: dt.date
    notes: Optional[str] = Field(
        default=None,
        max_length=5000,
    )
    receipt_url: Optional[str] = None


class TransactionUpdate(BaseModel):
    """Partial update: only the fields that are set get applied."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(
        default=None,
        gt=0,
        le=MAX_TRANSACTION_AMOUNT,
        decimal_places=2,
    )
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    date: Optional[dt.date] = None
    notes: Optional[str] = Field(default=None, max_length=5000)
    receipt_url: Optional[str] = None


class Transaction(TransactionInput):
    """
    A stored transaction.

    The slug is unique per user and is what the detail/edit routes use
    (`/dashboard/transactions/<slug>`).
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1, max_length=300)
    source: TransactionSource = TransactionSource.MANUAL
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    def apply(self, update: TransactionUpdate) -> "Transaction":
        """Return a copy with the update's set fields applied."""
        changes = update.model_dump(exclude_unset=True)
        changes["updated_at"] = utcnow()
        return self.model_validate({**self.model_dump(), **changes})

    def to_context_dict(self) -> dict[str, Any]:
        """Compact form handed to the assistants."""
        return {
            "title": self.title,
            "amount": float(self.amount),
            "category": self.category,
            "date": self.date.isoformat(),
            "type": self.type.value,
        }


# =============================================================================
# PROFILES
# =============================================================================

class FinancialProfile(BaseModel):
    """
    A user's profile and the targets the assistants compare against.

    All money fields are optional: the assistants ask the user to fill
    them in when they are missing.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None
    full_name: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=255,
        pattern=r"^[a-zA-Z\s'-]+$",
        description="Letters, spaces, hyphens and apostrophes only"
    )
    monthly_income: Optional[Decimal] = Field(
        default=None, ge=0, le=MAX_PROFILE_AMOUNT, decimal_places=2
    )
    monthly_expense: Optional[Decimal] = Field(
        default=None, ge=0, le=MAX_PROFILE_AMOUNT, decimal_places=2
    )
    savings_goal: Optional[Decimal] = Field(
        default=None, ge=0, le=MAX_PROFILE_AMOUNT, decimal_places=2
    )
    role: UserRole = UserRole.USER
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_targets(self) -> 'FinancialProfile':
        if (
            self.monthly_income is not None
            and self.monthly_expense is not None
            and self.monthly_expense > self.monthly_income
        ):
            raise ValueError("Monthly expenses cannot exceed monthly income")
        return self

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def has_targets(self) -> bool:
        return any(
            v is not None
            for v in (self.monthly_income, self.monthly_expense, self.savings_goal)
        )


def parse_financial_amount(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a form amount ("1234.5") into a Decimal.

    Empty input, garbage, negatives, more than two decimals or values above
    the profile maximum all come back as None.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0 or amount > MAX_PROFILE_AMOUNT:
        return None
    if amount.as_tuple().exponent < -2:
        return None
    return amount


# =============================================================================
# RECEIPTS
# =============================================================================

class ReceiptImage(BaseModel):
    """Metadata for a receipt image kept in object storage."""

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    transaction_id: Optional[UUID] = None
    file_name: str = Field(..., min_length=1, max_length=255)
    file_path: str = Field(..., min_length=1)
    file_size: Optional[int] = Field(default=None, ge=0)
    mime_type: Optional[str] = None
    storage_bucket: str = "receipts"
    url: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=utcnow)


class ExtractedReceipt(BaseModel):
    """
    Fields read off a receipt by OCR.

    This is PROPOSED data. It becomes a Transaction only after the user
    reviews and confirms it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    extraction_id: UUID = Field(default_factory=uuid4)
    extracted_at: datetime = Field(default_factory=utcnow)
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    title: Optional[str] = Field(default=None, max_length=255)
    amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    date: Optional[dt.date] = None
    category: Optional[str] = Field(default=None, max_length=100)
    tax_amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    raw_ocr_text: Optional[str] = None

    def to_transaction_input(self, category: Optional[str] = None) -> TransactionInput:
        """Build the confirmation form's defaults from the extraction."""
        return TransactionInput(
            title=self.title or "Receipt",
            type=TransactionType.EXPENSE,
            amount=self.amount,
            category=category or self.category or "Other",
            date=self.date or utcnow().date(),
        )


class ValidationIssue(BaseModel):
    """A single problem found while checking an extraction."""

    field: str
    issue_type: str = Field(
        ...,
        description="e.g. 'missing', 'invalid_value', 'suspicious_value'"
    )
    message: str
    severity: str = Field(..., pattern="^(error|warning|info)$")
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage receipt validation.

    Stage 1: Schema validation (required fields)
    Stage 2: Semantic validation (plausibility)
    """

    extraction_id: UUID
    validated_at: datetime = Field(default_factory=utcnow)
    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    can_proceed_with_review: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")


# =============================================================================
# CHAT
# =============================================================================

class ChatMessage(BaseModel):
    """One persisted message in a user's conversation with an assistant."""

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    assistant_id: str
    role: ChatRole
    content: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)

    def to_prompt_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

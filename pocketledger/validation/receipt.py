"""
Two-Stage Receipt Validation

DESIGN DECISION: Validation of OCR output happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (amount, merchant, date)
- Extraction confidence
- This catches OCR misses and unreadable photos

STAGE 2 - SEMANTIC VALIDATION:
- Future and very old dates
- Absurd or tiny amounts
- Tax larger than the total
- Duplicate detection against the user's transactions
- This catches logically impossible or suspicious data

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the user can correct them on the confirmation form.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import structlog

from pocketledger.config import AppSettings, get_settings
from pocketledger.models.finance import (
    ExtractedReceipt,
    ValidationIssue,
    ValidationResult,
)
from pocketledger.services.storage import StorageError, TransactionStorageInterface


logger = structlog.get_logger(__name__)


class ReceiptValidator:
    """
    Validates an ExtractedReceipt before it is shown for confirmation.

    Stage 1: Schema validation (can run without storage)
    Stage 2: Semantic validation (uses storage for duplicate checks)
    """

    def __init__(
        self,
        transaction_storage: Optional[TransactionStorageInterface] = None,
        settings: Optional[AppSettings] = None,
    ):
        """
        Args:
            transaction_storage: Used for duplicate checking.
                If None, duplicate checking is skipped.
            settings: Thresholds; read from the environment when omitted.
        """
        self._storage = transaction_storage
        self._settings = settings or get_settings().app

    def _validate_schema(
        self,
        extracted: ExtractedReceipt,
    ) -> tuple[bool, list[ValidationIssue]]:
        """Stage 1. Returns (is_valid, issues)."""
        issues = []

        if extracted.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Total amount could not be read from the receipt",
                severity="error",
                suggested_fix="Make sure the total is clearly visible in the photo",
            ))
        elif extracted.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Total amount must be greater than zero",
                severity="error",
                suggested_fix="Check if the amount was read correctly",
            ))

        if not extracted.title:
            issues.append(ValidationIssue(
                field="title",
                issue_type="missing",
                message="Merchant name could not be read",
                severity="warning",
                suggested_fix="You'll need to enter a title manually",
            ))

        if extracted.date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Receipt date could not be read",
                severity="warning",
                suggested_fix="Today's date will be used unless you change it",
            ))

        if extracted.confidence_score < self._settings.min_ocr_confidence:
            issues.append(ValidationIssue(
                field="confidence_score",
                issue_type="low_confidence",
                message=f"Extraction confidence is low ({extracted.confidence_score:.0%})",
                severity="warning",
                suggested_fix="Please review all fields carefully",
            ))

        if extracted.amount is None and not extracted.title and extracted.date is None:
            issues.append(ValidationIssue(
                field="extraction",
                issue_type="empty",
                message="No meaningful data could be extracted from this image",
                severity="error",
                suggested_fix="Please try with a clearer photo",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        extracted: ExtractedReceipt,
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """Stage 2. Returns (is_valid, issues)."""
        issues = []

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if extracted.date and extracted.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Receipt date ({extracted.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        # two years back is most likely a misread year
        min_reasonable_date = today - timedelta(days=365 * 2)
        if extracted.date and extracted.date < min_reasonable_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="suspicious_date",
                message=f"Receipt date ({extracted.date}) seems unusually old",
                severity="warning",
                suggested_fix="Please verify the date was read correctly",
            ))

        max_amount = Decimal(str(self._settings.max_receipt_amount))
        if extracted.amount and extracted.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount (${extracted.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if extracted.amount and extracted.amount < Decimal("0.50"):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount (${extracted.amount}) seems unusually low",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if (
            extracted.tax_amount is not None
            and extracted.amount
            and extracted.tax_amount > extracted.amount
        ):
            issues.append(ValidationIssue(
                field="tax_amount",
                issue_type="inconsistent",
                message="Tax is larger than the total",
                severity="warning",
                suggested_fix="Please verify the amounts",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _check_duplicates(
        self,
        extracted: ExtractedReceipt,
        user_id: str,
    ) -> list[ValidationIssue]:
        """Same amount on the same day is reported as a possible duplicate."""
        if self._storage is None or extracted.date is None or extracted.amount is None:
            return []

        try:
            same_day = await self._storage.list_transactions(
                user_id,
                date_from=extracted.date,
                date_to=extracted.date,
            )
        except StorageError as e:
            # duplicate detection is advisory
            logger.warning("duplicate_check_failed", user_id=user_id, error=str(e))
            return []

        if any(t.amount == extracted.amount for t in same_day):
            return [ValidationIssue(
                field="duplicate",
                issue_type="potential_duplicate",
                message=(
                    f"A transaction of ${extracted.amount} on {extracted.date} "
                    "already exists"
                ),
                severity="warning",
                suggested_fix="Please verify this isn't a duplicate entry",
            )]
        return []

    async def validate(
        self,
        extracted: ExtractedReceipt,
        user_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            extracted: The OCR output to validate
            user_id: Owner, for duplicate checks (skipped when None)
            today: Reference date for the date checks

        Returns:
            ValidationResult with all issues found
        """
        today = today or date.today()
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(extracted)
        all_issues.extend(schema_issues)

        # Stage 2 only makes sense on a structurally sound extraction
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(extracted, today)
            all_issues.extend(semantic_issues)

            if user_id is not None:
                all_issues.extend(await self._check_duplicates(extracted, user_id))

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        can_proceed = (
            extracted.amount is not None
            and not any(issue.severity == "error" for issue in all_issues)
        )

        return ValidationResult(
            extraction_id=extracted.extraction_id,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            can_proceed_with_review=can_proceed,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Plain-language summary shown above the confirmation form."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed! Please review the details below."

        lines = []

        if not result.schema_valid:
            lines.append("❌ Some required information could not be read:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.can_proceed_with_review:
            lines.append("You can still proceed, but please review carefully.")
        else:
            lines.append("Please enter the transaction manually or try another photo.")

        return "\n".join(lines)

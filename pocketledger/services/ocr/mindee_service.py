"""
Receipt OCR Service using Mindee

DESIGN DECISION: We use Mindee's receipt model because:
1. Specialized for receipts: merchant, date, total and tax come back as fields
2. Returns STRUCTURED data, not just raw text
3. Provides per-field confidence scores

This service handles:
1. Sending the uploaded receipt URL to Mindee
2. Parsing the structured response
3. Rejecting documents that are not receipts
4. Converting the response to our ExtractedReceipt model

CRITICAL: The output is a PROPOSAL. Nothing is saved until the user
confirms it on the receipt form.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog
from mindee import Client, PredictResponse, product
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from pocketledger.config import AppSettings, MindeeSettings, get_settings
from pocketledger.models.finance import ExtractedReceipt, utcnow


logger = structlog.get_logger(__name__)

# Mindee receipt categories -> ours
MINDEE_CATEGORY_MAP = {
    "food": "Food & Dining",
    "gasoline": "Gas & Fuel",
    "parking": "Transportation",
    "toll": "Transportation",
    "transport": "Transportation",
    "accommodation": "Travel",
    "telecom": "Bills & Utilities",
    "energy": "Bills & Utilities",
    "software": "Business",
    "shopping": "Shopping",
    "miscellaneous": "Other",
}

# Used when Mindee has no category for the merchant
_KEYWORD_CATEGORIES = [
    ("Groceries", ["grocery", "supermarket", "market", "whole foods", "trader joe", "aldi"]),
    ("Food & Dining", ["restaurant", "cafe", "coffee", "pizza", "burger", "bar", "grill", "starbucks"]),
    ("Gas & Fuel", ["fuel", "petrol", "gas station", "shell", "chevron", "exxon", "bp "]),
    ("Healthcare", ["pharmacy", "clinic", "hospital", "medical", "dental", "cvs", "walgreens"]),
    ("Transportation", ["uber", "lyft", "taxi", "metro", "parking", "transit"]),
    ("Entertainment", ["cinema", "theatre", "theater", "netflix", "spotify", "concert"]),
    ("Home & Garden", ["hardware", "home depot", "ikea", "garden", "lowe's"]),
    ("Personal Care", ["salon", "barber", "spa", "cosmetics"]),
]


class OCRError(Exception):
    """Base exception for OCR errors."""
    pass


class DocumentTypeRejectedError(OCRError):
    """The document does not look like a receipt."""

    def __init__(self, detected_type: str, message: str):
        self.detected_type = detected_type
        super().__init__(message)


class ExtractionFailedError(OCRError):
    """Failed to extract data from document."""
    pass


def guess_category(merchant: Optional[str]) -> Optional[str]:
    """
    Keyword guess at a category from the merchant name.

    This is a SUGGESTION only - the user picks the final category.
    """
    if not merchant:
        return None
    name = merchant.lower()
    for category, keywords in _KEYWORD_CATEGORIES:
        if any(kw in name for kw in keywords):
            return category
    return None


class MindeeReceiptService:
    """
    OCR service using Mindee's receipt model.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts data - ReceiptValidator judges it
    2. This service REJECTS non-receipts loudly
    3. Confidence scores are preserved for downstream validation
    """

    def __init__(
        self,
        settings: Optional[MindeeSettings] = None,
        app_settings: Optional[AppSettings] = None,
        client: Optional[Client] = None,
    ):
        self._settings = settings
        self._app_settings = app_settings or get_settings().app
        self._client = client

    def _get_client(self) -> Client:
        if self._client is None:
            settings = self._settings or get_settings().mindee
            self._client = Client(api_key=settings.api_key)
        return self._client

    @staticmethod
    def _safe_decimal(value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        try:
            # Mindee returns float/None
            return abs(Decimal(str(value))).quantize(Decimal("0.01"))
        except (InvalidOperation, TypeError, ValueError):
            return None

    @staticmethod
    def _safe_date(value: Any) -> Optional[date]:
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d"):
                try:
                    return datetime.strptime(value, fmt).date()
                except ValueError:
                    continue
        return None

    @staticmethod
    def _field(prediction: Any, name: str) -> tuple[Any, float]:
        """(value, confidence) of a prediction field, (None, 0.0) when absent."""
        field = getattr(prediction, name, None)
        if field is None:
            return None, 0.0
        return getattr(field, "value", None), getattr(field, "confidence", 0.0) or 0.0

    def _parse_prediction(self, prediction: Any) -> ExtractedReceipt:
        merchant, merchant_conf = self._field(prediction, "supplier_name")
        raw_date, date_conf = self._field(prediction, "date")
        total, total_conf = self._field(prediction, "total_amount")
        tax, _ = self._field(prediction, "total_tax")
        mindee_category, _ = self._field(prediction, "category")

        confidences = [
            conf for value, conf in (
                (merchant, merchant_conf),
                (raw_date, date_conf),
                (total, total_conf),
            )
            if value is not None
        ]
        overall_confidence = sum(confidences) / len(confidences) if confidences else 0.0

        # Nothing recognisable: not a receipt
        if overall_confidence < 0.2:
            raise DocumentTypeRejectedError(
                detected_type="unknown",
                message=(
                    "This doesn't appear to be a receipt. "
                    "Please upload a clear photo of a receipt."
                ),
            )

        title = str(merchant).strip()[:255] if merchant else None
        amount = self._safe_decimal(total)
        receipt_date = self._safe_date(raw_date)
        category = (
            MINDEE_CATEGORY_MAP.get(str(mindee_category).lower()) if mindee_category else None
        ) or guess_category(title)

        raw_text_parts = []
        if title:
            raw_text_parts.append(f"Merchant: {title}")
        if receipt_date:
            raw_text_parts.append(f"Date: {receipt_date}")
        if amount is not None:
            raw_text_parts.append(f"Total: ${amount}")

        return ExtractedReceipt(
            extracted_at=utcnow(),
            confidence_score=min(1.0, max(0.0, overall_confidence)),
            title=title,
            amount=amount,
            date=receipt_date,
            category=category,
            tax_amount=self._safe_decimal(tax),
            raw_ocr_text="\n".join(raw_text_parts) or None,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DocumentTypeRejectedError),
        reraise=True,
    )
    async def extract_receipt(self, image_url: str) -> ExtractedReceipt:
        """
        Read a receipt image.

        Args:
            image_url: Delivery URL of the uploaded receipt (Cloudinary)

        Raises:
            DocumentTypeRejectedError: If the image is not a receipt
            ExtractionFailedError: If extraction completely fails
        """
        client = self._get_client()

        try:
            input_doc = client.source_from_url(image_url)
            result: PredictResponse = client.parse(product.ReceiptV5, input_doc)
            prediction = result.document.inference.prediction
        except Exception as e:
            raise ExtractionFailedError(f"Failed to read receipt: {e}")

        extracted = self._parse_prediction(prediction)
        logger.info(
            "receipt_extracted",
            extraction_id=str(extracted.extraction_id),
            confidence=extracted.confidence_score,
        )
        return extracted

    def should_proceed(self, extracted: ExtractedReceipt) -> tuple[bool, str]:
        """
        Is the extraction good enough to show the confirmation form?

        Returns: (should_proceed, message_for_user)
        """
        if extracted.confidence_score < 0.3:
            return False, (
                "❌ The receipt could not be read reliably. "
                "Please try again with a clearer photo."
            )

        if extracted.amount is None:
            return False, (
                "⚠️ Could not read the total from this receipt. "
                "Please make sure the total is clearly visible."
            )

        if extracted.confidence_score < self._app_settings.min_ocr_confidence:
            return True, (
                f"⚠️ Extraction confidence ({extracted.confidence_score:.0%}) is below ideal. "
                "Please review the details carefully."
            )

        return True, "✅ Receipt read successfully. Please review and confirm."

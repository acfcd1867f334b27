"""OCR services package."""

from pocketledger.services.ocr.mindee_service import (
    DocumentTypeRejectedError,
    ExtractionFailedError,
    MindeeReceiptService,
    OCRError,
    guess_category,
)

__all__ = [
    "DocumentTypeRejectedError",
    "ExtractionFailedError",
    "MindeeReceiptService",
    "OCRError",
    "guess_category",
]

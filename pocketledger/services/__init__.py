"""Services package: storage backends and the external receipt services."""

from pocketledger.services.image import (
    CloudinaryReceiptService,
    ImageUploadError,
    ReceiptImageError,
    UnsupportedImageError,
)
from pocketledger.services.ocr import (
    DocumentTypeRejectedError,
    ExtractionFailedError,
    MindeeReceiptService,
    OCRError,
)
from pocketledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    MessageStorageInterface,
    NotFoundError,
    ProfileStorageInterface,
    ReceiptStorageInterface,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Image services
    "CloudinaryReceiptService",
    "ImageUploadError",
    "ReceiptImageError",
    "UnsupportedImageError",
    # OCR services
    "DocumentTypeRejectedError",
    "ExtractionFailedError",
    "MindeeReceiptService",
    "OCRError",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "MessageStorageInterface",
    "NotFoundError",
    "ProfileStorageInterface",
    "ReceiptStorageInterface",
    "StorageError",
    "TransactionStorageInterface",
]

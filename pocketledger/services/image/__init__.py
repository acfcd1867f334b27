"""Receipt image services package."""

from pocketledger.services.image.cloudinary_service import (
    CloudinaryReceiptService,
    ImageUploadError,
    ReceiptImageError,
    UnsupportedImageError,
    assess_image_quality,
)

__all__ = [
    "CloudinaryReceiptService",
    "ImageUploadError",
    "ReceiptImageError",
    "UnsupportedImageError",
    "assess_image_quality",
]

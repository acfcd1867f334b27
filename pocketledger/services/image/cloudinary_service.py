"""
Receipt Image Service using Cloudinary

DESIGN DECISION: Receipt photos live in Cloudinary because:
1. Reliable hosting with delivery URLs the OCR service can fetch
2. On-the-fly transformations (thumbnails, auto quality)
3. Free tier sufficient for personal use

This service handles:
1. Upload validation (format, size)
2. A quick local quality check before anything is uploaded
3. Upload into `receipts/<user_id>/...`
4. Deletion and delivery URLs

CRITICAL: We do NOT send unreadable photos to OCR.
If the quality check fails we ask the user to retake the photo.
"""

import hashlib
from io import BytesIO
from pathlib import PurePath
from typing import Optional
from uuid import UUID, uuid4

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import structlog
from cloudinary import CloudinaryImage
from PIL import Image, UnidentifiedImageError
from tenacity import retry, stop_after_attempt, wait_exponential

from pocketledger.config import AppSettings, CloudinarySettings, get_settings
from pocketledger.models.finance import ReceiptImage


logger = structlog.get_logger(__name__)

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
}


class ReceiptImageError(Exception):
    """Base exception for receipt image errors."""
    pass


class UnsupportedImageError(ReceiptImageError):
    """Wrong format, empty or too large."""
    pass


class ImageUploadError(ReceiptImageError):
    """Failed to upload image to Cloudinary."""
    pass


def assess_image_quality(image_bytes: bytes) -> tuple[float, list[str]]:
    """
    Score a receipt photo between 0 and 1 using PIL.

    Returns: (quality_score, list_of_issues)

    DESIGN DECISION: Simple heuristics rather than ML-based assessment:
    predictable, fast and free. Resolution, aspect ratio, exposure and
    contrast are checked.
    """
    issues = []
    score = 1.0

    try:
        img = Image.open(BytesIO(image_bytes))
        width, height = img.size

        min_dimension = min(width, height)
        if min_dimension < 300:
            issues.append("Image resolution too low (minimum 300px on smallest side)")
            score -= 0.4
        elif min_dimension < 500:
            issues.append("Image resolution is low, text may be hard to read")
            score -= 0.2

        # long receipts are tall, but not this tall
        aspect = max(width, height) / max(1, min_dimension)
        if aspect > 6:
            issues.append("Unusual aspect ratio - image may be cropped incorrectly")
            score -= 0.2

        gray = img if img.mode == "L" else img.convert("L")
        histogram = gray.histogram()
        total_pixels = sum(histogram)

        dark_pixels = sum(histogram[:50]) / total_pixels
        if dark_pixels > 0.7:
            issues.append("Image is very dark - please take photo in better lighting")
            score -= 0.3

        bright_pixels = sum(histogram[200:]) / total_pixels
        if bright_pixels > 0.9:
            issues.append("Image is overexposed - please reduce lighting or angle")
            score -= 0.3

        # range holding the middle 90% of pixels
        cumsum = 0
        low_percentile = None
        high_percentile = 255
        for i, count in enumerate(histogram):
            cumsum += count
            if low_percentile is None and cumsum >= total_pixels * 0.05:
                low_percentile = i
            if cumsum >= total_pixels * 0.95:
                high_percentile = i
                break

        if high_percentile - (low_percentile or 0) < 50:
            issues.append("Image has very low contrast - text may be hard to read")
            score -= 0.25

    except (UnidentifiedImageError, OSError) as e:
        issues.append(f"Could not analyze image: {e}")
        score = 0.0

    return max(0.0, min(1.0, score)), issues


class CloudinaryReceiptService:
    """
    Stores receipt photos in Cloudinary.

    Flow:
    1. validate_upload() rejects wrong formats and oversized files
    2. assess_quality() decides whether OCR is worth trying
    3. upload() stores the photo and returns ReceiptImage metadata
    """

    def __init__(
        self,
        settings: Optional[CloudinarySettings] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._settings = settings
        self._app_settings = app_settings or get_settings().app
        self._configured = False

    def _get_settings(self) -> CloudinarySettings:
        if self._settings is None:
            self._settings = get_settings().cloudinary
        return self._settings

    def _configure(self):
        if not self._configured:
            settings = self._get_settings()
            cloudinary.config(
                cloud_name=settings.cloud_name,
                api_key=settings.api_key,
                api_secret=settings.api_secret,
                secure=True,
            )
            self._configured = True

    def _generate_public_id(self, user_id: str, receipt_id: UUID, file_name: str) -> str:
        """Format: <folder>/receipts/<user_id>/<receipt_id>_<filename_hash>"""
        filename_hash = hashlib.md5(file_name.encode()).hexdigest()[:8]
        return f"{self._get_settings().folder}/receipts/{user_id}/{receipt_id}_{filename_hash}"

    def validate_upload(
        self,
        file_name: str,
        data: bytes,
        mime_type: Optional[str] = None,
    ) -> str:
        """
        Check format and size. Returns the MIME type to store.

        Raises:
            UnsupportedImageError: If the file can't be accepted
        """
        if not data:
            raise UnsupportedImageError("The uploaded file is empty")

        extension = PurePath(file_name).suffix.lstrip(".").lower()
        allowed = self._app_settings.supported_formats_list
        if extension not in allowed:
            raise UnsupportedImageError(
                f"Unsupported file type '.{extension}'. Allowed: {', '.join(allowed)}"
            )

        if mime_type and not mime_type.startswith("image/"):
            raise UnsupportedImageError(f"Not an image: {mime_type}")

        if len(data) > self._app_settings.max_upload_size_bytes:
            raise UnsupportedImageError(
                f"File is too large (maximum {self._app_settings.max_upload_size_mb} MB)"
            )

        return mime_type or MIME_TYPES.get(extension, "application/octet-stream")

    def assess_quality(self, data: bytes) -> tuple[bool, float, list[str]]:
        """
        Returns: (good_enough_for_ocr, score, issues)

        DESIGN DECISION: We are conservative here.
        Better to ask user to retake than to OCR garbage.
        """
        score, issues = assess_image_quality(data)
        return score >= self._app_settings.min_image_quality_score, score, issues

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upload(
        self,
        user_id: str,
        file_name: str,
        data: bytes,
        mime_type: Optional[str] = None,
        transaction_id: Optional[UUID] = None,
    ) -> ReceiptImage:
        """
        Upload a receipt photo.

        Raises:
            ImageUploadError: If upload fails
        """
        self._configure()
        receipt_id = uuid4()
        public_id = self._generate_public_id(user_id, receipt_id, file_name)

        try:
            result = cloudinary.uploader.upload(
                data,
                public_id=public_id,
                resource_type="image",
                overwrite=False,
            )
        except cloudinary.exceptions.Error as e:
            raise ImageUploadError(f"Cloudinary error: {e}")

        url = result.get("secure_url") or result.get("url")
        if not url:
            raise ImageUploadError("No URL returned from Cloudinary")

        logger.info("receipt_image_uploaded", user_id=user_id, public_id=public_id)
        return ReceiptImage(
            id=receipt_id,
            user_id=user_id,
            transaction_id=transaction_id,
            file_name=file_name,
            file_path=result.get("public_id", public_id),
            file_size=len(data),
            mime_type=mime_type,
            url=url,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def delete(self, file_path: str) -> bool:
        """
        Remove a photo. Returns False when Cloudinary reports it missing.

        Raises:
            ImageUploadError: If Cloudinary can't be reached
        """
        self._configure()
        try:
            result = cloudinary.uploader.destroy(file_path, resource_type="image")
        except cloudinary.exceptions.Error as e:
            raise ImageUploadError(f"Cloudinary error: {e}")
        return result.get("result") == "ok"

    def url_for(self, file_path: str, width: Optional[int] = None) -> str:
        """Delivery URL, optionally resized for thumbnails."""
        self._configure()
        transformation = [{"quality": "auto", "fetch_format": "auto"}]
        if width:
            transformation.insert(0, {"width": width, "crop": "limit"})
        return CloudinaryImage(file_path).build_url(transformation=transformation, secure=True)

"""Intake validation, decode and lossless encode of raster images."""
import io
import logging
import time
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from luminascale.config import (
    ACCEPTED_MIME_TYPES,
    EXPORT_FILENAME_PREFIX,
    MAX_UPLOAD_SIZE_BYTES,
    MAX_UPLOAD_SIZE_MB,
    MIME_ALIASES,
)
from luminascale.errors import DecodeError, FileTooLargeError, ValidationError
from luminascale.imaging.models import RasterImage

logger = logging.getLogger("luminascale.io")


def normalize_mime_type(mime_type: Optional[str]) -> str:
    mime = (mime_type or "").strip().lower()
    return MIME_ALIASES.get(mime, mime)


def validate_upload(data: bytes, mime_type: Optional[str]) -> str:
    """Fail fast on an empty, oversized or unsupported file. Returns the canonical mime type."""
    size = len(data)
    if size == 0:
        logger.info("Rejected empty upload")
        raise ValidationError("The selected file is empty (0 bytes). Please select a valid image file.")
    if size > MAX_UPLOAD_SIZE_BYTES:
        logger.info("Rejected upload of %s bytes", size)
        raise FileTooLargeError(
            f"File too large: {size / 1024 / 1024:.1f}MB. Maximum is {MAX_UPLOAD_SIZE_MB}MB."
        )
    mime = normalize_mime_type(mime_type)
    if mime not in ACCEPTED_MIME_TYPES:
        logger.info("Rejected upload with mime type %r", mime_type)
        raise ValidationError(
            f"Unsupported format: {mime_type or 'unknown'}. Please use JPG, PNG, or WEBP."
        )
    return mime


def open_image(data: bytes) -> Image.Image:
    """Open and fully load encoded bytes with EXIF orientation applied."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return ImageOps.exif_transpose(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise DecodeError(detail=str(e)) from e


def decode_image(data: bytes) -> RasterImage:
    img = open_image(data)
    raster = RasterImage.from_pil(img)
    logger.debug("Decoded %sx%s image (%s)", raster.width, raster.height, img.mode)
    return raster


def encode_png(image) -> bytes:
    """Lossless encode of a RasterImage or PIL image."""
    if isinstance(image, RasterImage):
        image = image.to_pil()
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def export_filename(style: str, timestamp: Optional[float] = None) -> str:
    """Download name carrying the style and a millisecond timestamp."""
    millis = int((time.time() if timestamp is None else timestamp) * 1000)
    return f"{EXPORT_FILENAME_PREFIX}-{style}-{millis}.png"

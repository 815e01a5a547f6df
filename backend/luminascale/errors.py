"""
Error taxonomy.

Every error carries a user-presentable message. Technical detail (status
codes, upstream bodies) lives in ``detail`` and never reaches ``str(error)``.
"""
from typing import Optional


class LuminaError(Exception):
    """Base exception for intake, decode and enhancement errors"""

    error_code = "LUMINA_ERROR"
    default_message = "Enhancement could not be completed. Please try again."
    retryable = False
    http_status = 500

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self):
        """Convert error to JSON-serializable dict"""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "retryable": self.retryable,
        }


class ValidationError(LuminaError):
    """Bad file type, size, or empty file. Raised before any network call."""

    error_code = "VALIDATION_ERROR"
    default_message = "Please upload a valid image file."
    http_status = 400


class FileTooLargeError(ValidationError):
    error_code = "FILE_TOO_LARGE"
    default_message = "The image is too large. Please try a smaller image."
    http_status = 413


class DecodeError(LuminaError):
    """Corrupt or unsupported image data"""

    error_code = "DECODE_ERROR"
    default_message = "There was an issue with the image file. Unsupported or corrupted format."
    http_status = 422


class EnhancementError(LuminaError):
    """Failure reported by, or while talking to, the remote enhancement service"""

    error_code = "ENHANCEMENT_ERROR"
    http_status = 502


class NetworkTimeout(EnhancementError):
    error_code = "NETWORK_TIMEOUT"
    default_message = "The request took too long. Please try with a smaller image."
    retryable = True
    http_status = 504


class ServiceUnavailable(EnhancementError):
    error_code = "SERVICE_UNAVAILABLE"
    default_message = "Our AI servers are busy. Please try again in a moment."
    retryable = True
    http_status = 503


class QuotaExceeded(EnhancementError):
    error_code = "QUOTA_EXCEEDED"
    default_message = "Daily enhancement quota exceeded. Please try again later."
    retryable = True
    http_status = 429


class AuthConfigurationError(EnhancementError):
    """The service is misconfigured (missing or rejected API key). Not a user mistake."""

    error_code = "AUTH_CONFIGURATION_ERROR"
    default_message = "The enhancement service is not configured correctly. Please try again later."
    http_status = 503


class UnknownEnhancementError(EnhancementError):
    error_code = "UNKNOWN_ENHANCEMENT_ERROR"


class OperationCancelled(LuminaError):
    """Raised inside a cancelled operation to unwind it. Never shown to the user."""

    error_code = "CANCELLED"
    default_message = "The operation was cancelled."
    http_status = 409

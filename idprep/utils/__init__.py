"""Utility modules for the preprocessing package."""

from idprep.utils.image_validation import (
    ImageFormat,
    ValidationError,
    detect_image_format,
    validate_image_bytes,
)

__all__ = [
    "ImageFormat",
    "ValidationError",
    "detect_image_format",
    "validate_image_bytes",
]

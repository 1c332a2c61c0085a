"""
Encoded image validation.

Input bytes are checked in two layers before decoding:
1. Magic byte detection (file signature)
2. Pillow header parsing
"""

import io
import logging
from enum import Enum
from typing import Optional

from PIL import Image

logger = logging.getLogger(__name__)


class ImageFormat(str, Enum):
    """Encoded image formats recognised by signature."""

    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"
    BMP = "bmp"
    TIFF = "tiff"
    WEBP = "webp"


# Magic byte signatures for image format detection
MAGIC_BYTES = {
    b"\xff\xd8\xff": ImageFormat.JPEG,
    b"\x89PNG\r\n\x1a\n": ImageFormat.PNG,
    b"GIF87a": ImageFormat.GIF,
    b"GIF89a": ImageFormat.GIF,
    b"BM": ImageFormat.BMP,
    b"II*\x00": ImageFormat.TIFF,  # little-endian
    b"MM\x00*": ImageFormat.TIFF,  # big-endian
    b"RIFF": ImageFormat.WEBP,  # needs further validation
}


class ValidationError(Exception):
    """Raised when encoded image validation fails."""

    pass


def detect_image_format(content: bytes) -> Optional[ImageFormat]:
    """
    Detect image format from magic bytes.

    Args:
        content: Leading bytes of the encoded image.

    Returns:
        Detected format, or None if the signature is unknown.
    """
    for signature, image_format in MAGIC_BYTES.items():
        if content.startswith(signature):
            # RIFF is a container; only WEBP is an image
            if signature == b"RIFF":
                if len(content) >= 12 and content[8:12] == b"WEBP":
                    return image_format
                continue
            return image_format

    return None


def is_readable_image(content: bytes) -> bool:
    """
    Check that Pillow can parse the image header.

    Args:
        content: Encoded image bytes.

    Returns:
        True if valid image, False otherwise.
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            img.verify()
        return True
    except Exception as e:
        logger.debug(f"PIL validation failed: {e}")
        return False


def validate_image_bytes(content: bytes, max_size_mb: int = 50) -> ImageFormat:
    """
    Validate encoded image bytes.

    Args:
        content: Encoded image bytes.
        max_size_mb: Maximum accepted size in MB.

    Returns:
        Detected image format.

    Raises:
        ValidationError: If the bytes fail any check.
    """
    if len(content) == 0:
        raise ValidationError("Image data is empty")

    max_size_bytes = max_size_mb * 1024 * 1024
    if len(content) > max_size_bytes:
        raise ValidationError(
            f"Image too large: {len(content) / 1024 / 1024:.1f}MB "
            f"(max {max_size_mb}MB)"
        )

    image_format = detect_image_format(content[:32])
    if image_format is None:
        raise ValidationError("Unknown or unsupported image type")

    if not is_readable_image(content):
        raise ValidationError(f"Data is not a valid {image_format.value} image")

    logger.debug(f"Image validated: {image_format.value}, {len(content) / 1024:.1f}KB")
    return image_format

"""
Raster I/O: decoding inputs into a processing context and encoding results.
"""

import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from PIL import Image, ImageOps

from idprep.utils.image_validation import ValidationError, validate_image_bytes

from .base import PixelBuffer, ProcessingContext
from .errors import BufferAllocationError, InvalidInputError, SurfaceError
from .imaging import fit_within, resize_pixels


logger = logging.getLogger(__name__)

ImageInput = Union[bytes, bytearray, memoryview, str, np.ndarray, PixelBuffer, Image.Image]

MIME_TYPES = {
    "png": "image/png",
    "webp": "image/webp",
    "jpeg": "image/jpeg",
}


@dataclass(frozen=True)
class EncodedImage:
    """Encoded output image."""

    data: bytes
    """Encoded bytes."""

    format: str
    """Format name: 'png', 'webp' or 'jpeg'."""

    width: int
    """Image width in pixels."""

    height: int
    """Image height in pixels."""

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self.format]

    def to_data_url(self) -> str:
        """Encode as a base64 ``data:`` URL."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


def decode_image(
    source: ImageInput,
    max_dimensions: Optional[tuple[int, int]] = None,
) -> ProcessingContext:
    """
    Decode an input into a fresh processing context.

    Pillow images, pixel buffers and arrays are copied as-is. Encoded
    images are decoded at native size and then downscaled to fit
    ``max_dimensions`` (width, height) if given.

    Args:
        source: Encoded bytes, base64 string or data URL, PixelBuffer,
            numpy array, or Pillow image.
        max_dimensions: Optional (width, height) bounds for encoded input.

    Returns:
        ProcessingContext owning a new RGBA buffer.

    Raises:
        InvalidInputError: If the input cannot be read.
        SurfaceError: If a Pillow image cannot be converted.
        BufferAllocationError: If the buffer cannot be allocated.
    """
    try:
        if isinstance(source, Image.Image):
            return ProcessingContext(_surface_to_buffer(source))

        if isinstance(source, PixelBuffer):
            return ProcessingContext(source.copy())

        if isinstance(source, np.ndarray):
            return ProcessingContext(_array_to_buffer(source))

        if isinstance(source, str):
            source = _decode_base64(source)

        if isinstance(source, (bytes, bytearray, memoryview)):
            return ProcessingContext(_decode_bytes(bytes(source), max_dimensions))

    except MemoryError as e:
        raise BufferAllocationError("Not enough memory to allocate the pixel buffer") from e

    raise InvalidInputError(f"Unsupported image input type: {type(source).__name__}")


def encode_image(
    context: ProcessingContext,
    image_format: str = "png",
    quality: float = 0.9,
) -> EncodedImage:
    """
    Encode the context's buffer.

    Args:
        context: Processing context to encode.
        image_format: 'png' or 'webp' (lossless) or 'jpeg' (lossy).
        quality: Lossy quality between 0 and 1.

    Returns:
        EncodedImage with the encoded bytes.
    """
    image_format = image_format.lower()
    if image_format == "jpg":
        image_format = "jpeg"
    if image_format not in MIME_TYPES:
        raise InvalidInputError(f"Unsupported output format: {image_format}")

    try:
        surface = context.to_surface()
    except (ValueError, TypeError) as e:
        raise SurfaceError(f"Failed to create surface: {e}") from e

    output = io.BytesIO()
    try:
        if image_format == "png":
            surface.save(output, format="PNG")
        elif image_format == "webp":
            surface.save(output, format="WEBP", lossless=True)
        else:
            jpeg_quality = int(min(100, max(1, round(quality * 100))))
            surface.convert("RGB").save(output, format="JPEG", quality=jpeg_quality)
    except OSError as e:
        raise SurfaceError(f"Failed to encode {image_format}: {e}") from e

    return EncodedImage(
        data=output.getvalue(),
        format=image_format,
        width=context.width,
        height=context.height,
    )


def _decode_base64(value: str) -> bytes:
    """Decode a data URL or bare base64 string."""
    payload = value.strip()
    if payload.startswith("data:"):
        header, sep, payload = payload.partition(",")
        if not sep or ";base64" not in header:
            raise InvalidInputError("Only base64 data URLs are supported")

    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError(f"Invalid base64 image data: {e}") from e


def _decode_bytes(
    content: bytes,
    max_dimensions: Optional[tuple[int, int]],
) -> PixelBuffer:
    """Decode encoded image bytes into an RGBA buffer."""
    try:
        image_format = validate_image_bytes(content)
    except ValidationError as e:
        raise InvalidInputError(str(e)) from e

    try:
        with Image.open(io.BytesIO(content)) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            pixels = np.array(_to_8bit(img).convert("RGBA"))
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise InvalidInputError(f"Failed to decode {image_format.value} image: {e}") from e

    height, width = pixels.shape[:2]
    if max_dimensions is not None:
        max_width, max_height = max_dimensions
        new_width, new_height = fit_within(width, height, max_width, max_height)
        if (new_width, new_height) != (width, height):
            logger.debug(f"Downscaling {width}x{height} -> {new_width}x{new_height}")
            pixels = resize_pixels(pixels, new_width, new_height)

    logger.debug(f"Decoded {image_format.value} image: {pixels.shape[1]}x{pixels.shape[0]}")
    return PixelBuffer(np.ascontiguousarray(pixels))


def _to_8bit(img: Image.Image) -> Image.Image:
    """
    Rescale 16-bit integer gray images ('I;16*' or 'I') to 8-bit 'L'.

    Pillow's own conversion clips these samples at 255 instead of scaling.
    """
    if img.mode != "I" and not img.mode.startswith("I;16"):
        return img
    samples = np.clip(np.asarray(img).astype(np.int64), 0, 65535)
    return Image.fromarray((samples >> 8).astype(np.uint8))


def _surface_to_buffer(surface: Image.Image) -> PixelBuffer:
    """Copy a Pillow image into an RGBA buffer without resampling."""
    try:
        rgba = surface if surface.mode == "RGBA" else _to_8bit(surface).convert("RGBA")
        pixels = np.array(rgba, dtype=np.uint8)
    except (OSError, ValueError) as e:
        raise SurfaceError(f"Failed to read surface: {e}") from e
    return PixelBuffer(np.ascontiguousarray(pixels))


def _array_to_buffer(array: np.ndarray) -> PixelBuffer:
    """Copy a uint8 gray, RGB or RGBA array into an RGBA buffer."""
    if array.dtype != np.uint8:
        raise InvalidInputError(f"Pixel arrays must be uint8, got {array.dtype}")

    if array.ndim == 2:
        height, width = array.shape
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[..., :3] = array[..., None]
        pixels[..., 3] = 255
    elif array.ndim == 3 and array.shape[2] == 3:
        height, width = array.shape[:2]
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[..., :3] = array
        pixels[..., 3] = 255
    elif array.ndim == 3 and array.shape[2] == 4:
        pixels = array.copy()
    else:
        raise InvalidInputError(f"Unsupported pixel array shape: {array.shape}")

    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise InvalidInputError("Pixel array is empty")

    return PixelBuffer(np.ascontiguousarray(pixels))

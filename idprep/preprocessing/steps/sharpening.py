"""
Sharpening step.
"""

import logging

import numpy as np

from ..base import PreprocessingStep, PreprocessingOperation, ProcessingContext, StepResult
from ..imaging import LAPLACIAN_KERNEL, convolve, local_mean, round_half_up, to_uint8


logger = logging.getLogger(__name__)


def unsharp_mask(pixels: np.ndarray, strength: float = 0.5, radius: int = 1) -> np.ndarray:
    """
    Unsharp mask in place: ``orig + strength * (orig - blurred)``.

    The blur is a box of size max(3, 2 * radius + 1), rounded to whole
    levels. Pixels closer to the border than half the box are left as-is.
    """
    size = max(3, 2 * int(radius) + 1)
    half = size // 2
    height, width = pixels.shape[:2]
    if height <= 2 * half or width <= 2 * half:
        return pixels

    rgb = pixels[..., :3].astype(np.float64)
    blurred = round_half_up(local_mean(rgb, size))
    sharpened = rgb + strength * (rgb - blurred)

    interior = (slice(half, height - half), slice(half, width - half))
    pixels[interior + (slice(0, 3),)] = to_uint8(sharpened[interior])
    return pixels


def laplacian_sharpen(pixels: np.ndarray, strength: float = 0.5) -> np.ndarray:
    """Add ``strength`` times the Laplacian response to interior pixels, in place."""
    height, width = pixels.shape[:2]
    if height < 3 or width < 3:
        return pixels

    rgb = pixels[..., :3].astype(np.float64)
    response = convolve(rgb, LAPLACIAN_KERNEL)
    pixels[1:-1, 1:-1, :3] = to_uint8(rgb[1:-1, 1:-1] + strength * response[1:-1, 1:-1])
    return pixels


class SharpeningStep(PreprocessingStep):
    """Sharpens detail with an unsharp mask or a Laplacian filter."""

    @property
    def name(self) -> PreprocessingOperation:
        return PreprocessingOperation.SHARPENING

    def apply(self, context: ProcessingContext) -> StepResult:
        method = self.settings.method
        strength = self.settings.strength

        if method == "laplacian":
            laplacian_sharpen(context.data, strength)
        else:
            unsharp_mask(context.data, strength, self.settings.radius)

        return self._result(method=method, strength=strength)

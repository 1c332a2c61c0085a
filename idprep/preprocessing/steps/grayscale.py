"""
Grayscale conversion step.
"""

import logging

import numpy as np

from ..base import PreprocessingStep, PreprocessingOperation, ProcessingContext, StepResult
from ..imaging import luminance, round_half_up


logger = logging.getLogger(__name__)

# Every 10th pixel is sampled by the color heuristics
SAMPLE_STRIDE = 10

# Largest per-channel difference still considered gray
GRAY_TOLERANCE = 2

LOW_COLOR_VARIANCE = 100.0
HIGH_COLOR_VARIANCE = 1000.0


def convert_to_grayscale(
    pixels: np.ndarray,
    method: str = "luminance",
    preserve_alpha: bool = True,
) -> np.ndarray:
    """
    Convert RGBA pixels to gray in place.

    Args:
        pixels: RGBA uint8 array, modified in place.
        method: 'luminance', 'average' or 'desaturation'.
        preserve_alpha: If False, alpha is set to fully opaque.

    Returns:
        The same array.
    """
    rgb = pixels[..., :3].astype(np.float64)

    if method == "average":
        gray = rgb.sum(axis=-1) / 3.0
    elif method == "desaturation":
        gray = (rgb.max(axis=-1) + rgb.min(axis=-1)) / 2.0
    else:
        gray = luminance(pixels)

    pixels[..., :3] = np.clip(round_half_up(gray), 0, 255).astype(np.uint8)[..., None]

    if not preserve_alpha:
        pixels[..., 3] = 255

    return pixels


def _sampled_rgb(pixels: np.ndarray) -> np.ndarray:
    return pixels.reshape(-1, 4)[::SAMPLE_STRIDE, :3].astype(np.int32)


def is_grayscale(pixels: np.ndarray) -> bool:
    """Check whether sampled pixels have (nearly) equal channels."""
    try:
        rgb = _sampled_rgb(pixels)
        r, g, b = rgb[:, 0], rgb[:, 1], rgb[:, 2]
        spread = np.maximum.reduce([np.abs(r - g), np.abs(g - b), np.abs(r - b)])
        return bool(np.all(spread <= GRAY_TOLERANCE))
    except Exception as e:
        logger.debug(f"Grayscale check failed: {e}")
        return False


def recommend_grayscale_method(pixels: np.ndarray) -> str:
    """
    Pick a grayscale method from sampled color variance.

    Low variance favours 'average', high variance 'desaturation',
    anything in between 'luminance'.
    """
    try:
        rgb = _sampled_rgb(pixels).astype(np.float64)
        if rgb.size == 0:
            return "luminance"
        mean = rgb.mean(axis=1, keepdims=True)
        avg_variance = float(((rgb - mean) ** 2).sum(axis=1).mean())
    except Exception as e:
        logger.debug(f"Grayscale method recommendation failed: {e}")
        return "luminance"

    if avg_variance < LOW_COLOR_VARIANCE:
        return "average"
    if avg_variance > HIGH_COLOR_VARIANCE:
        return "desaturation"
    return "luminance"


class GrayscaleStep(PreprocessingStep):
    """
    Converts the image to grayscale.

    This is the first step in the pipeline since the skew and noise
    heuristics work on luminance.
    """

    @property
    def name(self) -> PreprocessingOperation:
        return PreprocessingOperation.GRAYSCALE

    def apply(self, context: ProcessingContext) -> StepResult:
        """Convert the context's pixels to gray."""
        method = self.settings.method
        convert_to_grayscale(context.data, method, self.settings.preserve_alpha)
        return self._result(method=method)

"""
Contrast enhancement step.
"""

import logging

import numpy as np

from ..base import PreprocessingStep, PreprocessingOperation, ProcessingContext, StepResult
from ..imaging import luminance_statistics, round_half_up, rounded_luminance, to_uint8


logger = logging.getLogger(__name__)

# Tile edge for adaptive histogram equalization
TILE_SIZE = 64

HISTOGRAM_BINS = 256

# Normalizer for luminance standard deviation (max std of 8-bit values)
MAX_STD = 127.5

HIGH_CONTRAST = 0.6
LOW_CONTRAST = 0.3


def apply_linear_contrast(pixels: np.ndarray, factor: float) -> np.ndarray:
    """Scale RGB values around mid-gray in place. Factor 1.0 is the identity."""
    rgb = pixels[..., :3].astype(np.float64)
    pixels[..., :3] = to_uint8(factor * (rgb - 128.0) + 128.0)
    return pixels


def apply_adaptive_contrast(pixels: np.ndarray, clip_limit: float) -> np.ndarray:
    """
    Contrast-limited histogram equalization over fixed tiles, in place.

    Each tile's luminance histogram is clipped at
    ``clip_limit * pixel_count / 256``, the clipped mass is spread evenly
    over all bins and the tile's luminance is remapped through the
    normalized CDF. RGB channels are scaled by the luminance ratio.
    """
    height, width = pixels.shape[:2]
    gray = rounded_luminance(pixels)

    for top in range(0, height, TILE_SIZE):
        for left in range(0, width, TILE_SIZE):
            tile_gray = gray[top:top + TILE_SIZE, left:left + TILE_SIZE]
            mapping = _equalization_map(tile_gray, clip_limit)
            if mapping is None:
                continue

            enhanced = mapping[tile_gray]
            original = tile_gray.astype(np.float64)
            ratio = np.divide(
                enhanced,
                original,
                out=np.ones_like(original),
                where=original > 0,
            )

            tile_rgb = pixels[top:top + TILE_SIZE, left:left + TILE_SIZE, :3]
            tile_rgb[...] = to_uint8(tile_rgb.astype(np.float64) * ratio[..., None])

    return pixels


def _equalization_map(tile_gray: np.ndarray, clip_limit: float):
    """Clipped-CDF lookup table for one tile, or None if the tile is flat."""
    pixel_count = tile_gray.size
    histogram = np.bincount(tile_gray.ravel(), minlength=HISTOGRAM_BINS).astype(np.int64)

    clip_value = int(np.floor(clip_limit * pixel_count / HISTOGRAM_BINS))
    excess = int(np.maximum(histogram - clip_value, 0).sum())
    histogram = np.minimum(histogram, clip_value)
    histogram += excess // HISTOGRAM_BINS

    cdf = np.cumsum(histogram)
    nonzero = cdf[cdf > 0]
    cdf_min = int(nonzero[0]) if nonzero.size else 0
    cdf_max = int(cdf[-1])

    if cdf_max == cdf_min:
        return None

    return round_half_up((cdf - cdf_min) * 255.0 / (cdf_max - cdf_min))


def stretch_histogram(pixels: np.ndarray) -> np.ndarray:
    """Stretch each RGB channel's min-max range to 0-255 in place."""
    rgb = pixels[..., :3].astype(np.float64)
    if rgb.size == 0:
        return pixels

    lows = rgb.min(axis=(0, 1))
    ranges = rgb.max(axis=(0, 1)) - lows
    ranges[ranges == 0] = 1.0

    pixels[..., :3] = to_uint8((rgb - lows) * 255.0 / ranges)
    return pixels


def normalized_contrast(pixels: np.ndarray) -> float:
    """Luminance standard deviation scaled to 0-1."""
    _, std = luminance_statistics(pixels)
    return std / MAX_STD


def optimal_contrast_factor(pixels: np.ndarray) -> float:
    """Suggest a linear contrast factor from the current contrast."""
    try:
        contrast = normalized_contrast(pixels)
    except Exception as e:
        logger.debug(f"Contrast factor estimation failed: {e}")
        return 1.4

    if contrast > HIGH_CONTRAST:
        return 1.1
    if contrast < LOW_CONTRAST:
        return 1.8
    return 1.4


def needs_contrast_enhancement(pixels: np.ndarray, threshold: float = 0.4) -> bool:
    """Check whether the image's contrast is below ``threshold``."""
    try:
        return normalized_contrast(pixels) < threshold
    except Exception as e:
        logger.debug(f"Contrast check failed: {e}")
        return False


class ContrastStep(PreprocessingStep):
    """
    Enhances contrast, either linearly around mid-gray or with tiled
    contrast-limited adaptive histogram equalization.
    """

    @property
    def name(self) -> PreprocessingOperation:
        return PreprocessingOperation.CONTRAST_ENHANCEMENT

    def apply(self, context: ProcessingContext) -> StepResult:
        """Enhance contrast of the context's pixels."""
        if self.settings.adaptive:
            apply_adaptive_contrast(context.data, self.settings.clip_limit)
            return self._result(mode="adaptive", clip_limit=self.settings.clip_limit)

        factor = self.settings.factor
        if factor == 1.0:
            return self._result(applied=False, reason="identity")

        apply_linear_contrast(context.data, factor)
        return self._result(mode="linear", factor=factor)

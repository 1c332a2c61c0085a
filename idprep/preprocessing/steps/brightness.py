"""
Brightness adjustment step.
"""

import logging

import numpy as np

from ..base import PreprocessingStep, PreprocessingOperation, ProcessingContext, StepResult
from ..imaging import luminance, round_half_up, to_uint8


logger = logging.getLogger(__name__)

# Auto adjustment pulls mean luminance towards this level
TARGET_LUMINANCE = 128.0
MAX_AUTO_ADJUSTMENT = 50.0


def auto_brightness_adjustment(pixels: np.ndarray) -> float:
    """Offset moving mean luminance to mid-gray, limited to +/-50."""
    gray = luminance(pixels)
    if gray.size == 0:
        return 0.0
    adjustment = TARGET_LUMINANCE - float(gray.mean())
    return max(-MAX_AUTO_ADJUSTMENT, min(MAX_AUTO_ADJUSTMENT, adjustment))


def adjust_brightness(pixels: np.ndarray, adjustment: float) -> np.ndarray:
    """Add ``adjustment`` to every RGB channel in place, clamping to 0-255."""
    rgb = pixels[..., :3].astype(np.float64)
    pixels[..., :3] = to_uint8(rgb + adjustment)
    return pixels


def apply_gamma(pixels: np.ndarray, gamma: float) -> np.ndarray:
    """Gamma-correct RGB channels in place: 255 * (v / 255) ** (1 / gamma)."""
    table = to_uint8(255.0 * (np.arange(256) / 255.0) ** (1.0 / gamma))
    pixels[..., :3] = table[pixels[..., :3]]
    return pixels


class BrightnessStep(PreprocessingStep):
    """
    Adjusts brightness with a fixed or automatic offset, then an optional
    gamma curve.
    """

    @property
    def name(self) -> PreprocessingOperation:
        return PreprocessingOperation.BRIGHTNESS_ADJUSTMENT

    def apply(self, context: ProcessingContext) -> StepResult:
        if self.settings.auto_adjust:
            adjustment = auto_brightness_adjustment(context.data)
        else:
            adjustment = self.settings.adjustment

        gamma = self.settings.gamma
        offset_changes = round_half_up(adjustment) != 0

        if not offset_changes and gamma == 1.0:
            return self._result(applied=False, adjustment=adjustment, reason="no_change")

        if offset_changes:
            adjust_brightness(context.data, adjustment)
        if gamma != 1.0:
            apply_gamma(context.data, gamma)

        logger.debug(f"Brightness offset {adjustment:.1f}, gamma {gamma}")
        return self._result(adjustment=adjustment, gamma=gamma)

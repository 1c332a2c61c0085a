"""
Noise removal step.
"""

import logging

import numpy as np
import cv2

from ..base import PreprocessingStep, PreprocessingOperation, ProcessingContext, StepResult
from ..imaging import (
    EDGE_THRESHOLD,
    GAUSSIAN_KERNEL_3,
    GAUSSIAN_KERNEL_5,
    convolve,
    effective_window,
    luminance,
    rounded_luminance,
    sobel_magnitude,
    to_uint8,
)


logger = logging.getLogger(__name__)

# Range sigma of the bilateral filter is strength * this
BILATERAL_COLOR_SCALE = 50.0

SAMPLE_STRIDE = 4
HIGH_EDGE_RATIO = 0.3
HIGH_LOCAL_VARIANCE = 100.0


def median_filter(pixels: np.ndarray, kernel_size: int = 3) -> np.ndarray:
    """
    Per-channel median filter, in place.

    Pixels closer than ``kernel_size // 2`` to the border are left as-is.
    Alpha is preserved.
    """
    half, size = effective_window(kernel_size)
    height, width = pixels.shape[:2]
    if half == 0 or height < size or width < size:
        return pixels

    rgb = np.ascontiguousarray(pixels[..., :3])
    filtered = cv2.medianBlur(rgb, size)
    pixels[half:height - half, half:width - half, :3] = filtered[half:height - half, half:width - half]
    return pixels


def gaussian_filter(pixels: np.ndarray, kernel_size: int = 3, strength: float = 1.0) -> np.ndarray:
    """
    Gaussian blur blended with the original by ``strength``, in place.

    Uses the 3x3 kernel for sizes up to 3 and the 5x5 kernel above.
    Strength 1.0 is a pure blur, 0.0 leaves the image unchanged.
    """
    kernel = GAUSSIAN_KERNEL_3 if kernel_size <= 3 else GAUSSIAN_KERNEL_5
    rgb = pixels[..., :3].astype(np.float64)
    blurred = to_uint8(convolve(rgb, kernel))

    if strength < 1.0:
        blurred = to_uint8(rgb * (1.0 - strength) + blurred.astype(np.float64) * strength)

    pixels[..., :3] = blurred
    return pixels


def bilateral_filter(pixels: np.ndarray, kernel_size: int = 5, strength: float = 0.5) -> np.ndarray:
    """
    Edge-preserving bilateral filter, in place.

    Each neighbor is weighted by a spatial Gaussian (sigma = kernel_size / 3)
    times a range Gaussian over the channel difference
    (sigma = strength * 50). The border is left as-is.
    """
    half, size = effective_window(kernel_size)
    height, width = pixels.shape[:2]
    sigma_space = kernel_size / 3.0
    sigma_color = strength * BILATERAL_COLOR_SCALE
    if half == 0 or sigma_color <= 0 or height < size or width < size:
        return pixels

    rgb = pixels[..., :3].astype(np.float64)
    center = rgb[half:height - half, half:width - half]
    weight_sum = np.zeros_like(center)
    value_sum = np.zeros_like(center)

    for dy in range(-half, half + 1):
        for dx in range(-half, half + 1):
            neighbor = rgb[half + dy:height - half + dy, half + dx:width - half + dx]
            spatial = np.exp(-(dx * dx + dy * dy) / (2.0 * sigma_space * sigma_space))
            difference = center - neighbor
            weight = spatial * np.exp(-(difference * difference) / (2.0 * sigma_color * sigma_color))
            weight_sum += weight
            value_sum += neighbor * weight

    pixels[half:height - half, half:width - half, :3] = to_uint8(value_sum / weight_sum)
    return pixels


def _erode(gray: np.ndarray, size: int) -> np.ndarray:
    kernel = np.ones((size, size), dtype=np.uint8)
    return cv2.erode(gray, kernel, borderType=cv2.BORDER_REPLICATE)


def _dilate(gray: np.ndarray, size: int) -> np.ndarray:
    kernel = np.ones((size, size), dtype=np.uint8)
    return cv2.dilate(gray, kernel, borderType=cv2.BORDER_REPLICATE)


def morphological_opening(pixels: np.ndarray, kernel_size: int = 3) -> np.ndarray:
    """Erosion then dilation of the luminance, in place. Removes small bright specks."""
    _, size = effective_window(kernel_size)
    opened = _dilate(_erode(rounded_luminance(pixels), size), size)
    pixels[..., :3] = opened[..., None]
    return pixels


def morphological_closing(pixels: np.ndarray, kernel_size: int = 3) -> np.ndarray:
    """Dilation then erosion of the luminance, in place. Fills small dark gaps."""
    _, size = effective_window(kernel_size)
    closed = _erode(_dilate(rounded_luminance(pixels), size), size)
    pixels[..., :3] = closed[..., None]
    return pixels


def recommend_noise_method(pixels: np.ndarray) -> str:
    """
    Pick a noise filter from sampled image characteristics.

    Edge-heavy images get 'bilateral', noisy ones 'median', the rest
    'gaussian'.
    """
    try:
        gray = luminance(pixels)
        height, width = gray.shape
        ys, xs = np.meshgrid(
            np.arange(1, height - 1, SAMPLE_STRIDE),
            np.arange(1, width - 1, SAMPLE_STRIDE),
            indexing="ij",
        )
        if ys.size == 0:
            return "gaussian"

        center = gray[ys, xs]
        variance = np.zeros_like(center)
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                variance += (gray[ys + dy, xs + dx] - center) ** 2
        avg_noise = float((variance / 9.0).mean())
        edge_ratio = float((sobel_magnitude(gray)[ys, xs] > EDGE_THRESHOLD).mean())
    except Exception as e:
        logger.debug(f"Noise method recommendation failed: {e}")
        return "gaussian"

    if edge_ratio > HIGH_EDGE_RATIO:
        return "bilateral"
    if avg_noise > HIGH_LOCAL_VARIANCE:
        return "median"
    return "gaussian"


class NoiseReductionStep(PreprocessingStep):
    """
    Removes noise with a median, Gaussian or bilateral filter, optionally
    followed by a morphological opening or closing.
    """

    @property
    def name(self) -> PreprocessingOperation:
        return PreprocessingOperation.NOISE_REDUCTION

    def apply(self, context: ProcessingContext) -> StepResult:
        """Filter the context's pixels."""
        method = self.settings.method
        kernel_size = self.settings.kernel_size
        strength = self.settings.strength

        if method == "gaussian":
            gaussian_filter(context.data, kernel_size, strength)
        elif method == "bilateral":
            bilateral_filter(context.data, kernel_size, strength)
        else:
            median_filter(context.data, kernel_size)

        morphology = self.settings.morphology
        if morphology == "opening":
            morphological_opening(context.data, kernel_size)
        elif morphology == "closing":
            morphological_closing(context.data, kernel_size)

        logger.debug(f"Noise reduction: {method}, kernel {kernel_size}, morphology {morphology}")
        return self._result(method=method, kernel_size=kernel_size, morphology=morphology)

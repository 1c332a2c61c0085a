"""
Image quality analyzer for preprocessing decisions.
"""

import logging

import numpy as np

from .base import ImageAnalysis, PreprocessingOperation, ProcessingContext, QualityMetrics
from .imaging import (
    LAPLACIAN_KERNEL,
    convolve,
    edge_density,
    local_mean,
    luminance,
    luminance_histogram,
    luminance_statistics,
    round_half_up,
)
from .steps.deskew import estimate_skew


logger = logging.getLogger(__name__)

# Normalizers
SHARPNESS_DIVISOR = 10000.0
NOISE_DIVISOR = 1000.0
MAX_STD = 127.5

NOISE_SAMPLE_STRIDE = 4
NOISE_WINDOW = 5

# Histogram peaks must hold more than this share of all pixels
PEAK_MASS_FRACTION = 0.01

OVERALL_WEIGHTS = {
    "sharpness": 0.25,
    "contrast": 0.20,
    "brightness": 0.15,
    "noise": 0.20,
    "text_readability": 0.20,
}

DOCUMENT_ASPECT_RANGE = (0.5, 2.0)
DOCUMENT_MIN_READABILITY = 0.6
DOCUMENT_MIN_CONTRAST = 0.4


class ImageQualityAnalyzer:
    """
    Analyzes image quality to determine which preprocessing steps are needed.

    Measures:
    - Sharpness (Laplacian response energy)
    - Contrast (luminance standard deviation)
    - Brightness (mean luminance)
    - Noise (deviation from local means)
    - Text readability (histogram bimodality and edge density)
    - Skew angle (edge scan lines)
    """

    def analyze(self, context: ProcessingContext) -> ImageAnalysis:
        """
        Perform comprehensive image analysis.

        Args:
            context: Processing context to analyse. Not modified.

        Returns:
            ImageAnalysis with metrics and recommendations.
        """
        pixels = context.data
        width, height = context.width, context.height

        metrics = self.measure(pixels)
        is_document = self._is_document(width, height, metrics)
        detected_rotation = estimate_skew(pixels)
        suitability = self._suitability(metrics, is_document)
        recommended = self._recommend_operations(metrics, is_document)

        logger.debug(
            f"Analysis {width}x{height}: overall={metrics.overall:.3f}, "
            f"document={is_document}, rotation={detected_rotation:.2f}"
        )

        return ImageAnalysis(
            width=width,
            height=height,
            quality_metrics=metrics,
            is_document_image=is_document,
            detected_rotation=detected_rotation,
            recommended_operations=recommended,
            suitability_score=suitability,
        )

    def measure(self, pixels: np.ndarray) -> QualityMetrics:
        """
        Compute quality metrics for RGBA pixels.

        Returns:
            QualityMetrics with every score in [0, 1].
        """
        gray = luminance(pixels)
        mean, std = luminance_statistics(pixels)

        sharpness = self._measure_sharpness(gray)
        contrast = min(1.0, std / MAX_STD)
        brightness = mean / 255.0
        noise = self._measure_noise(pixels)
        text_readability = self._measure_text_readability(pixels, gray)

        overall = (
            OVERALL_WEIGHTS["sharpness"] * sharpness
            + OVERALL_WEIGHTS["contrast"] * contrast
            + OVERALL_WEIGHTS["brightness"] * brightness
            + OVERALL_WEIGHTS["noise"] * (1.0 - noise)
            + OVERALL_WEIGHTS["text_readability"] * text_readability
        )

        return QualityMetrics(
            sharpness=sharpness,
            contrast=contrast,
            brightness=brightness,
            noise=noise,
            text_readability=text_readability,
            overall=overall,
        )

    def _measure_sharpness(self, gray: np.ndarray) -> float:
        """
        Measure sharpness as the mean squared Laplacian response.

        Higher values indicate sharper images.
        """
        height, width = gray.shape
        if height < 3 or width < 3:
            return 0.0
        response = convolve(gray, LAPLACIAN_KERNEL)[1:-1, 1:-1]
        return min(1.0, float((response ** 2).mean()) / SHARPNESS_DIVISOR)

    def _measure_noise(self, pixels: np.ndarray) -> float:
        """
        Estimate noise from sampled deviations against 5x5 local means.

        Returns normalized noise level (0.0 to 1.0).
        """
        gray = round_half_up(luminance(pixels))
        height, width = gray.shape
        margin = NOISE_WINDOW // 2
        rows = np.arange(margin, height - margin, NOISE_SAMPLE_STRIDE)
        cols = np.arange(margin, width - margin, NOISE_SAMPLE_STRIDE)
        if rows.size == 0 or cols.size == 0:
            return 0.0

        means = local_mean(gray, NOISE_WINDOW)
        sample = np.ix_(rows, cols)
        deviation = (gray[sample] - means[sample]) ** 2
        return min(1.0, float(deviation.mean()) / NOISE_DIVISOR)

    def _measure_text_readability(self, pixels: np.ndarray, gray: np.ndarray) -> float:
        """Blend histogram bimodality with edge density."""
        bimodality = self._measure_bimodality(luminance_histogram(pixels))
        return min(1.0, 0.6 * bimodality + 0.4 * edge_density(gray))

    def _measure_bimodality(self, histogram: np.ndarray) -> float:
        """
        Score how clearly the histogram separates into two peaks.

        Two peaks score their distance over 255; any other count scores 0.5.
        """
        total = histogram.sum()
        inner = histogram[1:-1]
        is_peak = (
            (inner > histogram[:-2])
            & (inner > histogram[2:])
            & (inner > PEAK_MASS_FRACTION * total)
        )
        peaks = np.nonzero(is_peak)[0] + 1

        if peaks.size == 2:
            return abs(int(peaks[1]) - int(peaks[0])) / 255.0
        return 0.5

    def _is_document(self, width: int, height: int, metrics: QualityMetrics) -> bool:
        """
        Check whether the image looks like a photographed document.
        """
        aspect_ratio = width / height if height else 0.0
        low, high = DOCUMENT_ASPECT_RANGE
        return (
            low <= aspect_ratio <= high
            and metrics.text_readability > DOCUMENT_MIN_READABILITY
            and metrics.contrast > DOCUMENT_MIN_CONTRAST
        )

    def _suitability(self, metrics: QualityMetrics, is_document: bool) -> float:
        score = metrics.overall
        if is_document:
            score += 0.1
        if metrics.overall < 0.3:
            score *= 0.5
        if metrics.text_readability > 0.7:
            score += 0.1
        return max(0.0, min(1.0, score))

    def _recommend_operations(
        self,
        metrics: QualityMetrics,
        is_document: bool,
    ) -> tuple[PreprocessingOperation, ...]:
        operations = [PreprocessingOperation.GRAYSCALE]

        if metrics.contrast < 0.6:
            operations.append(PreprocessingOperation.CONTRAST_ENHANCEMENT)
        if metrics.brightness < 0.3 or metrics.brightness > 0.8:
            operations.append(PreprocessingOperation.BRIGHTNESS_ADJUSTMENT)
        if metrics.noise > 0.3:
            operations.append(PreprocessingOperation.NOISE_REDUCTION)
        if metrics.sharpness < 0.5:
            operations.append(PreprocessingOperation.SHARPENING)
        if is_document:
            operations.append(PreprocessingOperation.ROTATION_CORRECTION)
            if metrics.contrast < 0.4:
                operations.append(PreprocessingOperation.HISTOGRAM_EQUALIZATION)

        return tuple(operations)

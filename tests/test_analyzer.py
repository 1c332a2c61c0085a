import numpy as np
import pytest

from idprep.preprocessing.analyzer import ImageQualityAnalyzer
from idprep.preprocessing.base import PixelBuffer, PreprocessingOperation, ProcessingContext
from idprep.preprocessing.steps.contrast import needs_contrast_enhancement

from conftest import make_rgba


def _analyze(pixels):
    return ImageQualityAnalyzer().analyze(ProcessingContext(PixelBuffer(pixels)))


def _in_unit_range(metrics):
    return all(0.0 <= value <= 1.0 for value in metrics.to_dict().values())


def test_blank_white_image(white_image):
    metrics = ImageQualityAnalyzer().measure(white_image)

    assert metrics.brightness == pytest.approx(1.0)
    assert metrics.contrast == pytest.approx(0.0)
    assert metrics.sharpness == 0.0
    assert metrics.noise == 0.0
    # no histogram peaks inside 1..254 and no edges
    assert metrics.text_readability == pytest.approx(0.3)
    assert metrics.overall == pytest.approx(0.15 + 0.20 + 0.20 * 0.3)
    assert needs_contrast_enhancement(white_image)


def test_metrics_in_unit_range(random_image, striped_document, skewed_square_image):
    analyzer = ImageQualityAnalyzer()
    for pixels in (random_image, striped_document, skewed_square_image):
        assert _in_unit_range(analyzer.measure(pixels))


def test_tiny_image_does_not_fail():
    pixels = np.full((2, 2, 4), 100, dtype=np.uint8)
    metrics = ImageQualityAnalyzer().measure(pixels)

    assert metrics.sharpness == 0.0
    assert metrics.noise == 0.0
    assert _in_unit_range(metrics)


def test_bimodal_histogram():
    gray = np.full((20, 20), 50, dtype=np.uint8)
    gray[:, 10:] = 200
    analyzer = ImageQualityAnalyzer()

    histogram = np.bincount(gray.ravel(), minlength=256)
    assert analyzer._measure_bimodality(histogram) == pytest.approx(150 / 255)


def test_unimodal_histogram_scores_half():
    histogram = np.zeros(256, dtype=np.int64)
    histogram[120] = 100
    assert ImageQualityAnalyzer()._measure_bimodality(histogram) == 0.5


def test_document_detection(striped_document):
    analysis = _analyze(striped_document)
    metrics = analysis.quality_metrics

    assert analysis.is_document_image
    assert metrics.contrast > 0.4
    assert metrics.text_readability > 0.6
    assert PreprocessingOperation.ROTATION_CORRECTION in analysis.recommended_operations
    assert PreprocessingOperation.HISTOGRAM_EQUALIZATION not in analysis.recommended_operations
    # +0.1 for documents and +0.1 for readability > 0.7
    assert analysis.suitability_score == pytest.approx(min(1.0, metrics.overall + 0.2))


def test_wide_image_is_not_a_document(striped_document):
    wide = np.concatenate([striped_document] * 3, axis=1)
    assert not _analyze(wide).is_document_image


def test_recommendations_for_blank_image(white_image):
    analysis = _analyze(white_image)
    ops = analysis.recommended_operations

    assert ops[0] == PreprocessingOperation.GRAYSCALE
    assert PreprocessingOperation.CONTRAST_ENHANCEMENT in ops
    assert PreprocessingOperation.BRIGHTNESS_ADJUSTMENT in ops
    assert PreprocessingOperation.SHARPENING in ops
    assert PreprocessingOperation.NOISE_REDUCTION not in ops
    assert PreprocessingOperation.ROTATION_CORRECTION not in ops
    assert not analysis.is_document_image
    assert analysis.detected_rotation == 0.0


def test_analysis_dimensions_and_dict(skewed_square_image):
    analysis = _analyze(skewed_square_image)

    assert (analysis.width, analysis.height) == (200, 200)
    assert analysis.detected_rotation == pytest.approx(7.0, abs=1.0)
    assert 0.0 <= analysis.suitability_score <= 1.0

    data = analysis.to_dict()
    assert data["dimensions"] == {"width": 200, "height": 200}
    assert data["recommended_operations"][0] == "grayscale"


def test_analysis_does_not_modify_pixels(random_image):
    pixels = random_image.copy()
    _analyze(pixels)
    assert np.array_equal(pixels, random_image)


def test_low_suitability_halved():
    dark = make_rgba(np.zeros((50, 50), dtype=np.uint8))
    analysis = _analyze(dark)
    overall = analysis.quality_metrics.overall

    # brightness 0, contrast 0, no noise, readability 0.3
    assert overall == pytest.approx(0.20 + 0.20 * 0.3)
    assert analysis.suitability_score == pytest.approx(overall * 0.5)

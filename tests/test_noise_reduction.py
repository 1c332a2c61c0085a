import numpy as np

from idprep.config import NoiseReductionSettings
from idprep.preprocessing.base import PixelBuffer, ProcessingContext
from idprep.preprocessing.steps.noise_reduction import (
    NoiseReductionStep,
    bilateral_filter,
    gaussian_filter,
    median_filter,
    morphological_closing,
    morphological_opening,
    recommend_noise_method,
)

from conftest import make_rgba


def _flat(value, size=20):
    return make_rgba(np.full((size, size), value, dtype=np.uint8))


def test_median_removes_salt():
    pixels = _flat(100)
    pixels[10, 10, :3] = 255
    res = median_filter(pixels, 3)
    assert np.all(res[..., :3] == 100)


def test_median_leaves_border():
    pixels = _flat(100)
    pixels[0, 0, :3] = 255
    res = median_filter(pixels, 3)
    assert res[0, 0, :3].tolist() == [255, 255, 255]


def test_median_preserves_alpha():
    pixels = _flat(100)
    pixels[..., 3] = 7
    res = median_filter(pixels, 5)
    assert np.all(res[..., 3] == 7)


def test_gaussian_flat_unchanged():
    pixels = _flat(80)
    assert np.array_equal(gaussian_filter(pixels.copy(), 3, 1.0), pixels)
    assert np.array_equal(gaussian_filter(pixels.copy(), 5, 1.0), pixels)


def test_gaussian_zero_strength_is_identity(random_image):
    res = gaussian_filter(random_image.copy(), 3, 0.0)
    assert np.array_equal(res, random_image)


def test_gaussian_smooths_spike():
    pixels = _flat(0)
    pixels[10, 10, :3] = 160
    res = gaussian_filter(pixels, 3, 1.0)
    # centre keeps 4/16 of the spike, edge neighbours 2/16
    assert res[10, 10, 0] == 40
    assert res[10, 11, 0] == 20
    assert res[9, 9, 0] == 10


def test_bilateral_flat_unchanged():
    pixels = _flat(120)
    assert np.array_equal(bilateral_filter(pixels.copy(), 5, 0.7), pixels)


def test_bilateral_zero_strength_is_identity(random_image):
    res = bilateral_filter(random_image.copy(), 5, 0.0)
    assert np.array_equal(res, random_image)


def test_bilateral_preserves_strong_edge():
    gray = np.zeros((20, 20), dtype=np.uint8)
    gray[:, 10:] = 255
    res = bilateral_filter(make_rgba(gray), 5, 0.5)
    assert np.all(res[:, :10, 0] == 0)
    assert np.all(res[:, 10:, 0] == 255)


def test_bilateral_smooths_small_noise():
    rng = np.random.default_rng(7)
    gray = (128 + rng.integers(-5, 6, size=(30, 30))).astype(np.uint8)
    pixels = make_rgba(gray)
    res = bilateral_filter(pixels.copy(), 5, 0.7)
    inner = (slice(2, -2), slice(2, -2), 0)
    assert res[inner].astype(float).std() < pixels[inner].astype(float).std()


def test_opening_removes_bright_speck():
    pixels = _flat(50)
    pixels[8, 8, :3] = 255
    res = morphological_opening(pixels, 3)
    assert np.all(res[..., :3] == 50)


def test_closing_fills_dark_hole():
    pixels = _flat(200)
    pixels[8, 8, :3] = 0
    res = morphological_closing(pixels, 3)
    assert np.all(res[..., :3] == 200)


def test_recommend_method():
    assert recommend_noise_method(_flat(128)) == "gaussian"

    stripes = np.zeros((40, 40), dtype=np.uint8)
    stripes[:, (np.arange(40) // 2) % 2 == 1] = 255
    assert recommend_noise_method(make_rgba(stripes)) == "bilateral"


def test_recommend_method_never_raises():
    assert recommend_noise_method(np.zeros((0, 0, 4), dtype=np.uint8)) == "gaussian"


def test_step_with_morphology():
    pixels = _flat(50)
    pixels[8, 8, :3] = 255
    context = ProcessingContext(PixelBuffer(pixels))
    settings = NoiseReductionSettings(method="gaussian", strength=0.0, morphology="opening")
    result = NoiseReductionStep(settings).process(context)

    assert result.applied
    assert result.metadata["morphology"] == "opening"
    assert np.all(context.data[..., :3] == 50)


def test_step_default_median():
    pixels = _flat(100)
    pixels[5, 5, :3] = 0
    context = ProcessingContext(PixelBuffer(pixels))
    result = NoiseReductionStep(NoiseReductionSettings()).process(context)

    assert result.metadata["method"] == "median"
    assert context.data[5, 5, 0] == 100

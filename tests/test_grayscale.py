import numpy as np

from idprep.config import GrayscaleSettings
from idprep.preprocessing.base import PixelBuffer, PreprocessingOperation, ProcessingContext
from idprep.preprocessing.steps.grayscale import (
    GrayscaleStep,
    convert_to_grayscale,
    is_grayscale,
    recommend_grayscale_method,
)


def _pixel(r, g, b, a=255):
    return np.array([[[r, g, b, a]]], dtype=np.uint8)


def test_luminance_weights():
    res = convert_to_grayscale(_pixel(255, 0, 0))
    # 0.299 * 255 = 76.245
    assert res[0, 0].tolist() == [76, 76, 76, 255]


def test_rounds_half_up():
    res = convert_to_grayscale(_pixel(1, 2, 2), method="average")
    # (1 + 2 + 2) / 3 = 1.67 -> 2
    assert res[0, 0, 0] == 2
    res = convert_to_grayscale(_pixel(1, 2, 0), method="average")
    # 1.0
    assert res[0, 0, 0] == 1
    res = convert_to_grayscale(_pixel(0, 1, 0), method="desaturation")
    # (1 + 0) / 2 = 0.5 -> 1
    assert res[0, 0, 0] == 1


def test_desaturation_uses_min_and_max():
    res = convert_to_grayscale(_pixel(200, 100, 50), method="desaturation")
    assert res[0, 0, 0] == 125


def test_alpha_preserved_by_default():
    res = convert_to_grayscale(_pixel(10, 20, 30, a=42))
    assert res[0, 0, 3] == 42


def test_alpha_forced_opaque():
    res = convert_to_grayscale(_pixel(10, 20, 30, a=42), preserve_alpha=False)
    assert res[0, 0, 3] == 255


def test_conversion_is_idempotent(random_image):
    for method in ("luminance", "average", "desaturation"):
        once = convert_to_grayscale(random_image.copy(), method=method)
        twice = convert_to_grayscale(once.copy(), method=method)
        assert np.array_equal(once, twice)


def test_is_grayscale(random_image):
    assert not is_grayscale(random_image)
    assert is_grayscale(convert_to_grayscale(random_image.copy()))


def test_recommend_method():
    gray = np.full((10, 10, 4), 128, dtype=np.uint8)
    assert recommend_grayscale_method(gray) == "average"

    red = np.zeros((10, 10, 4), dtype=np.uint8)
    red[..., 0] = 255
    assert recommend_grayscale_method(red) == "desaturation"

    mild = np.zeros((10, 10, 4), dtype=np.uint8)
    mild[..., :3] = (120, 100, 100)
    # mean 106.7, squared deviations sum to 266.7
    assert recommend_grayscale_method(mild) == "luminance"


def test_step_converts_context(random_image):
    context = ProcessingContext(PixelBuffer(random_image.copy()))
    result = GrayscaleStep(GrayscaleSettings(method="average")).process(context)

    assert result.applied
    assert result.step_name == PreprocessingOperation.GRAYSCALE
    assert result.metadata["method"] == "average"
    assert np.array_equal(context.data[..., 0], context.data[..., 1])
    assert np.array_equal(context.data[..., 1], context.data[..., 2])


def test_disabled_step_is_skipped(random_image):
    context = ProcessingContext(PixelBuffer(random_image.copy()))
    result = GrayscaleStep(GrayscaleSettings(enabled=False)).process(context)

    assert not result.applied
    assert result.metadata["reason"] == "disabled"
    assert np.array_equal(context.data, random_image)

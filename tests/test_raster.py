import base64
import io

import numpy as np
import pytest
from PIL import Image

from idprep.preprocessing.base import PixelBuffer, ProcessingContext
from idprep.preprocessing.errors import ErrorCode, InvalidInputError
from idprep.preprocessing.raster import EncodedImage, decode_image, encode_image
from idprep.utils.image_validation import (
    ImageFormat,
    ValidationError,
    detect_image_format,
    validate_image_bytes,
)

from conftest import encode_png


def test_png_round_trip_is_exact():
    rng = np.random.default_rng(42)
    pixels = rng.integers(0, 256, size=(12, 16, 4), dtype=np.uint8)
    encoded = encode_image(ProcessingContext(PixelBuffer(pixels.copy())), "png")

    assert encoded.format == "png"
    assert encoded.mime_type == "image/png"
    assert (encoded.width, encoded.height) == (16, 12)
    assert np.array_equal(decode_image(encoded.data).data, pixels)


def test_webp_lossless_round_trip(random_image):
    encoded = encode_image(ProcessingContext(PixelBuffer(random_image.copy())), "webp")

    assert encoded.data[8:12] == b"WEBP"
    assert np.array_equal(decode_image(encoded.data).data, random_image)


def test_jpeg_encoding(random_image):
    encoded = encode_image(ProcessingContext(PixelBuffer(random_image.copy())), "jpeg", quality=0.5)

    assert encoded.data.startswith(b"\xff\xd8\xff")
    assert encoded.mime_type == "image/jpeg"
    decoded = decode_image(encoded.data)
    assert (decoded.width, decoded.height) == (60, 40)


def test_unknown_output_format(random_image):
    with pytest.raises(InvalidInputError):
        encode_image(ProcessingContext(PixelBuffer(random_image)), "gif")


def test_data_url_round_trip(square_image):
    encoded = encode_image(ProcessingContext(PixelBuffer(square_image.copy())))
    url = encoded.to_data_url()

    assert url.startswith("data:image/png;base64,")
    assert np.array_equal(decode_image(url).data, square_image)


def test_bare_base64(png_bytes, square_image):
    context = decode_image(base64.b64encode(png_bytes).decode("ascii"))
    assert np.array_equal(context.data, square_image)


def test_downscale_to_max_dimensions():
    pixels = np.zeros((100, 200, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    context = decode_image(encode_png(pixels), max_dimensions=(100, 100))
    assert (context.width, context.height) == (100, 50)


def test_never_upscales(png_bytes):
    context = decode_image(png_bytes, max_dimensions=(1000, 1000))
    assert (context.width, context.height) == (200, 200)


def test_arrays_and_surfaces_are_copied():
    gray = np.arange(12, dtype=np.uint8).reshape(3, 4)
    context = decode_image(gray)
    assert context.data.shape == (3, 4, 4)
    assert np.array_equal(context.data[..., 0], gray)
    assert np.all(context.data[..., 3] == 255)

    context.data[0, 0, 0] = 99
    assert gray[0, 0] == 0

    surface = Image.new("RGB", (5, 3), (10, 20, 30))
    context = decode_image(surface)
    assert (context.width, context.height) == (5, 3)
    assert context.data[0, 0].tolist() == [10, 20, 30, 255]


def test_pixel_buffer_input_is_copied(random_image):
    buffer = PixelBuffer(random_image.copy())
    context = decode_image(buffer)
    context.data[...] = 0
    assert np.array_equal(buffer.data, random_image)


def test_pixel_buffer_from_flat():
    buffer = PixelBuffer.from_flat(range(24), width=3, height=2)
    assert buffer.data.shape == (2, 3, 4)
    assert buffer.flat.tolist() == list(range(24))

    with pytest.raises(ValueError):
        PixelBuffer.from_flat(range(10), width=3, height=2)


@pytest.mark.parametrize(
    "source",
    [
        b"",
        b"not an image at all",
        b"\x89PNG\r\n\x1a\n" + b"\x00" * 20,
        "data:image/png;base64,!!!",
        np.zeros((4, 4), dtype=np.float32),
        np.zeros((4, 4, 2), dtype=np.uint8),
        np.zeros((0, 4, 4), dtype=np.uint8),
        12345,
    ],
)
def test_invalid_input(source):
    with pytest.raises(InvalidInputError) as exc_info:
        decode_image(source)
    assert exc_info.value.code == ErrorCode.INVALID_INPUT


def test_encoded_image_is_frozen():
    encoded = EncodedImage(data=b"x", format="png", width=1, height=1)
    with pytest.raises(AttributeError):
        encoded.width = 2


def test_detect_image_format(png_bytes):
    assert detect_image_format(png_bytes) == ImageFormat.PNG
    assert detect_image_format(b"\xff\xd8\xff\xe0") == ImageFormat.JPEG
    assert detect_image_format(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == ImageFormat.WEBP
    assert detect_image_format(b"RIFF\x00\x00\x00\x00WAVEfmt ") is None
    assert detect_image_format(b"hello") is None


def test_validate_image_bytes(png_bytes):
    assert validate_image_bytes(png_bytes) == ImageFormat.PNG

    with pytest.raises(ValidationError):
        validate_image_bytes(b"")

    output = io.BytesIO()
    Image.new("RGB", (4, 4)).save(output, format="BMP")
    assert validate_image_bytes(output.getvalue()) == ImageFormat.BMP


def _gray16_gradient():
    return (np.arange(64 * 64, dtype=np.uint16) * 16).reshape(64, 64)


def test_16bit_png_scaled_to_8bit():
    values = _gray16_gradient()
    output = io.BytesIO()
    Image.fromarray(values).save(output, format="PNG")

    context = decode_image(output.getvalue())

    expected = (values >> 8).astype(np.uint8)
    assert np.array_equal(context.data[..., 0], expected)
    assert np.array_equal(context.data[..., 2], expected)
    assert context.data[0, :4, 0].tolist() == [0, 0, 0, 0]
    assert context.data[-1, -1, 0] == 255
    assert np.all(context.data[..., 3] == 255)


def test_16bit_surface_scaled_to_8bit():
    values = _gray16_gradient()
    context = decode_image(Image.fromarray(values))

    assert np.array_equal(context.data[..., 1], (values >> 8).astype(np.uint8))

import io

import cv2
import numpy as np
import pytest
from PIL import Image


def make_rgba(gray: np.ndarray) -> np.ndarray:
    """Opaque RGBA image from a uint8 gray plane."""
    height, width = gray.shape
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = gray[..., None]
    pixels[..., 3] = 255
    return pixels


def rotate_content(gray: np.ndarray, angle: float) -> np.ndarray:
    """Rotate a gray plane counter-clockwise by ``angle`` degrees on white."""
    height, width = gray.shape
    matrix = cv2.getRotationMatrix2D((width / 2.0, height / 2.0), angle, 1.0)
    return cv2.warpAffine(
        gray,
        matrix,
        (width, height),
        flags=cv2.INTER_CUBIC,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=255,
    )


def encode_png(pixels: np.ndarray) -> bytes:
    output = io.BytesIO()
    Image.fromarray(pixels).save(output, format="PNG")
    return output.getvalue()


@pytest.fixture
def white_image():
    return make_rgba(np.full((100, 100), 255, dtype=np.uint8))


@pytest.fixture
def square_gray():
    gray = np.full((200, 200), 255, dtype=np.uint8)
    gray[50:150, 50:150] = 0
    return gray


@pytest.fixture
def square_image(square_gray):
    return make_rgba(square_gray)


@pytest.fixture
def skewed_square_image(square_gray):
    """Black square rotated 7 degrees counter-clockwise."""
    return make_rgba(rotate_content(square_gray, 7.0))


@pytest.fixture
def skewed_lines_image():
    """Text-like horizontal bars rotated 7 degrees counter-clockwise."""
    gray = np.full((300, 300), 255, dtype=np.uint8)
    for top in range(60, 240, 16):
        gray[top:top + 4, 40:260] = 0
    return make_rgba(rotate_content(gray, 7.0))


@pytest.fixture
def striped_document():
    """High-contrast stripes with two mid-range gray levels."""
    gray = np.full((100, 100), 245, dtype=np.uint8)
    for top in range(0, 100, 4):
        gray[top:top + 2] = 10
    return make_rgba(gray)


@pytest.fixture
def random_image():
    rng = np.random.default_rng(1234)
    pixels = rng.integers(0, 256, size=(40, 60, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    return pixels


@pytest.fixture
def png_bytes(square_image):
    return encode_png(square_image)

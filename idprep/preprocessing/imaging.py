"""
Pixel math shared by the analyzer and the preprocessing steps.

All helpers take RGBA ``uint8`` arrays of shape (height, width, 4) or
float luminance planes of shape (height, width).
"""

import numpy as np
import cv2


LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])

# Sobel magnitude above which a pixel counts as an edge
EDGE_THRESHOLD = 30.0

GAUSSIAN_KERNEL_3 = np.array(
    [[1, 2, 1],
     [2, 4, 2],
     [1, 2, 1]],
    dtype=np.float64,
) / 16.0

GAUSSIAN_KERNEL_5 = np.array(
    [[1, 4, 6, 4, 1],
     [4, 16, 24, 16, 4],
     [6, 24, 36, 24, 6],
     [4, 16, 24, 16, 4],
     [1, 4, 6, 4, 1]],
    dtype=np.float64,
) / 256.0

LAPLACIAN_KERNEL = np.array(
    [[0, -1, 0],
     [-1, 4, -1],
     [0, -1, 0]],
    dtype=np.float64,
)


def round_half_up(values: np.ndarray) -> np.ndarray:
    """Round to nearest integer with .5 going up."""
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5)


def to_uint8(values: np.ndarray) -> np.ndarray:
    """Round and clamp float values into the 8-bit range."""
    return np.clip(round_half_up(values), 0, 255).astype(np.uint8)


def luminance(pixels: np.ndarray) -> np.ndarray:
    """Unrounded luminance plane (0.299R + 0.587G + 0.114B)."""
    rgb = pixels[..., :3].astype(np.float64)
    return rgb @ LUMA_WEIGHTS


def rounded_luminance(pixels: np.ndarray) -> np.ndarray:
    """Luminance rounded to integer gray levels."""
    return to_uint8(luminance(pixels))


def luminance_histogram(pixels: np.ndarray) -> np.ndarray:
    """256-bin histogram of rounded luminance."""
    return np.bincount(rounded_luminance(pixels).ravel(), minlength=256)


def luminance_statistics(pixels: np.ndarray) -> tuple[float, float]:
    """Mean and population standard deviation of rounded luminance."""
    gray = rounded_luminance(pixels).astype(np.float64)
    if gray.size == 0:
        return 0.0, 0.0
    return float(gray.mean()), float(gray.std())


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """
    Sobel gradient magnitude.

    Only interior pixels are computed; the one-pixel border is zero.
    """
    height, width = gray.shape
    magnitude = np.zeros((height, width), dtype=np.float64)
    if height < 3 or width < 3:
        return magnitude

    gray = np.ascontiguousarray(gray, dtype=np.float64)
    gx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3)
    magnitude[1:-1, 1:-1] = np.hypot(gx[1:-1, 1:-1], gy[1:-1, 1:-1])
    return magnitude


def edge_map(gray: np.ndarray, threshold: float = EDGE_THRESHOLD) -> np.ndarray:
    """Binary edge map (1 = edge) from thresholded Sobel magnitude."""
    return (sobel_magnitude(gray) > threshold).astype(np.uint8)


def edge_density(gray: np.ndarray, threshold: float = EDGE_THRESHOLD) -> float:
    """Fraction of interior pixels that are edges."""
    height, width = gray.shape
    if height < 3 or width < 3:
        return 0.0
    edges = edge_map(gray, threshold)
    return float(edges[1:-1, 1:-1].mean())


def convolve(plane: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """Correlate a float plane with a kernel, replicating edge pixels."""
    return cv2.filter2D(
        np.ascontiguousarray(plane, dtype=np.float64),
        cv2.CV_64F,
        kernel,
        borderType=cv2.BORDER_REPLICATE,
    )


def local_mean(plane: np.ndarray, size: int) -> np.ndarray:
    """Box mean over a size x size neighborhood, replicating edge pixels."""
    return cv2.blur(
        np.ascontiguousarray(plane, dtype=np.float64),
        (size, size),
        borderType=cv2.BORDER_REPLICATE,
    )


def effective_window(kernel_size: int) -> tuple[int, int]:
    """Return (half, size) for an odd window covering ``kernel_size``."""
    half = max(0, int(kernel_size) // 2)
    return half, 2 * half + 1


def fit_within(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Dimensions that fit in the bounds, preserving aspect ratio. Never upscales."""
    scale = min(max_width / width, max_height / height, 1.0)
    if scale >= 1.0:
        return width, height
    return max(1, int(round_half_up(width * scale))), max(1, int(round_half_up(height * scale)))


def resize_pixels(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize an RGBA array, using area interpolation for downscaling."""
    src_height, src_width = pixels.shape[:2]
    if (width, height) == (src_width, src_height):
        return pixels
    interpolation = cv2.INTER_AREA if width < src_width else cv2.INTER_CUBIC
    return cv2.resize(pixels, (width, height), interpolation=interpolation)

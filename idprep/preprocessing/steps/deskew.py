"""
Deskew/rotation correction step.

Angles are in degrees; a positive angle means the content is rotated
counter-clockwise as displayed. Correction rotates by the negated angle.
"""

import logging
import math

import numpy as np
import cv2

from ..base import PreprocessingStep, PreprocessingOperation, ProcessingContext, StepResult
from ..imaging import edge_map, luminance, resize_pixels, round_half_up, fit_within


logger = logging.getLogger(__name__)

# Skew is estimated on a proxy no larger than this on its long side
DETECTION_MAX_DIMENSION = 800

# Scan lines cover this central fraction of the image
EDGE_SCAN_BAND = 0.8

RECOMMEND_SAMPLE_STRIDE = 4
RECOMMEND_GRADIENT_THRESHOLD = 20.0
HIGH_EDGE_RATIO = 0.3
HIGH_TEXT_RATIO = 0.4
TEXT_GRAY_RANGE = (50.0, 200.0)

WHITE = (255, 255, 255, 255)


def candidate_angles(max_angle: float, precision: float) -> np.ndarray:
    """Angles from -max_angle to +max_angle inclusive, stepping by precision."""
    steps = int(math.floor(2.0 * max_angle / precision + 1e-9))
    return -max_angle + np.arange(steps + 1) * precision


def _detection_gray(pixels: np.ndarray) -> np.ndarray:
    """Luminance of the pixels, downscaled for detection if large."""
    height, width = pixels.shape[:2]
    new_width, new_height = fit_within(width, height, DETECTION_MAX_DIMENSION, DETECTION_MAX_DIMENSION)
    if (new_width, new_height) != (width, height):
        pixels = resize_pixels(pixels, new_width, new_height)
    return luminance(pixels)


def detect_skew_by_projection(gray: np.ndarray, max_angle: float = 15.0, precision: float = 0.5) -> float:
    """
    Detect skew from projection profiles.

    For each candidate angle the inverted intensity is projected onto the
    axis perpendicular to the rotated text lines. Aligned lines produce
    sharp peaks, so the profile with the highest variance wins. The axis
    length is fixed so that the profile mean does not depend on the angle.
    """
    height, width = gray.shape
    ink = 255.0 - gray
    ys, xs = np.nonzero(ink > 0)
    if xs.size == 0:
        return 0.0
    weights = ink[ys, xs]

    offset = int(math.ceil(math.hypot(width, height)))
    length = 2 * offset + 1

    best_angle = 0.0
    best_variance = 0.0
    for angle in candidate_angles(max_angle, precision):
        radians = math.radians(angle)
        bins = round_half_up(xs * math.sin(radians) + ys * math.cos(radians)).astype(np.int64) + offset
        profile = np.bincount(bins, weights=weights, minlength=length)
        variance = float(profile.var())
        if variance > best_variance:
            best_variance = variance
            best_angle = float(angle)

    return best_angle


def _scan_line_score(
    edges: np.ndarray,
    offsets: np.ndarray,
    samples: np.ndarray,
    cos_a: float,
    sin_a: float,
    horizontal: bool,
) -> float:
    """Sum of squared edge-hit ratios over one family of rotated scan lines."""
    height, width = edges.shape
    cx = (width - 1) / 2.0
    cy = (height - 1) / 2.0

    if horizontal:
        # rows: one line per offset along the normal, points along the line
        v, u = np.meshgrid(offsets, samples, indexing="ij")
    else:
        u, v = np.meshgrid(offsets, samples, indexing="ij")

    x = round_half_up(cx + u * cos_a + v * sin_a).astype(np.int64)
    y = round_half_up(cy - u * sin_a + v * cos_a).astype(np.int64)
    inside = (x >= 0) & (x < width) & (y >= 0) & (y < height)

    hits = np.where(inside, edges[np.clip(y, 0, height - 1), np.clip(x, 0, width - 1)], 0)
    counts = inside.sum(axis=1)
    line_hits = hits.sum(axis=1)

    ratios = np.divide(
        line_hits,
        counts,
        out=np.zeros(line_hits.shape, dtype=np.float64),
        where=counts > 0,
    )
    return float((ratios ** 2).sum())


def detect_skew_by_edges(
    edges: np.ndarray,
    max_angle: float = 15.0,
    precision: float = 0.5,
    band: float = EDGE_SCAN_BAND,
) -> float:
    """
    Detect skew by scanning the edge map along rotated lines.

    Horizontal and vertical scan lines through the central ``band`` of the
    image are rotated by each candidate angle. A line lying on an edge
    collects many hits, so each line scores its squared hit ratio; the
    angle with the highest combined score wins.
    """
    height, width = edges.shape
    if not edges.any():
        return 0.0

    reach = math.hypot(width, height) / 2.0
    samples = np.arange(-reach, reach + 1.0)
    row_offsets = np.arange(-band * height / 2.0, band * height / 2.0 + 1.0)
    column_offsets = np.arange(-band * width / 2.0, band * width / 2.0 + 1.0)

    best_angle = 0.0
    best_score = 0.0
    for angle in candidate_angles(max_angle, precision):
        radians = math.radians(angle)
        cos_a, sin_a = math.cos(radians), math.sin(radians)
        score = _scan_line_score(edges, row_offsets, samples, cos_a, sin_a, horizontal=True)
        score += _scan_line_score(edges, column_offsets, samples, cos_a, sin_a, horizontal=False)
        if score > best_score:
            best_score = score
            best_angle = float(angle)

    return best_angle


def detect_skew_by_hough(edges: np.ndarray, max_angle: float = 15.0, precision: float = 0.5) -> float:
    """
    Detect skew with a Hough transform restricted to small angles.

    Every edge pixel votes in an (angle, offset) accumulator for
    near-horizontal lines (offset x*sin + y*cos) and near-vertical lines
    (offset x*cos - y*sin). The angle of the peak bin wins. Thick edges
    make neighboring angles tie on the peak, so ties go to the angle whose
    votes are most concentrated.
    """
    height, width = edges.shape
    ys, xs = np.nonzero(edges)
    if xs.size == 0:
        return 0.0

    x = xs - (width - 1) / 2.0
    y = ys - (height - 1) / 2.0

    angles = candidate_angles(max_angle, precision)
    offset = int(math.ceil(math.hypot(width, height) / 2.0)) + 1
    num_rhos = 2 * offset + 1

    accumulator = np.zeros((2, angles.size, num_rhos), dtype=np.int64)
    for index, angle in enumerate(angles):
        radians = math.radians(angle)
        cos_a, sin_a = math.cos(radians), math.sin(radians)
        horizontal = round_half_up(x * sin_a + y * cos_a).astype(np.int64) + offset
        vertical = round_half_up(x * cos_a - y * sin_a).astype(np.int64) + offset
        accumulator[0, index] = np.bincount(horizontal, minlength=num_rhos)
        accumulator[1, index] = np.bincount(vertical, minlength=num_rhos)

    peaks = accumulator.max(axis=(0, 2))
    energy = (accumulator.astype(np.float64) ** 2).sum(axis=(0, 2))
    best = np.lexsort((-np.abs(angles), energy, peaks))[-1]
    return float(angles[best])


def detect_skew_angle(
    pixels: np.ndarray,
    method: str = "hough",
    max_angle: float = 15.0,
    precision: float = 0.5,
    band: float = EDGE_SCAN_BAND,
) -> float:
    """
    Detect the skew angle of RGBA pixels.

    Args:
        pixels: RGBA uint8 array.
        method: 'hough', 'projection' or 'edge_detection'.
        max_angle: Largest angle searched, in degrees.
        precision: Angle step in degrees.
        band: Central fraction scanned by 'edge_detection'.

    Returns:
        Detected angle in degrees, clamped to +/- max_angle.
    """
    gray = _detection_gray(pixels)

    if method == "projection":
        angle = detect_skew_by_projection(gray, max_angle, precision)
    elif method == "edge_detection":
        angle = detect_skew_by_edges(edge_map(gray), max_angle, precision, band)
    else:
        angle = detect_skew_by_hough(edge_map(gray), max_angle, precision)

    return float(max(-max_angle, min(max_angle, angle)))


def rotate_image(pixels: np.ndarray, angle: float, background=WHITE) -> np.ndarray:
    """
    Rotate pixels to undo a skew of ``angle`` degrees.

    The output is enlarged to the bounding box of the rotated image and
    exposed areas are filled with ``background``.
    """
    height, width = pixels.shape[:2]
    radians = math.radians(angle)
    cos_a = abs(math.cos(radians))
    sin_a = abs(math.sin(radians))

    new_width = int(math.ceil(width * cos_a + height * sin_a))
    new_height = int(math.ceil(width * sin_a + height * cos_a))

    center = (width / 2.0, height / 2.0)
    rotation_matrix = cv2.getRotationMatrix2D(center, -angle, 1.0)
    rotation_matrix[0, 2] += (new_width - width) / 2.0
    rotation_matrix[1, 2] += (new_height - height) / 2.0

    return cv2.warpAffine(
        pixels,
        rotation_matrix,
        (new_width, new_height),
        flags=cv2.INTER_CUBIC,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=background,
    )


def needs_rotation_correction(pixels: np.ndarray, threshold: float = 1.0) -> bool:
    """Check whether the detected skew exceeds ``threshold`` degrees."""
    try:
        angle = detect_skew_angle(pixels, method="edge_detection")
    except Exception as e:
        logger.debug(f"Rotation check failed: {e}")
        return False
    return abs(angle) > threshold


def recommend_rotation_method(pixels: np.ndarray) -> str:
    """
    Pick a skew detection method from sampled image characteristics.

    Edge-heavy images get 'hough', text-heavy ones 'projection', the
    rest 'edge_detection'.
    """
    try:
        gray = luminance(pixels)
        height, width = gray.shape
        step = RECOMMEND_SAMPLE_STRIDE
        sampled = gray[::step, ::step]
        if sampled.size == 0:
            return "edge_detection"

        # gradients to the pixels `step` away, where both exist
        inner = gray[: max(0, height - step):step, : max(0, width - step):step]
        right = gray[: max(0, height - step):step, step::step][:, : inner.shape[1]]
        below = gray[step::step, : max(0, width - step):step][: inner.shape[0]]
        gradient = np.abs(right - inner) + np.abs(below - inner)

        edge_ratio = float((gradient > RECOMMEND_GRADIENT_THRESHOLD).sum()) / sampled.size
        low, high = TEXT_GRAY_RANGE
        text_ratio = float(((sampled > low) & (sampled < high)).sum()) / sampled.size
    except Exception as e:
        logger.debug(f"Rotation method recommendation failed: {e}")
        return "edge_detection"

    if edge_ratio > HIGH_EDGE_RATIO:
        return "hough"
    if text_ratio > HIGH_TEXT_RATIO:
        return "projection"
    return "edge_detection"


class DeskewStep(PreprocessingStep):
    """
    Corrects image skew/rotation.

    Detects the skew angle with the configured method and rotates the
    image back when the angle exceeds the configured precision.
    """

    @property
    def name(self) -> PreprocessingOperation:
        return PreprocessingOperation.ROTATION_CORRECTION

    def detect(self, context: ProcessingContext) -> float:
        return detect_skew_angle(
            context.data,
            method=self.settings.method,
            max_angle=self.settings.max_angle,
            precision=self.settings.precision,
        )

    def apply(self, context: ProcessingContext) -> StepResult:
        """Detect skew and rotate the context's pixels if needed."""
        angle = self.detect(context)

        if abs(angle) <= self.settings.precision:
            logger.debug(f"Skew {angle:.2f} deg within precision, not rotating")
            return self._result(applied=False, angle=angle, reason="within_precision")

        context.replace(rotate_image(context.data, angle))
        logger.debug(f"Rotated by {-angle:.2f} deg to {context.width}x{context.height}")
        return self._result(angle=angle, method=self.settings.method)


def estimate_skew(pixels: np.ndarray, max_angle: float = 15.0) -> float:
    """Quick skew estimate over the central 60% of the image."""
    return detect_skew_angle(
        pixels,
        method="edge_detection",
        max_angle=max_angle,
        precision=0.5,
        band=0.6,
    )

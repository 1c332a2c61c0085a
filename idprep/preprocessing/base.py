"""
Base classes for image preprocessing.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum

import numpy as np
from PIL import Image

from .errors import ProcessingFailedError, PreprocessingError, BufferAllocationError


class PreprocessingOperation(str, Enum):
    """Operations the pipeline can apply or recommend."""

    GRAYSCALE = "grayscale"
    ROTATION_CORRECTION = "rotation_correction"
    NOISE_REDUCTION = "noise_reduction"
    CONTRAST_ENHANCEMENT = "contrast_enhancement"
    BRIGHTNESS_ADJUSTMENT = "brightness_adjustment"
    SHARPENING = "sharpening"
    HISTOGRAM_EQUALIZATION = "histogram_equalization"


@dataclass
class PixelBuffer:
    """RGBA 8-bit pixels stored row-major as a (height, width, 4) array."""

    data: np.ndarray

    def __post_init__(self):
        if self.data.dtype != np.uint8:
            raise ValueError(f"Pixel data must be uint8, got {self.data.dtype}")
        if self.data.ndim != 3 or self.data.shape[2] != 4:
            raise ValueError(f"Pixel data must have shape (height, width, 4), got {self.data.shape}")

    @classmethod
    def from_flat(cls, values, width: int, height: int) -> "PixelBuffer":
        """Build a buffer from a flat RGBA sequence of length width*height*4."""
        flat = np.asarray(values, dtype=np.uint8).reshape(-1)
        expected = width * height * 4
        if flat.size != expected:
            raise ValueError(f"Expected {expected} samples for {width}x{height}, got {flat.size}")
        return cls(flat.reshape(height, width, 4).copy())

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def flat(self) -> np.ndarray:
        """Flat RGBA view of length width*height*4."""
        return self.data.reshape(-1)

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.data.copy())


@dataclass
class ProcessingContext:
    """
    Pixel buffer owned by one pipeline run.

    Steps mutate ``buffer`` in place or swap it through ``replace``.
    """

    buffer: PixelBuffer

    @property
    def data(self) -> np.ndarray:
        return self.buffer.data

    @property
    def width(self) -> int:
        return self.buffer.width

    @property
    def height(self) -> int:
        return self.buffer.height

    def replace(self, data: np.ndarray) -> None:
        """Swap in a new RGBA array. Dimensions may change."""
        self.buffer = PixelBuffer(np.ascontiguousarray(data, dtype=np.uint8))

    def to_surface(self) -> Image.Image:
        """Render the buffer into a Pillow image."""
        # (h, w, 4) uint8 arrays map to RGBA
        return Image.fromarray(np.ascontiguousarray(self.data))


@dataclass(frozen=True)
class QualityMetrics:
    """Image quality scores, each in [0, 1]."""

    sharpness: float
    """Laplacian response energy, normalized."""

    contrast: float
    """Luminance standard deviation, normalized."""

    brightness: float
    """Mean luminance, normalized."""

    noise: float
    """Deviation from local 5x5 means, normalized (higher = noisier)."""

    text_readability: float
    """Histogram bimodality blended with edge density."""

    overall: float
    """Weighted combination of the other scores."""

    @classmethod
    def zero(cls) -> "QualityMetrics":
        return cls(
            sharpness=0.0,
            contrast=0.0,
            brightness=0.0,
            noise=0.0,
            text_readability=0.0,
            overall=0.0,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ImageAnalysis:
    """Analysis results for preprocessing decisions."""

    width: int
    """Image width in pixels."""

    height: int
    """Image height in pixels."""

    quality_metrics: QualityMetrics
    """Quality scores for the analysed buffer."""

    is_document_image: bool
    """Whether the image looks like a document photograph."""

    detected_rotation: float
    """Estimated skew angle in degrees."""

    recommended_operations: tuple[PreprocessingOperation, ...]
    """Operations worth enabling for this image."""

    suitability_score: float
    """Suitability for OCR (0.0 to 1.0)."""

    def to_dict(self) -> dict:
        return {
            "dimensions": {"width": self.width, "height": self.height},
            "quality_metrics": self.quality_metrics.to_dict(),
            "is_document_image": self.is_document_image,
            "detected_rotation": self.detected_rotation,
            "recommended_operations": [op.value for op in self.recommended_operations],
            "suitability_score": self.suitability_score,
        }


@dataclass
class StepResult:
    """Result of applying a preprocessing step."""

    step_name: PreprocessingOperation
    """Name of the step."""

    applied: bool
    """Whether the step changed the image."""

    metadata: dict = field(default_factory=dict)
    """Additional information about the processing."""


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification sent to the pipeline's callback."""

    stage: str
    operation: str
    progress: float
    message: str


class PreprocessingStep(ABC):
    """
    Abstract base class for preprocessing steps.

    Each step is configured with one settings section and mutates the
    processing context in place.
    """

    def __init__(self, settings):
        """Initialize the step with its settings section."""
        self.settings = settings

    @property
    @abstractmethod
    def name(self) -> PreprocessingOperation:
        """Operation implemented by this step."""
        pass

    @property
    def enabled(self) -> bool:
        return bool(self.settings.enabled)

    @abstractmethod
    def apply(self, context: ProcessingContext) -> StepResult:
        """
        Apply the preprocessing step.

        Args:
            context: Processing context, modified in place.

        Returns:
            StepResult describing what was done.
        """
        pass

    def process(self, context: ProcessingContext) -> StepResult:
        """
        Apply the step if enabled.

        Args:
            context: Processing context.

        Returns:
            StepResult with metadata.

        Raises:
            PreprocessingError: If the step fails.
        """
        if not self.enabled:
            return StepResult(step_name=self.name, applied=False, metadata={"reason": "disabled"})

        try:
            return self.apply(context)
        except PreprocessingError:
            raise
        except MemoryError as e:
            raise BufferAllocationError(
                f"Out of memory during {self.name.value}",
                operation=self.name.value,
            ) from e
        except Exception as e:
            raise ProcessingFailedError(
                f"{self.name.value} failed: {e}",
                operation=self.name.value,
                details=type(e).__name__,
            ) from e

    def _result(self, applied: bool = True, **metadata) -> StepResult:
        return StepResult(step_name=self.name, applied=applied, metadata=metadata)

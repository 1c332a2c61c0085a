"""
Image preprocessing module for identity-document OCR.

Provides a fixed-order preprocessing pipeline with quality analysis
before and after processing.
"""

from .base import (
    PreprocessingStep,
    PreprocessingOperation,
    PixelBuffer,
    ProcessingContext,
    QualityMetrics,
    ImageAnalysis,
    ProgressEvent,
)
from .errors import (
    ErrorCode,
    PreprocessingError,
    InvalidInputError,
    ProcessingFailedError,
    SurfaceError,
    BufferAllocationError,
    PreprocessingTimeoutError,
)
from .analyzer import ImageQualityAnalyzer
from .raster import EncodedImage, decode_image, encode_image
from .pipeline import (
    PipelineResult,
    PreprocessingPipeline,
    create_pipeline,
    preprocess_image,
    preprocess_identity_document,
)

__all__ = [
    "PreprocessingStep",
    "PreprocessingOperation",
    "PixelBuffer",
    "ProcessingContext",
    "QualityMetrics",
    "ImageAnalysis",
    "ProgressEvent",
    "ErrorCode",
    "PreprocessingError",
    "InvalidInputError",
    "ProcessingFailedError",
    "SurfaceError",
    "BufferAllocationError",
    "PreprocessingTimeoutError",
    "ImageQualityAnalyzer",
    "EncodedImage",
    "decode_image",
    "encode_image",
    "PipelineResult",
    "PreprocessingPipeline",
    "create_pipeline",
    "preprocess_image",
    "preprocess_identity_document",
]

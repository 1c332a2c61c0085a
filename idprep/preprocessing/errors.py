"""
Error types raised by the preprocessing package.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Machine-readable preprocessing error kinds."""

    INVALID_INPUT = "INVALID_INPUT"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    SURFACE_ERROR = "SURFACE_ERROR"
    MEMORY_ERROR = "MEMORY_ERROR"
    TIMEOUT = "TIMEOUT"


class PreprocessingError(Exception):
    """Base class for preprocessing failures."""

    code: ErrorCode = ErrorCode.PROCESSING_FAILED

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.details = details


class InvalidInputError(PreprocessingError):
    """Raised when the input image is unreadable or of an unsupported type."""

    code = ErrorCode.INVALID_INPUT


class ProcessingFailedError(PreprocessingError):
    """Raised when a preprocessing step fails."""

    code = ErrorCode.PROCESSING_FAILED


class SurfaceError(PreprocessingError):
    """Raised when a drawable surface cannot be created or read."""

    code = ErrorCode.SURFACE_ERROR


class BufferAllocationError(PreprocessingError):
    """Raised when a pixel buffer cannot be allocated."""

    code = ErrorCode.MEMORY_ERROR


class PreprocessingTimeoutError(PreprocessingError):
    """Reserved for caller-imposed time limits. Never raised by the pipeline."""

    code = ErrorCode.TIMEOUT

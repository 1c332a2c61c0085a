"""
Preprocessing pipeline orchestrator.

Decodes the input, chains the enabled steps in a fixed order, re-measures
quality and encodes the result. A run never raises; failures are reported
in the returned PipelineResult.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from idprep.config import (
    IDENTITY_DOCUMENT_PREPROCESSING_CONFIG,
    PreprocessingConfig,
    get_preset,
    settings,
)

from .analyzer import ImageQualityAnalyzer
from .base import (
    ImageAnalysis,
    PreprocessingOperation,
    PreprocessingStep,
    ProgressEvent,
    QualityMetrics,
    StepResult,
)
from .errors import BufferAllocationError, PreprocessingError, ProcessingFailedError
from .raster import EncodedImage, ImageInput, decode_image, encode_image
from .steps import (
    GrayscaleStep,
    DeskewStep,
    NoiseReductionStep,
    ContrastStep,
    BrightnessStep,
    SharpeningStep,
)


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]
ErrorCallback = Callable[[PreprocessingError], None]

# Steps share this progress range
STEPS_PROGRESS_START = 20.0
STEPS_PROGRESS_END = 90.0


@dataclass(frozen=True)
class PipelineResult:
    """Result of running the preprocessing pipeline."""

    processed_image: Union[EncodedImage, ImageInput]
    """Encoded output, or the original input when the run failed."""

    original_image: ImageInput
    """Input as given by the caller."""

    operations: tuple[PreprocessingOperation, ...]
    """Operations that changed the image, in order."""

    quality_metrics: QualityMetrics
    """Quality of the output image (all zero on failure)."""

    processing_time_ms: float
    """Wall-clock duration of the run."""

    config: PreprocessingConfig
    """Configuration used for the run."""

    success: bool
    """Whether the run completed."""

    errors: Optional[tuple[str, ...]] = None
    """Error messages for a failed run."""

    rotation_angle: Optional[float] = None
    """Detected skew angle when rotation was applied."""

    analysis: Optional[ImageAnalysis] = None
    """Analysis of the input, when input analysis is enabled."""

    step_results: tuple[StepResult, ...] = ()
    """Detailed results for each enabled step."""

    @property
    def was_modified(self) -> bool:
        """Whether the image was modified by any step."""
        return len(self.operations) > 0


class PreprocessingPipeline:
    """
    Orchestrates preprocessing steps for OCR optimization.

    Step order:
    1. Grayscale conversion
    2. Rotation correction
    3. Noise reduction
    4. Contrast enhancement
    5. Brightness adjustment
    6. Sharpening

    The pipeline holds only its configuration and callbacks; each run
    decodes into its own buffer, so one instance can serve many runs.
    """

    def __init__(
        self,
        config: Optional[PreprocessingConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        analyze_input: Optional[bool] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Preprocessing configuration. Defaults to the preset
                selected in settings.
            on_progress: Called synchronously with each ProgressEvent.
            on_error: Called with the error when a run fails.
            analyze_input: Analyse the input before processing. Defaults
                to ``settings.analyze_input``.
        """
        self.config = config or settings.get_default_config()
        self.on_progress = on_progress
        self.on_error = on_error
        self.analyze_input = settings.analyze_input if analyze_input is None else analyze_input
        self.analyzer = ImageQualityAnalyzer()
        self._steps = self._create_steps()

    def _create_steps(self) -> tuple[PreprocessingStep, ...]:
        """Create the preprocessing steps in execution order."""
        return (
            GrayscaleStep(self.config.grayscale),
            DeskewStep(self.config.rotation_correction),
            NoiseReductionStep(self.config.noise_reduction),
            ContrastStep(self.config.contrast),
            BrightnessStep(self.config.brightness),
            SharpeningStep(self.config.sharpening),
        )

    @property
    def steps(self) -> tuple[PreprocessingStep, ...]:
        """Get the preprocessing steps."""
        return self._steps

    def run(
        self,
        image: ImageInput,
        max_dimensions: Optional[tuple[int, int]] = None,
        output_format: Optional[str] = None,
        output_quality: Optional[float] = None,
    ) -> PipelineResult:
        """
        Process an image through the preprocessing pipeline.

        Args:
            image: Encoded bytes, base64 string or data URL, PixelBuffer,
                numpy array, or Pillow image.
            max_dimensions: Optional (width, height) bounds for encoded input.
                Defaults to ``settings.max_dimensions``.
            output_format: 'png', 'webp' or 'jpeg'. Defaults to settings.
            output_quality: Lossy quality 0-1. Defaults to settings.

        Returns:
            PipelineResult. Never raises.
        """
        start = time.perf_counter()
        try:
            return self._run(
                image,
                start,
                max_dimensions or settings.max_dimensions,
                output_format or settings.output_format,
                settings.output_quality if output_quality is None else output_quality,
            )
        except Exception as e:
            if isinstance(e, PreprocessingError):
                error = e
            elif isinstance(e, MemoryError):
                error = BufferAllocationError(
                    "Not enough memory to process the image",
                    details=type(e).__name__,
                )
            else:
                error = ProcessingFailedError(str(e), details=type(e).__name__)

            logger.error(f"Preprocessing failed: {error.code.value}: {error.message}")
            self._notify_error(error)

            return PipelineResult(
                processed_image=image,
                original_image=image,
                operations=(),
                quality_metrics=QualityMetrics.zero(),
                processing_time_ms=_elapsed_ms(start),
                config=self.config,
                success=False,
                errors=(error.message,),
            )

    def _run(
        self,
        image: ImageInput,
        start: float,
        max_dimensions: Optional[tuple[int, int]],
        output_format: str,
        output_quality: float,
    ) -> PipelineResult:
        self._report("initialization", "decode", 0, "Starting preprocessing")
        context = decode_image(image, max_dimensions)

        analysis = None
        if self.analyze_input:
            self._report("analysis", "analyze", 10, "Analyzing image quality")
            analysis = self.analyzer.analyze(context)

        enabled_steps = [step for step in self._steps if step.enabled]
        span = (STEPS_PROGRESS_END - STEPS_PROGRESS_START) / max(1, len(enabled_steps))

        operations = []
        step_results = []
        rotation_angle = None

        for index, step in enumerate(enabled_steps):
            operation = step.name.value
            self._report("processing", operation, STEPS_PROGRESS_START + index * span, f"Applying {operation}")

            result = step.process(context)
            step_results.append(result)
            if result.applied:
                operations.append(step.name)
                if step.name is PreprocessingOperation.ROTATION_CORRECTION:
                    rotation_angle = result.metadata.get("angle")

            self._report(
                "processing",
                operation,
                STEPS_PROGRESS_START + (index + 1) * span,
                f"Finished {operation}",
            )

        self._report("finalization", "measure", 90, "Measuring output quality")
        metrics = self.analyzer.measure(context.data)

        self._report("output", "encode", 95, f"Encoding {output_format}")
        encoded = encode_image(context, output_format, output_quality)

        elapsed = _elapsed_ms(start)
        self._report("complete", "done", 100, "Preprocessing complete")
        logger.info(
            f"Preprocessed {encoded.width}x{encoded.height} in {elapsed:.0f}ms: "
            f"{[op.value for op in operations]}, overall={metrics.overall:.3f}"
        )

        return PipelineResult(
            processed_image=encoded,
            original_image=image,
            operations=tuple(operations),
            quality_metrics=metrics,
            processing_time_ms=elapsed,
            config=self.config,
            success=True,
            rotation_angle=rotation_angle,
            analysis=analysis,
            step_results=tuple(step_results),
        )

    def analyze(
        self,
        image: ImageInput,
        max_dimensions: Optional[tuple[int, int]] = None,
    ) -> ImageAnalysis:
        """
        Analyse an image without processing it.

        Raises:
            PreprocessingError: If the input cannot be decoded.
        """
        return self.analyzer.analyze(decode_image(image, max_dimensions or settings.max_dimensions))

    def _report(self, stage: str, operation: str, progress: float, message: str) -> None:
        if self.on_progress is not None:
            self.on_progress(ProgressEvent(stage=stage, operation=operation, progress=progress, message=message))

    def _notify_error(self, error: PreprocessingError) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception as e:
            logger.warning(f"Error callback failed: {e}")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def create_pipeline(
    preset: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_error: Optional[ErrorCallback] = None,
    analyze_input: Optional[bool] = None,
) -> PreprocessingPipeline:
    """
    Factory function to create a pipeline from a named preset.

    Args:
        preset: 'default' or 'identity-document'. Defaults to
            ``settings.default_preset``.
        on_progress: Progress callback.
        on_error: Error callback.
        analyze_input: Whether to analyse the input first.

    Returns:
        Configured PreprocessingPipeline.
    """
    config = get_preset(preset or settings.default_preset)
    return PreprocessingPipeline(
        config,
        on_progress=on_progress,
        on_error=on_error,
        analyze_input=analyze_input,
    )


def preprocess_image(
    image: ImageInput,
    config: Optional[PreprocessingConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    max_dimensions: Optional[tuple[int, int]] = None,
    output_format: Optional[str] = None,
    output_quality: Optional[float] = None,
) -> PipelineResult:
    """Run a one-off pipeline over ``image``."""
    pipeline = PreprocessingPipeline(config, on_progress=on_progress)
    return pipeline.run(
        image,
        max_dimensions=max_dimensions,
        output_format=output_format,
        output_quality=output_quality,
    )


def preprocess_identity_document(
    image: ImageInput,
    on_progress: Optional[ProgressCallback] = None,
    max_dimensions: Optional[tuple[int, int]] = None,
    output_format: Optional[str] = None,
    output_quality: Optional[float] = None,
) -> PipelineResult:
    """Run the identity-document preset over ``image``."""
    return preprocess_image(
        image,
        config=IDENTITY_DOCUMENT_PREPROCESSING_CONFIG,
        on_progress=on_progress,
        max_dimensions=max_dimensions,
        output_format=output_format,
        output_quality=output_quality,
    )

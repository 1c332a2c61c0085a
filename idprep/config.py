import logging
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GrayscaleSettings(BaseModel):
    """Configuration for grayscale conversion."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether grayscale conversion is enabled")
    method: Literal["luminance", "average", "desaturation"] = Field(
        default="luminance", description="Gray value formula"
    )
    preserve_alpha: bool = Field(default=True, description="Keep alpha; otherwise force it opaque")


class ContrastSettings(BaseModel):
    """Configuration for contrast enhancement."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether contrast enhancement is enabled")
    factor: float = Field(default=1.2, ge=0.0, le=5.0, description="Linear contrast factor (1.0 = identity)")
    adaptive: bool = Field(default=False, description="Use tiled contrast-limited histogram equalization")
    clip_limit: float = Field(default=2.0, gt=0, le=64.0, description="Histogram clip limit for adaptive mode")


class NoiseReductionSettings(BaseModel):
    """Configuration for noise reduction."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether noise reduction is enabled")
    method: Literal["median", "gaussian", "bilateral"] = Field(default="median", description="Filter to apply")
    kernel_size: int = Field(default=3, ge=1, le=15, description="Neighborhood size in pixels")
    strength: float = Field(default=0.5, ge=0.0, le=1.0, description="Blend (gaussian) or range sigma (bilateral)")
    morphology: Literal["none", "opening", "closing"] = Field(
        default="none", description="Morphological operation applied after the filter"
    )


class RotationCorrectionSettings(BaseModel):
    """Configuration for skew detection and rotation correction."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether rotation correction is enabled")
    max_angle: float = Field(default=15.0, gt=0, le=45.0, description="Largest skew searched, in degrees")
    method: Literal["hough", "projection", "edge_detection"] = Field(
        default="hough", description="Skew detection algorithm"
    )
    precision: float = Field(default=0.5, gt=0, le=5.0, description="Angle step; smaller angles are ignored")


class BrightnessSettings(BaseModel):
    """Configuration for brightness adjustment."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Whether brightness adjustment is enabled")
    adjustment: float = Field(default=0.0, ge=-255.0, le=255.0, description="Fixed offset added to RGB")
    auto_adjust: bool = Field(default=True, description="Derive the offset from mean luminance")
    gamma: float = Field(default=1.0, gt=0, le=5.0, description="Gamma applied after the offset (1.0 = none)")


class SharpeningSettings(BaseModel):
    """Configuration for sharpening."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Whether sharpening is enabled")
    method: Literal["unsharp_mask", "laplacian"] = Field(default="unsharp_mask", description="Sharpening method")
    strength: float = Field(default=0.5, ge=0.0, le=5.0, description="Amount of detail added back")
    radius: int = Field(default=1, ge=1, le=10, description="Blur radius for the unsharp mask")


class PreprocessingConfig(BaseModel):
    """Configuration for a single preprocessing run."""

    model_config = ConfigDict(frozen=True)

    grayscale: GrayscaleSettings = GrayscaleSettings()
    contrast: ContrastSettings = ContrastSettings()
    noise_reduction: NoiseReductionSettings = NoiseReductionSettings()
    rotation_correction: RotationCorrectionSettings = RotationCorrectionSettings()
    brightness: BrightnessSettings = BrightnessSettings()
    sharpening: SharpeningSettings = SharpeningSettings()


DEFAULT_PREPROCESSING_CONFIG = PreprocessingConfig()

IDENTITY_DOCUMENT_PREPROCESSING_CONFIG = PreprocessingConfig(
    contrast=ContrastSettings(factor=1.3, adaptive=True, clip_limit=2.5),
    brightness=BrightnessSettings(enabled=True),
    noise_reduction=NoiseReductionSettings(method="bilateral", kernel_size=5, strength=0.7),
    rotation_correction=RotationCorrectionSettings(max_angle=10.0, precision=0.25),
    sharpening=SharpeningSettings(enabled=True, strength=0.3),
)

PRESETS: dict[str, PreprocessingConfig] = {
    "default": DEFAULT_PREPROCESSING_CONFIG,
    "identity-document": IDENTITY_DOCUMENT_PREPROCESSING_CONFIG,
}


def get_preset(name: str) -> PreprocessingConfig:
    """Get a named configuration preset."""
    try:
        return PRESETS[name]
    except KeyError:
        raise KeyError(f"Unknown preset '{name}', expected one of: {', '.join(PRESETS)}") from None


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="IDPREP_", env_file=".env", env_file_encoding="utf-8")

    debug: bool = False
    log_level: str = "INFO"

    # Pipeline defaults
    default_preset: str = "default"
    analyze_input: bool = True

    # Output
    output_format: Literal["png", "webp", "jpeg"] = "png"
    output_quality: float = Field(default=0.9, ge=0.0, le=1.0)

    # Optional downscaling of encoded input
    max_width: Optional[int] = Field(default=None, gt=0)
    max_height: Optional[int] = Field(default=None, gt=0)

    @property
    def max_dimensions(self) -> Optional[tuple[int, int]]:
        if self.max_width is None or self.max_height is None:
            return None
        return (self.max_width, self.max_height)

    def get_default_config(self) -> PreprocessingConfig:
        """Get the preset selected by ``default_preset``."""
        logger = logging.getLogger(__name__)
        logger.debug(f"[Config] Using preset: {self.default_preset}")
        return get_preset(self.default_preset)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for command-line use."""
    if level is None:
        level = "DEBUG" if settings.debug else settings.log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


settings = Settings()

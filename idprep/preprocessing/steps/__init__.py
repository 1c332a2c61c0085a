"""
Individual preprocessing steps.
"""

from .grayscale import GrayscaleStep
from .deskew import DeskewStep
from .noise_reduction import NoiseReductionStep
from .contrast import ContrastStep
from .brightness import BrightnessStep
from .sharpening import SharpeningStep

__all__ = [
    "GrayscaleStep",
    "DeskewStep",
    "NoiseReductionStep",
    "ContrastStep",
    "BrightnessStep",
    "SharpeningStep",
]

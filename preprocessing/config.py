"""
Options and results for the preprocessing pipeline.

All stages are parameterized through ProcessingOptions so that identical
inputs and options always produce identical outputs. Options are created
once per call or batch and never mutated afterwards, which makes them safe
to share between worker threads.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from config import (
    MAX_IMAGE_SIZE,
    DEFAULT_CONTRAST_FACTOR,
    MIN_CONTRAST_FACTOR,
    MAX_CONTRAST_FACTOR,
)
from .buffer import PixelBuffer
from .errors import InvalidOptions

# Operation names recorded in ProcessingResult.operations_applied
OP_RESIZE = "resize"
OP_NOISE_REDUCTION = "noise_reduction"
OP_CONTRAST_ENHANCEMENT = "contrast_enhancement"


@dataclass(frozen=True)
class ProcessingOptions:
    """Configuration for a single pipeline run or a whole batch.

    Attributes:
        enhance_contrast: Stretch intensities around the midpoint.
        contrast_factor: Stretch factor, 0.1 to 10.0. 1.0 leaves samples unchanged.
        reduce_noise: Run the 3x3 median filter.
        resize_if_large: Downsample when either side exceeds max_dimension.
        max_dimension: Longest side allowed after resizing.
        high_quality_resize: Halve in steps for large downscale ratios
            instead of a single bilinear pass.
    """

    enhance_contrast: bool = True
    contrast_factor: float = DEFAULT_CONTRAST_FACTOR
    reduce_noise: bool = True
    resize_if_large: bool = True
    max_dimension: int = MAX_IMAGE_SIZE
    high_quality_resize: bool = True

    def validate(self) -> None:
        """Validate option values.

        Raises:
            InvalidOptions: If any parameter is out of range.
        """
        if isinstance(self.max_dimension, bool) or not isinstance(self.max_dimension, int):
            raise InvalidOptions(
                f"max_dimension must be int, got {type(self.max_dimension).__name__}"
            )
        if self.max_dimension <= 0:
            raise InvalidOptions(f"max_dimension must be positive, got {self.max_dimension}")

        factor = self.contrast_factor
        if math.isnan(factor):
            raise InvalidOptions("contrast_factor cannot be NaN")
        if math.isinf(factor):
            raise InvalidOptions("contrast_factor cannot be infinite")
        if not MIN_CONTRAST_FACTOR <= factor <= MAX_CONTRAST_FACTOR:
            raise InvalidOptions(
                f"contrast_factor must be between {MIN_CONTRAST_FACTOR} and "
                f"{MAX_CONTRAST_FACTOR}, got {factor}"
            )

    def cache_key(self) -> str:
        """Stable string identifying this option set."""
        return (
            f"{self.enhance_contrast}_{self.contrast_factor}_{self.reduce_noise}_"
            f"{self.resize_if_large}_{self.max_dimension}_{self.high_quality_resize}"
        )

    def needs_resize(self, width: int, height: int) -> bool:
        """Whether an image of this size would be downsampled."""
        return self.resize_if_large and (
            width > self.max_dimension or height > self.max_dimension
        )


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of running the pipeline on one buffer.

    Attributes:
        buffer: The processed buffer handed to the barcode decoder.
        original_size: (width, height) of the input buffer.
        processed_size: (width, height) of the output buffer.
        elapsed_ms: Wall time of the whole pipeline run.
        memory_delta_bytes: Approximate change in process RSS during the run.
            Concurrent runs share a process, so this is indicative only.
        operations_applied: Names of the stages that ran, in execution order.
    """

    buffer: PixelBuffer
    original_size: tuple[int, int]
    processed_size: tuple[int, int]
    elapsed_ms: float
    memory_delta_bytes: int
    operations_applied: tuple[str, ...]

    @property
    def was_resized(self) -> bool:
        return OP_RESIZE in self.operations_applied

    @property
    def scale_factor(self) -> float:
        """Ratio of original width to processed width.

        Used to map decoder coordinates back to the original image.
        """
        return self.original_size[0] / self.processed_size[0]

    def map_to_original_coords(self, x: float, y: float) -> tuple[float, float]:
        """Map a point from processed coordinates back to the original image."""
        sx = self.original_size[0] / self.processed_size[0]
        sy = self.original_size[1] / self.processed_size[1]
        return (x * sx, y * sy)

    def to_dict(self) -> dict[str, Any]:
        """Summary without pixel data, suitable for logs and reports."""
        return {
            "original_size": list(self.original_size),
            "processed_size": list(self.processed_size),
            "color_model": self.buffer.color_model.value,
            "elapsed_ms": round(self.elapsed_ms, 3),
            "memory_delta_bytes": self.memory_delta_bytes,
            "operations_applied": list(self.operations_applied),
        }

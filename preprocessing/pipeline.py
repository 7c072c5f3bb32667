"""
Preprocessing pipeline that conditions one buffer for barcode detection.

This module provides two APIs:
1. process() - Function API that builds and runs the standard pipeline
2. Pipeline class - Class-based API for composable step sequences

The process() function internally uses the Pipeline class.

Pipeline order is fixed: Resize (if large) -> Noise reduction -> Contrast.
Resizing first bounds the cost of the two per-pixel passes that follow.
"""

from .buffer import PixelBuffer
from .config import ProcessingOptions, ProcessingResult
from .steps import (
    Pipeline,
    PreprocessStep,
    ResizeStep,
    NoiseReductionStep,
    ContrastStep,
)


def _validate_input(buffer: PixelBuffer) -> None:
    """Validate the pipeline input.

    Raises:
        TypeError: If buffer is not a PixelBuffer.
    """
    if not isinstance(buffer, PixelBuffer):
        raise TypeError(f"Expected PixelBuffer, got {type(buffer).__name__}")


def build_pipeline(options: ProcessingOptions) -> Pipeline:
    """Build a Pipeline from ProcessingOptions.

    Creates the standard pipeline:
    1. ResizeStep - Downsample when larger than max_dimension (if enabled)
    2. NoiseReductionStep - 3x3 median filter (if enabled)
    3. ContrastStep - Linear contrast stretch (if enabled)

    Args:
        options: Processing options.

    Returns:
        Pipeline configured according to the options.
    """
    steps: list[PreprocessStep] = []

    if options.resize_if_large:
        steps.append(
            ResizeStep(
                max_dimension=options.max_dimension,
                high_quality=options.high_quality_resize,
            )
        )

    if options.reduce_noise:
        steps.append(NoiseReductionStep())

    if options.enhance_contrast:
        steps.append(ContrastStep(factor=options.contrast_factor))

    return Pipeline(steps=steps)


def process(
    buffer: PixelBuffer,
    options: ProcessingOptions | None = None,
) -> ProcessingResult:
    """Apply the full preprocessing pipeline to a buffer.

    The input buffer is never modified; every stage that runs allocates a
    new output buffer.

    Args:
        buffer: Decoded image to condition.
        options: Processing options. If None, uses default settings.

    Returns:
        ProcessingResult with the processed buffer and run metrics.

    Raises:
        InvalidOptions: If the options are invalid.
        TypeError: If buffer is not a PixelBuffer.
        PreprocessingError: If any stage fails.

    Examples:
        >>> import numpy as np
        >>> img = PixelBuffer(np.zeros((3000, 4000, 3), dtype=np.uint8))
        >>> result = process(img)
        >>> result.processed_size
        (2048, 1536)
        >>> result.operations_applied
        ('resize', 'noise_reduction', 'contrast_enhancement')
    """
    if options is None:
        options = ProcessingOptions()

    options.validate()
    _validate_input(buffer)

    return build_pipeline(options).process(buffer)

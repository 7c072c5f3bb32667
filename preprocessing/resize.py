"""
Adaptive downsampling for barcode detection.

Two strategies exist:
- FAST: one bilinear resize straight to the target size.
- MULTI_STEP: repeated halving with bilinear resizes until the image is
  within 2x of the target, then one final bilinear resize. A single large
  bilinear jump aliases; stepwise halving approximates a box filter cheaply.

Output feeds a binarizing decoder, not a human, so resizes use plain
bilinear interpolation (cv2.INTER_LINEAR) without any anti-aliasing pass.

The strategy is picked by choose_resize_strategy(), a pure function of the
source size, target size and quality flag.
"""

from __future__ import annotations

import logging
from enum import Enum

import cv2

from config import MULTI_STEP_RATIO
from .buffer import PixelBuffer
from .errors import InvalidDimensions, OutOfMemory
from .normalization import expand_palette

logger = logging.getLogger(__name__)


class ResizeStrategy(Enum):
    FAST = "fast"
    MULTI_STEP = "multi_step"


def target_dimensions(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Compute the downscaled (width, height) that fits within max_dimension.

    Never upscales: sizes already within the limit are returned unchanged.
    Scaled sides are floored and clamped to at least 1 pixel.

    Raises:
        InvalidDimensions: If any input is not positive.

    Examples:
        >>> target_dimensions(4000, 3000, 2048)
        (2048, 1536)
        >>> target_dimensions(640, 480, 2048)
        (640, 480)
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensions(
            f"Source dimensions must be positive, got {width}x{height}",
            dimensions=(width, height),
        )
    if max_dimension <= 0:
        raise InvalidDimensions(
            f"Target dimension must be positive, got {max_dimension}",
            dimensions=(width, height),
        )

    longest = max(width, height)
    if longest <= max_dimension:
        return width, height

    # floor(side * max_dimension / longest) in integers, free of float rounding
    new_width = max(1, width * max_dimension // longest)
    new_height = max(1, height * max_dimension // longest)
    return new_width, new_height


def choose_resize_strategy(
    source: tuple[int, int],
    target: tuple[int, int],
    high_quality: bool,
) -> ResizeStrategy:
    """Pick MULTI_STEP for high quality resizes that shrink more than 2x."""
    src_w, src_h = source
    tgt_w, tgt_h = target
    if high_quality and (
        src_w > tgt_w * MULTI_STEP_RATIO or src_h > tgt_h * MULTI_STEP_RATIO
    ):
        return ResizeStrategy.MULTI_STEP
    return ResizeStrategy.FAST


def fast_resize(buffer: PixelBuffer, width: int, height: int) -> PixelBuffer:
    """Single bilinear resize to exactly (width, height).

    INDEXED buffers are resolved to RGB first and come out as RGB.
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensions(
            f"Target dimensions must be positive, got {width}x{height}",
            dimensions=buffer.dimensions,
        )

    source = expand_palette(buffer) if buffer.is_indexed else buffer
    try:
        resized = cv2.resize(
            source.pixels,
            (width, height),  # cv2.resize takes (width, height)
            interpolation=cv2.INTER_LINEAR,
        )
    except MemoryError as exc:
        raise OutOfMemory(
            f"Could not allocate {width}x{height} resize output",
            dimensions=buffer.dimensions,
        ) from exc

    return source.with_pixels(resized)


def multi_step_resize(buffer: PixelBuffer, width: int, height: int) -> PixelBuffer:
    """Halve repeatedly until within 2x of the target, then resize exactly."""
    current = buffer
    current_w, current_h = buffer.dimensions
    steps = 0

    while current_w > width * MULTI_STEP_RATIO or current_h > height * MULTI_STEP_RATIO:
        current_w = max(current_w // 2, width)
        current_h = max(current_h // 2, height)
        current = fast_resize(current, current_w, current_h)
        steps += 1

    if (current_w, current_h) != (width, height):
        current = fast_resize(current, width, height)
        steps += 1

    logger.debug(
        "Multi-step resize %dx%d -> %dx%d in %d passes",
        buffer.width, buffer.height, width, height, steps,
    )
    return current


def resize(buffer: PixelBuffer, max_dimension: int, high_quality: bool = True) -> PixelBuffer:
    """Downscale a buffer so that neither side exceeds max_dimension.

    Returns the input buffer itself when no downscaling is needed.

    Args:
        buffer: Source buffer.
        max_dimension: Longest side allowed, must be positive.
        high_quality: Allow the multi-step strategy for large ratios.

    Returns:
        A new, smaller buffer, or `buffer` unchanged.

    Raises:
        InvalidDimensions: If max_dimension is not positive.
        OutOfMemory: If an intermediate buffer cannot be allocated.
    """
    source_size = buffer.dimensions
    target = target_dimensions(*source_size, max_dimension)
    if target == source_size:
        return buffer

    strategy = choose_resize_strategy(source_size, target, high_quality)
    logger.debug(
        "Resizing %dx%d -> %dx%d (%s)",
        source_size[0], source_size[1], target[0], target[1], strategy.value,
    )

    if strategy is ResizeStrategy.MULTI_STEP:
        return multi_step_resize(buffer, *target)
    return fast_resize(buffer, *target)

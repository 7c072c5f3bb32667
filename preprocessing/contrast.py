"""
Linear contrast enhancement around the intensity midpoint.

Every channel value v maps to

    v' = clamp(0, 255, trunc((v - 128) * factor + 128))

Two interchangeable paths implement the mapping:
- BULK_RESCALE: the formula is evaluated once for all 256 possible inputs and
  applied to the whole buffer with a single cv2.LUT call.
- MANUAL_FALLBACK: the formula is evaluated directly on blocks of samples.
  Handles INDEXED buffers (resolved through the palette) and factors outside
  the bulk range.

For any non-indexed buffer and factor where both paths are legal they produce
pixel-identical output. Falling back from the bulk path is a local recovery
and never surfaces as an error.
"""

from __future__ import annotations

import logging
import math
from enum import Enum

import cv2
import numpy as np

from config import (
    CONTRAST_MIDPOINT,
    FAST_PATH_MIN_FACTOR,
    FAST_PATH_MAX_FACTOR,
    MANUAL_CHUNK_SIZE,
)
from .buffer import ColorModel, PixelBuffer
from .errors import InvalidOptions, UnsupportedColorModel
from .normalization import expand_palette

logger = logging.getLogger(__name__)


class EnhancementPath(Enum):
    BULK_RESCALE = "bulk_rescale"
    MANUAL_FALLBACK = "manual_fallback"


def choose_enhancement_path(color_model: ColorModel, factor: float) -> EnhancementPath:
    """Bulk path for non-indexed buffers with 0.1 < factor < 5.0."""
    if color_model is not ColorModel.INDEXED and FAST_PATH_MIN_FACTOR < factor < FAST_PATH_MAX_FACTOR:
        return EnhancementPath.BULK_RESCALE
    return EnhancementPath.MANUAL_FALLBACK


def _stretch(values: np.ndarray, factor: float) -> np.ndarray:
    """Apply the contrast formula to an array of sample values."""
    stretched = (values.astype(np.float64) - CONTRAST_MIDPOINT) * factor + CONTRAST_MIDPOINT
    return np.clip(np.trunc(stretched), 0, 255).astype(np.uint8)


def build_lookup_table(factor: float) -> np.ndarray:
    """256-entry uint8 table mapping each input level to its enhanced level."""
    return _stretch(np.arange(256, dtype=np.uint8), factor)


def bulk_rescale(buffer: PixelBuffer, factor: float) -> PixelBuffer:
    """Enhance the whole buffer with one lookup-table pass.

    Raises:
        UnsupportedColorModel: For INDEXED buffers, whose samples are palette
            indices rather than intensities.
        cv2.error: If OpenCV rejects the arguments.
    """
    if buffer.is_indexed:
        raise UnsupportedColorModel(
            "Bulk rescale cannot operate on palette indices",
            dimensions=buffer.dimensions,
        )
    enhanced = cv2.LUT(buffer.pixels, build_lookup_table(factor))
    return buffer.with_pixels(enhanced)


def manual_rescale(
    buffer: PixelBuffer,
    factor: float,
    chunk_size: int = MANUAL_CHUNK_SIZE,
) -> PixelBuffer:
    """Enhance the buffer block by block for cache locality.

    INDEXED buffers are expanded through their palette and return RGB.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    source = expand_palette(buffer) if buffer.is_indexed else buffer
    pixels = source.pixels
    enhanced = np.empty_like(pixels)

    height, width = pixels.shape[:2]
    for y in range(0, height, chunk_size):
        end_y = min(y + chunk_size, height)
        for x in range(0, width, chunk_size):
            end_x = min(x + chunk_size, width)
            enhanced[y:end_y, x:end_x] = _stretch(pixels[y:end_y, x:end_x], factor)

    return source.with_pixels(enhanced)


def enhance(buffer: PixelBuffer, factor: float) -> PixelBuffer:
    """Stretch sample intensities around the midpoint by `factor`.

    Args:
        buffer: Source buffer.
        factor: Positive stretch factor. Values above 1 increase contrast,
            values below 1 flatten it, 1.0 is the identity.

    Returns:
        A new enhanced buffer. INDEXED input yields an RGB buffer.

    Raises:
        InvalidOptions: If factor is not a positive finite number.
    """
    if math.isnan(factor) or math.isinf(factor) or factor <= 0:
        raise InvalidOptions(
            f"contrast factor must be a positive finite number, got {factor}",
            dimensions=buffer.dimensions,
        )

    path = choose_enhancement_path(buffer.color_model, factor)
    if path is EnhancementPath.BULK_RESCALE:
        try:
            return bulk_rescale(buffer, factor)
        except (UnsupportedColorModel, cv2.error) as exc:
            logger.debug("Bulk rescale rejected (%s); using manual path", exc)

    return manual_rescale(buffer, factor)

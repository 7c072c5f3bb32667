"""
Color model conversions for PixelBuffers.

All functions are pure: they take a buffer and return a new buffer without
mutating the original samples. Stages that cannot work on palette indices
use expand_palette() to get RGB samples first.
"""

import numpy as np
import cv2

from config import CONTRAST_SAMPLE_STRIDE
from .buffer import ColorModel, PixelBuffer


def expand_palette(buffer: PixelBuffer) -> PixelBuffer:
    """Resolve an INDEXED buffer through its palette into an RGB buffer.

    Non-indexed buffers are returned as a copy, so callers always own the
    result.

    Examples:
        >>> palette = np.array([[0, 0, 0], [255, 255, 255]], dtype=np.uint8)
        >>> indexed = PixelBuffer(np.array([[0, 1]], dtype=np.uint8),
        ...                       ColorModel.INDEXED, palette)
        >>> expand_palette(indexed).pixels.tolist()
        [[[0, 0, 0], [255, 255, 255]]]
    """
    if buffer.color_model is not ColorModel.INDEXED:
        return buffer.copy()

    # Fancy indexing allocates a fresh (H, W, 3) array
    rgb = buffer.palette[buffer.pixels]
    return PixelBuffer(rgb, ColorModel.RGB)


def to_grayscale(buffer: PixelBuffer) -> PixelBuffer:
    """Convert a buffer to a single-channel GRAY buffer.

    RGB samples are combined with ITU-R BT.601 luma weights; INDEXED buffers
    are expanded through their palette first. GRAY input returns a copy.
    """
    if buffer.color_model is ColorModel.GRAY:
        return buffer.copy()

    rgb = expand_palette(buffer) if buffer.is_indexed else buffer
    gray = cv2.cvtColor(rgb.pixels, cv2.COLOR_RGB2GRAY)
    return PixelBuffer(gray, ColorModel.GRAY)


def measure_contrast(buffer: PixelBuffer, stride: int = CONTRAST_SAMPLE_STRIDE) -> float:
    """Estimate overall contrast as the normalised brightness range.

    Samples every `stride`-th pixel in both directions, takes the per-pixel
    mean of the channels as brightness and returns (max - min) / 255, a value
    in [0.0, 1.0]. Useful for deciding whether enhancement is worth running.
    """
    if stride <= 0:
        raise ValueError(f"stride must be positive, got {stride}")

    rgb = expand_palette(buffer) if buffer.is_indexed else buffer
    sampled = rgb.pixels[::stride, ::stride].astype(np.float64)
    if sampled.ndim == 3:
        sampled = sampled.mean(axis=2)
    return float(sampled.max() - sampled.min()) / 255.0

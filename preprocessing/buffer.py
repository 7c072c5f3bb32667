"""
PixelBuffer: the unit of work passed between pipeline stages.

A buffer owns a contiguous uint8 numpy array. RGB buffers are (H, W, 3);
GRAY and INDEXED buffers are (H, W). INDEXED buffers additionally carry a
palette of up to 256 RGB entries that every sample indexes into.

Stages never modify a buffer in place. Each transformation allocates a new
array and wraps it in a new PixelBuffer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .errors import InvalidDimensions, UnsupportedColorModel


class ColorModel(str, Enum):
    RGB = "rgb"
    INDEXED = "indexed"
    GRAY = "gray"


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """A dimensioned grid of 8-bit samples with a color model tag.

    Attributes:
        pixels: Sample array, uint8. Shape (H, W, 3) for RGB, (H, W) otherwise.
        color_model: How the samples are interpreted.
        palette: (N, 3) uint8 RGB palette. Required for INDEXED, None otherwise.
    """

    pixels: np.ndarray
    color_model: ColorModel = ColorModel.RGB
    palette: np.ndarray | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.pixels, np.ndarray):
            raise TypeError(f"Expected numpy.ndarray, got {type(self.pixels).__name__}")

        if self.pixels.dtype != np.uint8:
            raise TypeError(f"Pixel samples must be uint8, got {self.pixels.dtype}")

        if self.pixels.ndim < 2 or self.pixels.shape[0] == 0 or self.pixels.shape[1] == 0:
            raise InvalidDimensions(
                f"Buffer must have positive width and height, got shape {self.pixels.shape}"
            )

        if self.color_model is ColorModel.RGB:
            if self.pixels.ndim != 3 or self.pixels.shape[2] != 3:
                raise UnsupportedColorModel(
                    f"RGB buffers must have shape (H, W, 3), got {self.pixels.shape}"
                )
        elif self.pixels.ndim != 2:
            raise UnsupportedColorModel(
                f"{self.color_model.name} buffers must have shape (H, W), "
                f"got {self.pixels.shape}"
            )

        if self.color_model is ColorModel.INDEXED:
            self._check_palette()
        elif self.palette is not None:
            raise UnsupportedColorModel(
                f"Only INDEXED buffers carry a palette, got {self.color_model.name}"
            )

        if not self.pixels.flags.c_contiguous:
            object.__setattr__(self, "pixels", np.ascontiguousarray(self.pixels))

    def _check_palette(self) -> None:
        palette = self.palette
        if palette is None:
            raise UnsupportedColorModel("INDEXED buffers require a palette")
        if (
            not isinstance(palette, np.ndarray)
            or palette.dtype != np.uint8
            or palette.ndim != 2
            or palette.shape[1] != 3
            or not 1 <= palette.shape[0] <= 256
        ):
            raise UnsupportedColorModel(
                "Palette must be a uint8 array of shape (N, 3) with 1 <= N <= 256"
            )
        if int(self.pixels.max()) >= palette.shape[0]:
            raise UnsupportedColorModel(
                f"Sample index {int(self.pixels.max())} is outside the "
                f"{palette.shape[0]}-entry palette"
            )

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "PixelBuffer":
        """Wrap a decoded array, inferring RGB or GRAY from its rank."""
        if pixels.ndim == 2:
            return cls(pixels, ColorModel.GRAY)
        return cls(pixels, ColorModel.RGB)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def dimensions(self) -> tuple[int, int]:
        """(width, height) of the buffer."""
        return self.width, self.height

    @property
    def channels(self) -> int:
        return 3 if self.pixels.ndim == 3 else 1

    @property
    def nbytes(self) -> int:
        """Bytes held by the sample array (palette excluded)."""
        return int(self.pixels.nbytes)

    @property
    def is_indexed(self) -> bool:
        return self.color_model is ColorModel.INDEXED

    def copy(self) -> "PixelBuffer":
        palette = None if self.palette is None else self.palette.copy()
        return PixelBuffer(self.pixels.copy(), self.color_model, palette)

    def with_pixels(self, pixels: np.ndarray) -> "PixelBuffer":
        """New buffer with the same color model (and palette) around new samples."""
        return PixelBuffer(pixels, self.color_model, self.palette)

    def same_content(self, other: "PixelBuffer") -> bool:
        """True when both buffers hold identical samples under the same model."""
        if self.color_model is not other.color_model:
            return False
        if not np.array_equal(self.pixels, other.pixels):
            return False
        if self.palette is None or other.palette is None:
            return self.palette is None and other.palette is None
        return np.array_equal(self.palette, other.palette)

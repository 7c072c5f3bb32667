"""
Fixed 3x3 median noise reduction.

Each interior pixel is replaced by the median (5th of 9 sorted values) of
its 3x3 neighbourhood, computed for every channel independently. This is a
per-channel median, not a joint vector median, and can fringe colors on
strong edges; decoders binarize anyway, so the behaviour is kept as is.

Border rows and columns lack a full neighbourhood and are copied unchanged
from the source. Buffers narrower or shorter than 3 pixels are all border.
"""

import cv2

from .buffer import PixelBuffer
from .errors import OutOfMemory
from .normalization import expand_palette

KERNEL_SIZE = 3


def denoise(buffer: PixelBuffer) -> PixelBuffer:
    """Apply the 3x3 median filter to the interior of a buffer.

    INDEXED buffers are filtered in RGB space (medians of palette indices
    are meaningless) and return RGB.

    Args:
        buffer: Source buffer.

    Returns:
        A new buffer with the same dimensions.
    """
    source = expand_palette(buffer) if buffer.is_indexed else buffer
    width, height = source.dimensions

    if width < KERNEL_SIZE or height < KERNEL_SIZE:
        return source.copy() if source is buffer else source

    try:
        # medianBlur filters each channel separately; its replicated borders
        # are overwritten below
        filtered = cv2.medianBlur(source.pixels, KERNEL_SIZE)
    except MemoryError as exc:
        raise OutOfMemory(
            "Could not allocate median filter output",
            dimensions=buffer.dimensions,
        ) from exc

    filtered[0, :] = source.pixels[0, :]
    filtered[-1, :] = source.pixels[-1, :]
    filtered[:, 0] = source.pixels[:, 0]
    filtered[:, -1] = source.pixels[:, -1]

    return source.with_pixels(filtered)

"""
Lazily decoded images backed by raw encoded bytes.

A LazyImageHandle moves through three explicit states, only ever forward:

    Unloaded(raw) -> MetadataOnly(metadata, raw) -> Loaded(metadata, buffer)

metadata() reads only the format header (Pillow opens images lazily), so
width, height and a memory estimate are available without decoding pixel
data. materialize() decodes once and caches the buffer for the lifetime of
the handle.

decode() returns a freshly decoded buffer without caching it. The batch
scheduler uses it so decoded pixels belong to a chunk and are released when
the chunk finishes, instead of staying pinned by the handle.
"""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from config import BYTES_PER_PIXEL, LARGE_IMAGE_THRESHOLD_BYTES
from .buffer import ColorModel, PixelBuffer
from .errors import ImageDecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageMetadata:
    """Header information available without decoding pixels.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        estimated_bytes: Decoded size estimate at 4 bytes per pixel.
        is_large: Whether the estimate exceeds the large-image threshold.
        format: Container format reported by Pillow (e.g. "PNG"), if known.
    """

    width: int
    height: int
    estimated_bytes: int
    is_large: bool
    format: str | None = None


@dataclass(frozen=True)
class Unloaded:
    raw: bytes


@dataclass(frozen=True)
class MetadataOnly:
    metadata: ImageMetadata
    raw: bytes


@dataclass(frozen=True)
class Loaded:
    metadata: ImageMetadata
    buffer: PixelBuffer


HandleState = Union[Unloaded, MetadataOnly, Loaded]

_OPEN_LOCK = threading.Lock()


def estimate_decoded_bytes(width: int, height: int) -> int:
    """Decoded size estimate used for metadata and batch planning."""
    return width * height * BYTES_PER_PIXEL


def _open_image(raw: bytes, size_guard: bool = True) -> Image.Image:
    """Open encoded bytes with Pillow, reading only the header.

    Pillow refuses images above Image.MAX_IMAGE_PIXELS when opening them.
    With size_guard=False that check is lifted for this one open, so very
    large images still report their dimensions. The limit is a module global
    in Pillow, so opens are serialised while it may be lifted.
    """
    with _OPEN_LOCK:
        if size_guard:
            return Image.open(io.BytesIO(raw))
        limit = Image.MAX_IMAGE_PIXELS
        Image.MAX_IMAGE_PIXELS = None
        try:
            return Image.open(io.BytesIO(raw))
        finally:
            Image.MAX_IMAGE_PIXELS = limit


def read_metadata(raw: bytes) -> ImageMetadata:
    """Read dimensions from the image header without decoding pixel data.

    Raises:
        ImageDecodeError: If the bytes are not a recognised image format.
    """
    try:
        with _open_image(raw, size_guard=False) as img:
            width, height = img.size
            fmt = img.format
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageDecodeError(f"Cannot read image header: {exc}") from exc

    estimated = estimate_decoded_bytes(width, height)
    return ImageMetadata(
        width=width,
        height=height,
        estimated_bytes=estimated,
        is_large=estimated > LARGE_IMAGE_THRESHOLD_BYTES,
        format=fmt,
    )


def _indexed_buffer(img: Image.Image) -> PixelBuffer | None:
    """Wrap a palette image as INDEXED, or None if its palette is unusable."""
    palette_values = img.getpalette()
    if not palette_values:
        return None
    palette = np.array(palette_values, dtype=np.uint8).reshape(-1, 3)[:256]
    indices = np.array(img, dtype=np.uint8)
    if int(indices.max()) >= palette.shape[0]:
        return None
    return PixelBuffer(indices, ColorModel.INDEXED, palette)


def decode_image(raw: bytes) -> PixelBuffer:
    """Decode encoded bytes into a PixelBuffer.

    Palette images become INDEXED, 8-bit and 1-bit grayscale become GRAY,
    everything else is converted to RGB.

    Raises:
        ImageDecodeError: If the bytes cannot be decoded, or the image is
            above Pillow's decompression bomb limit.
    """
    try:
        with _open_image(raw) as img:
            img.load()
            if img.mode == "P":
                indexed = _indexed_buffer(img)
                if indexed is not None:
                    return indexed
                return PixelBuffer(np.array(img.convert("RGB"), dtype=np.uint8), ColorModel.RGB)
            if img.mode in ("L", "1"):
                return PixelBuffer(np.array(img.convert("L"), dtype=np.uint8), ColorModel.GRAY)
            return PixelBuffer(np.array(img.convert("RGB"), dtype=np.uint8), ColorModel.RGB)
    except Image.DecompressionBombError as exc:
        metadata = read_metadata(raw)
        raise ImageDecodeError(
            f"Image too large to decode: {exc}",
            dimensions=(metadata.width, metadata.height),
        ) from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageDecodeError(f"Cannot decode image: {exc}") from exc


class LazyImageHandle:
    """Deferred-decoding wrapper around encoded image bytes.

    Safe to query from several threads; state transitions are serialised.

    Attributes:
        name: Optional label (e.g. a file name) used in logs and reports.
    """

    def __init__(self, raw: bytes, name: str | None = None):
        if not raw:
            raise ImageDecodeError("Image data is empty")
        self.name = name
        self._state: HandleState = Unloaded(bytes(raw))
        self._lock = threading.Lock()

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return isinstance(self._state, Loaded)

    def metadata(self) -> ImageMetadata:
        """Header metadata; read on first call, cached afterwards."""
        with self._lock:
            state = self._state
            if isinstance(state, Unloaded):
                metadata = read_metadata(state.raw)
                self._state = MetadataOnly(metadata, state.raw)
                return metadata
            return state.metadata

    def materialize(self) -> PixelBuffer:
        """Decoded pixels; decoded on first call and cached for the handle's lifetime."""
        metadata = self.metadata()
        with self._lock:
            state = self._state
            if isinstance(state, Loaded):
                return state.buffer
            logger.debug(
                "Materializing %s (%dx%d)",
                self.name or "image", metadata.width, metadata.height,
            )
            buffer = decode_image(state.raw)
            self._state = Loaded(metadata, buffer)
            return buffer

    def decode(self) -> PixelBuffer:
        """Decoded pixels without caching them on the handle.

        Returns the cached buffer if the handle is already Loaded.
        """
        self.metadata()
        with self._lock:
            state = self._state
        if isinstance(state, Loaded):
            return state.buffer
        return decode_image(state.raw)

    def requires_downsampling(self, max_dimension: int) -> bool:
        metadata = self.metadata()
        return metadata.width > max_dimension or metadata.height > max_dimension

    def __repr__(self) -> str:
        return f"LazyImageHandle(name={self.name!r}, state={type(self._state).__name__})"

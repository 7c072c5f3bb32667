"""Pytest configuration and shared fixtures.

Slow tests (full-size camera frames, large batches) are skipped unless
--slow is passed.
Run the full suite:   pytest --slow
Run fast tests only:  pytest          (default)
"""
import io
import struct
import zlib

import numpy as np
import pytest
from PIL import Image

from preprocessing import ColorModel, PixelBuffer


def pytest_addoption(parser):
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="Run slow tests that process full-size images",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: processes full-size images")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--slow"):
        return  # run everything
    skip_slow = pytest.mark.skip(reason="slow test skipped, pass --slow to include")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def rgb_buffer(rng):
    """Random 60x80 RGB buffer."""
    return PixelBuffer(rng.integers(0, 256, (60, 80, 3), dtype=np.uint8))


@pytest.fixture
def gray_buffer(rng):
    """Random 50x40 GRAY buffer."""
    return PixelBuffer(rng.integers(0, 256, (50, 40), dtype=np.uint8), ColorModel.GRAY)


@pytest.fixture
def indexed_buffer(rng):
    """Random 30x20 INDEXED buffer over a 16-color palette."""
    palette = rng.integers(0, 256, (16, 3), dtype=np.uint8)
    indices = rng.integers(0, 16, (30, 20), dtype=np.uint8)
    return PixelBuffer(indices, ColorModel.INDEXED, palette)


def encode_png(array: np.ndarray, palette: np.ndarray | None = None) -> bytes:
    """Encode an array as PNG bytes with Pillow.

    With a palette, a 2D array of indices is written as a palette ("P") image.
    """
    img = Image.fromarray(array)
    if palette is not None:
        img.putpalette(palette.astype(np.uint8).flatten().tolist())
    out = io.BytesIO()
    img.save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def png_bytes():
    return encode_png


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return (
        struct.pack(">I", len(data))
        + kind
        + data
        + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)
    )


def encode_png_header(width: int, height: int) -> bytes:
    """A grayscale PNG declaring width x height with almost no pixel data.

    The header is valid, so metadata can be read; decoding fails or is
    refused. Used for sizes too big to actually encode.
    """
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 0, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", ihdr)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00"))
        + _png_chunk(b"IEND", b"")
    )


@pytest.fixture
def huge_png_header():
    """Header-only 20000x20000 PNG, above Pillow's decompression bomb limit."""
    return encode_png_header(20000, 20000)

"""Tests for the 3x3 median noise reduction stage."""

import numpy as np
import pytest

from preprocessing import ColorModel, PixelBuffer, denoise, expand_palette


def reference_median(pixels: np.ndarray) -> np.ndarray:
    """Per-channel 3x3 median computed directly, borders copied."""
    out = pixels.copy()
    height, width = pixels.shape[:2]
    for y in range(1, height - 1):
        for x in range(1, width - 1):
            window = pixels[y - 1:y + 2, x - 1:x + 2]
            out[y, x] = np.median(window.reshape(9, -1), axis=0).astype(np.uint8).squeeze()
    return out


class TestDenoise:
    """Tests for denoise()."""

    def test_border_pixels_unchanged(self, rgb_buffer):
        result = denoise(rgb_buffer)
        src = rgb_buffer.pixels
        out = result.pixels
        assert np.array_equal(out[0, :], src[0, :])
        assert np.array_equal(out[-1, :], src[-1, :])
        assert np.array_equal(out[:, 0], src[:, 0])
        assert np.array_equal(out[:, -1], src[:, -1])

    def test_dimensions_and_model_preserved(self, rgb_buffer, gray_buffer):
        assert denoise(rgb_buffer).dimensions == rgb_buffer.dimensions
        gray = denoise(gray_buffer)
        assert gray.dimensions == gray_buffer.dimensions
        assert gray.color_model is ColorModel.GRAY

    def test_isolated_spike_is_removed(self):
        pixels = np.full((7, 7), 50, dtype=np.uint8)
        pixels[3, 3] = 255
        result = denoise(PixelBuffer(pixels, ColorModel.GRAY))
        assert result.pixels[3, 3] == 50

    def test_spike_on_border_survives(self):
        pixels = np.full((7, 7), 50, dtype=np.uint8)
        pixels[0, 3] = 255
        result = denoise(PixelBuffer(pixels, ColorModel.GRAY))
        assert result.pixels[0, 3] == 255

    def test_matches_reference_gray(self, rng):
        pixels = rng.integers(0, 256, size=(12, 15), dtype=np.uint8)
        result = denoise(PixelBuffer(pixels, ColorModel.GRAY))
        assert np.array_equal(result.pixels, reference_median(pixels))

    def test_matches_reference_rgb_per_channel(self, rng):
        pixels = rng.integers(0, 256, size=(9, 11, 3), dtype=np.uint8)
        result = denoise(PixelBuffer(pixels))
        assert np.array_equal(result.pixels, reference_median(pixels))

    @pytest.mark.parametrize("shape", [(2, 10), (10, 2), (1, 1), (2, 2)])
    def test_small_buffer_is_all_border(self, shape):
        pixels = np.arange(shape[0] * shape[1], dtype=np.uint8).reshape(shape)
        buffer = PixelBuffer(pixels, ColorModel.GRAY)
        result = denoise(buffer)
        assert result is not buffer
        assert np.array_equal(result.pixels, pixels)

    def test_three_by_three_filters_centre_only(self):
        pixels = np.array([[0, 0, 0], [0, 200, 0], [0, 0, 0]], dtype=np.uint8)
        result = denoise(PixelBuffer(pixels, ColorModel.GRAY))
        assert result.pixels.tolist() == [[0, 0, 0], [0, 0, 0], [0, 0, 0]]

    def test_pure_function_no_mutation(self, rgb_buffer):
        original = rgb_buffer.pixels.copy()
        result = denoise(rgb_buffer)
        assert np.array_equal(rgb_buffer.pixels, original)
        assert result.pixels is not rgb_buffer.pixels

    def test_indexed_filtered_in_rgb(self, indexed_buffer):
        result = denoise(indexed_buffer)
        assert result.color_model is ColorModel.RGB
        expected = reference_median(expand_palette(indexed_buffer).pixels)
        assert np.array_equal(result.pixels, expected)

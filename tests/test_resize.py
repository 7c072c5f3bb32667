"""
Tests for adaptive downsampling.

Covers: never upscaling, aspect ratio preservation, strategy selection,
multi-step halving, color model handling and invalid targets.
"""

import importlib

import numpy as np
import pytest

from preprocessing import (
    ColorModel,
    InvalidDimensions,
    PixelBuffer,
    ResizeStrategy,
    choose_resize_strategy,
    resize,
    target_dimensions,
)

resize_module = importlib.import_module("preprocessing.resize")


class TestTargetDimensions:
    """Tests for the target size computation."""

    def test_example_4000x3000(self):
        assert target_dimensions(4000, 3000, 2048) == (2048, 1536)

    def test_portrait(self):
        assert target_dimensions(1000, 3000, 1500) == (500, 1500)

    def test_within_limit_unchanged(self):
        assert target_dimensions(640, 480, 2048) == (640, 480)

    def test_exactly_at_limit_unchanged(self):
        assert target_dimensions(2048, 100, 2048) == (2048, 100)

    def test_floors_fractional_sides(self):
        # 999 * 100 / 1000 = 99.9
        assert target_dimensions(1000, 999, 100) == (100, 99)

    def test_extreme_aspect_clamped_to_one_pixel(self):
        assert target_dimensions(10000, 3, 100) == (100, 1)

    @pytest.mark.parametrize("max_dimension", [0, -1, -2048])
    def test_non_positive_target_raises(self, max_dimension):
        with pytest.raises(InvalidDimensions, match="positive"):
            target_dimensions(100, 100, max_dimension)

    def test_non_positive_source_raises(self):
        with pytest.raises(InvalidDimensions):
            target_dimensions(0, 100, 50)


class TestChooseResizeStrategy:
    """Tests for the pure strategy decision."""

    def test_large_ratio_high_quality_is_multi_step(self):
        assert choose_resize_strategy((4000, 3000), (1000, 750), True) is ResizeStrategy.MULTI_STEP

    def test_large_ratio_without_high_quality_is_fast(self):
        assert choose_resize_strategy((4000, 3000), (1000, 750), False) is ResizeStrategy.FAST

    def test_ratio_at_most_two_is_fast(self):
        assert choose_resize_strategy((4000, 3000), (2000, 1500), True) is ResizeStrategy.FAST

    def test_one_axis_over_two_is_multi_step(self):
        assert choose_resize_strategy((4001, 100), (2000, 100), True) is ResizeStrategy.MULTI_STEP


class TestResize:
    """Tests for resize()."""

    def test_never_upscales(self, rgb_buffer):
        result = resize(rgb_buffer, 2048)
        assert result is rgb_buffer
        assert result.dimensions == (80, 60)

    def test_at_limit_returns_identical_content(self, rgb_buffer):
        original = rgb_buffer.pixels.copy()
        result = resize(rgb_buffer, 80, high_quality=True)
        assert result.dimensions == (80, 60)
        assert np.array_equal(result.pixels, original)

    @pytest.mark.parametrize("high_quality", [True, False])
    @pytest.mark.parametrize(
        "size,max_dimension",
        [((1600, 1200), 512), ((1200, 1600), 300), ((999, 333), 250), ((640, 480), 500)],
    )
    def test_aspect_ratio_within_one_pixel(self, size, max_dimension, high_quality):
        width, height = size
        buffer = PixelBuffer(np.zeros((height, width, 3), dtype=np.uint8))
        result = resize(buffer, max_dimension, high_quality)
        new_w, new_h = result.dimensions
        assert max(new_w, new_h) <= max_dimension
        # Each side within 1px of the exact proportional size
        assert abs(new_w - new_h * width / height) <= 1
        assert abs(new_h - new_w * height / width) <= 1

    def test_output_is_new_buffer(self, rgb_buffer):
        result = resize(rgb_buffer, 40)
        assert result is not rgb_buffer
        assert result.pixels is not rgb_buffer.pixels
        assert result.dimensions == (40, 30)

    def test_pure_function_no_mutation(self, rgb_buffer):
        original = rgb_buffer.pixels.copy()
        _ = resize(rgb_buffer, 20)
        assert np.array_equal(rgb_buffer.pixels, original)

    def test_uniform_image_stays_uniform(self):
        buffer = PixelBuffer(np.full((900, 1200, 3), 77, dtype=np.uint8))
        result = resize(buffer, 100, high_quality=True)
        assert np.all(result.pixels == 77)

    def test_gray_stays_gray(self, gray_buffer):
        result = resize(gray_buffer, 20)
        assert result.color_model is ColorModel.GRAY
        assert result.pixels.ndim == 2

    def test_indexed_becomes_rgb(self, indexed_buffer):
        result = resize(indexed_buffer, 10)
        assert result.color_model is ColorModel.RGB
        assert result.dimensions == (6, 10)

    @pytest.mark.parametrize("max_dimension", [0, -5])
    def test_invalid_target_raises(self, rgb_buffer, max_dimension):
        with pytest.raises(InvalidDimensions):
            resize(rgb_buffer, max_dimension)

    def test_multi_step_halves_before_final_pass(self, monkeypatch):
        calls = []
        real_fast_resize = resize_module.fast_resize

        def recording_fast_resize(buffer, width, height):
            calls.append((width, height))
            return real_fast_resize(buffer, width, height)

        monkeypatch.setattr(resize_module, "fast_resize", recording_fast_resize)
        buffer = PixelBuffer(np.zeros((3000, 4000), dtype=np.uint8), ColorModel.GRAY)

        result = resize(buffer, 500, high_quality=True)

        assert result.dimensions == (500, 375)
        assert calls == [(2000, 1500), (1000, 750), (500, 375)]

    def test_multi_step_never_halves_below_target(self, monkeypatch):
        calls = []
        real_fast_resize = resize_module.fast_resize

        def recording_fast_resize(buffer, width, height):
            calls.append((width, height))
            return real_fast_resize(buffer, width, height)

        monkeypatch.setattr(resize_module, "fast_resize", recording_fast_resize)
        # Width ratio 5x, height ratio 1x: height is pinned at the target
        buffer = PixelBuffer(np.zeros((10, 1000), dtype=np.uint8), ColorModel.GRAY)

        result = resize(buffer, 200, high_quality=True)

        assert result.dimensions == (200, 2)
        for width, height in calls:
            assert width >= 200
            assert height >= 2

    def test_fast_strategy_uses_single_pass(self, monkeypatch):
        calls = []
        real_fast_resize = resize_module.fast_resize

        def recording_fast_resize(buffer, width, height):
            calls.append((width, height))
            return real_fast_resize(buffer, width, height)

        monkeypatch.setattr(resize_module, "fast_resize", recording_fast_resize)
        buffer = PixelBuffer(np.zeros((3000, 4000), dtype=np.uint8), ColorModel.GRAY)

        resize(buffer, 500, high_quality=False)

        assert calls == [(500, 375)]

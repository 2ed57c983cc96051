"""Tests for dual-fisheye hemisphere merging."""

import math

import numpy as np
import pytest

from fisheye_equirect.cache_manager import CacheManager
from fisheye_equirect.dual_fisheye import (
  DualFisheyeResult, composite_hemispheres, default_dual_fisheye_lenses, merge_dual_fisheye
)
from fisheye_equirect.lens_params import LensParams, APERTURE_210_DEG

COLOR_A = (10, 20, 30, 255)
COLOR_B = (200, 150, 100, 255)


def _two_color_frame(width=64, height=32):
  frame = np.zeros((height, width, 4), dtype=np.uint8)
  frame[:, :width // 2] = COLOR_A
  frame[:, width // 2:] = COLOR_B
  return frame


def _pixels_of(region, color):
  return np.all(region == np.array(color, dtype=np.uint8), axis=-1)


class TestDefaultLenses:
  def test_theta_s_layout(self):
    left, right = default_dual_fisheye_lenses(1920, 960)
    assert left.get_center() == (480, 480)
    assert right.get_center() == (1440, 480)
    assert left.radius == right.radius == 480
    assert left.aperture == right.aperture == APERTURE_210_DEG
    assert left.rotation == pytest.approx(math.pi / 2)
    assert right.rotation == pytest.approx(-math.pi / 2)
    assert (left.name, right.name) == ('left', 'right')

  def test_extraction_size(self):
    left, _ = default_dual_fisheye_lenses(1920, 960)
    assert left.get_equirect_size() == (960, 480)


class TestComposite:
  def test_halves_are_swapped(self):
    # channel 0 holds the column index
    left = np.zeros((4, 8, 4), dtype=np.uint8)
    right = np.zeros((4, 8, 4), dtype=np.uint8)
    left[..., 0] = np.arange(8)
    left[..., 1] = 1
    right[..., 0] = np.arange(8)
    right[..., 1] = 2

    merged = composite_hemispheres(left, right)

    assert merged.shape == (4, 8, 4)
    np.testing.assert_array_equal(merged[:, :4], right[:, :4])
    np.testing.assert_array_equal(merged[:, 4:], left[:, :4])

  def test_uneven_heights_use_background(self):
    left = np.full((3, 6, 4), 9, dtype=np.uint8)
    right = np.full((2, 6, 4), 5, dtype=np.uint8)

    merged = composite_hemispheres(left, right, background=(1, 2, 3, 4))

    assert merged.shape == (3, 6, 4)
    np.testing.assert_array_equal(merged[2, 0], [1, 2, 3, 4])
    np.testing.assert_array_equal(merged[2, 3], [9, 9, 9, 9])


class TestMergeDualFisheye:
  def _lenses(self):
    left = LensParams(16, 16, 15, APERTURE_210_DEG, math.pi / 2, name='left')
    right = LensParams(48, 16, 15, APERTURE_210_DEG, -math.pi / 2, name='right')
    return left, right

  def test_shapes(self):
    left_lens, right_lens = self._lenses()
    result = merge_dual_fisheye(_two_color_frame(), left_lens, right_lens)

    assert result.left.shape == (15, 30, 4)
    assert result.right.shape == (15, 30, 4)
    assert result.merged.shape == (15, 30, 4)

  def test_each_half_comes_from_one_lens(self):
    left_lens, right_lens = self._lenses()
    merged = merge_dual_fisheye(_two_color_frame(), left_lens, right_lens).merged

    canvas_left = merged[:, :15]
    canvas_right = merged[:, 15:]
    background = (0, 0, 0, 0)

    assert np.all(_pixels_of(canvas_left, COLOR_B) | _pixels_of(canvas_left, background))
    assert np.all(_pixels_of(canvas_right, COLOR_A) | _pixels_of(canvas_right, background))
    # the optical axis of each lens lands in the middle of its half
    assert _pixels_of(canvas_left, COLOR_B)[7, 7]
    assert _pixels_of(canvas_right, COLOR_A)[7, 7]

  def test_default_lenses(self):
    result = merge_dual_fisheye(_two_color_frame())
    assert result.left.shape == (16, 32, 4)
    assert result.merged.shape == (16, 32, 4)

  def test_result_unpacks(self):
    left_lens, right_lens = self._lenses()
    result = merge_dual_fisheye(_two_color_frame(), left_lens, right_lens)
    left, right, merged = result
    assert isinstance(result, DualFisheyeResult)
    assert left is result.left
    assert right is result.right
    assert merged is result.merged

  def test_shared_cache(self):
    cache = CacheManager()
    left_lens, right_lens = self._lenses()
    merge_dual_fisheye(_two_color_frame(), left_lens, right_lens, cache_manager=cache)
    assert cache.get_info()['extract_projections'] == 2

    merge_dual_fisheye(_two_color_frame(), left_lens, right_lens, cache_manager=cache)
    assert cache.get_info()['total_hits'] == 2

  def test_none_source(self):
    with pytest.raises(ValueError):
      merge_dual_fisheye(None)

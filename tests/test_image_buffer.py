"""Tests for image buffer helpers."""

import numpy as np
import pytest

from fisheye_equirect.image_buffer import (
  create_image_buffer, load_image, save_image, scale_for_texture, to_bgra
)


class TestCreateImageBuffer:
  def test_filled_with_background(self):
    buffer = create_image_buffer(5, 3, (1, 2, 3, 4))
    assert buffer.shape == (3, 5, 4)
    assert buffer.dtype == np.uint8
    assert np.all(buffer == np.array([1, 2, 3, 4], dtype=np.uint8))

  def test_default_is_transparent(self):
    assert not create_image_buffer(2, 2).any()

  def test_three_channels(self):
    buffer = create_image_buffer(2, 2, (9, 9, 9), channels=3)
    assert buffer.shape == (2, 2, 3)

  def test_background_must_match_channels(self):
    with pytest.raises(ValueError):
      create_image_buffer(2, 2, (0, 0, 0))


class TestToBgra:
  def test_gray(self):
    gray = np.full((2, 3), 40, dtype=np.uint8)
    bgra = to_bgra(gray)
    assert bgra.shape == (2, 3, 4)
    np.testing.assert_array_equal(bgra[0, 0], [40, 40, 40, 255])

  def test_bgr(self):
    bgr = np.zeros((2, 2, 3), dtype=np.uint8)
    bgr[..., 2] = 200
    bgra = to_bgra(bgr)
    np.testing.assert_array_equal(bgra[1, 1], [0, 0, 200, 255])

  def test_bgra_is_copied(self):
    bgra = np.zeros((2, 2, 4), dtype=np.uint8)
    converted = to_bgra(bgra)
    converted[:] = 1
    assert not bgra.any()

  def test_invalid(self):
    with pytest.raises(ValueError):
      to_bgra(None)
    with pytest.raises(ValueError):
      to_bgra(np.zeros((2, 2, 2), dtype=np.uint8))


class TestScaleForTexture:
  def test_small_image_unchanged(self):
    img = np.zeros((256, 512, 4), dtype=np.uint8)
    assert scale_for_texture(img, 512) is img

  def test_large_image_scaled_to_two_to_one(self):
    img = np.zeros((300, 1000, 4), dtype=np.uint8)
    scaled = scale_for_texture(img, 256)
    assert scaled.shape == (128, 256, 4)


class TestLoadSave:
  def test_png_round_trip(self, tmp_path):
    img = np.zeros((4, 6, 4), dtype=np.uint8)
    img[..., 0] = np.arange(6) * 10
    img[..., 3] = 128
    path = str(tmp_path / 'frame.png')

    save_image(path, img)
    loaded = load_image(path)

    np.testing.assert_array_equal(loaded, img)

  def test_jpeg_drops_alpha(self, tmp_path):
    path = str(tmp_path / 'frame.jpg')
    save_image(path, np.full((8, 8, 4), 255, dtype=np.uint8))

    loaded = load_image(path)
    assert loaded.shape == (8, 8, 4)
    assert np.all(loaded[..., 3] == 255)

  def test_missing_file(self, tmp_path):
    with pytest.raises(ValueError):
      load_image(str(tmp_path / 'missing.png'))

  def test_save_none(self, tmp_path):
    with pytest.raises(ValueError):
      save_image(str(tmp_path / 'none.png'), None)

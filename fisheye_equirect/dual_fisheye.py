"""
MIT License

Copyright (c) 2025 Pan Yu

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
SOFTWARE.

Author: Pan Yu
"""

import math
import time
from typing import Optional, Sequence, Tuple

import numpy as np

from .cache_manager import CacheManager
from .equirect_projection import EquirectProjection, TRANSPARENT
from .image_buffer import create_image_buffer
from .lens_params import LensParams, APERTURE_210_DEG


class DualFisheyeResult:
  """Both hemisphere extractions and the merged panorama."""

  def __init__(self, left: np.ndarray, right: np.ndarray, merged: np.ndarray):
    self.left = left
    self.right = right
    self.merged = merged

  def __iter__(self):
    return iter((self.left, self.right, self.merged))


def default_dual_fisheye_lenses(image_width: int, image_height: int,
                                aperture: float = APERTURE_210_DEG) -> Tuple[LensParams, LensParams]:
  """
  Lens layout of a side-by-side dual-fisheye frame (e.g. 1920x960).

  Each lens fills one half of the frame. The two lenses face outward in
  opposite directions, so the left circle is rotated +90 degrees and the right
  circle -90 degrees to bring both hemispheres upright.

  Returns:
  - (left_lens, right_lens)
  """
  radius = min(image_width / 4.0, image_height / 2.0)
  left = LensParams(center_x=image_width / 4.0, center_y=image_height / 2.0, radius=radius,
                    aperture=aperture, rotation=math.pi / 2, name='left')
  right = LensParams(center_x=3 * image_width / 4.0, center_y=image_height / 2.0, radius=radius,
                     aperture=aperture, rotation=-math.pi / 2, name='right')
  return left, right


def composite_hemispheres(left: np.ndarray, right: np.ndarray,
                          background: Sequence[int] = TRANSPARENT) -> np.ndarray:
  """
  Place two hemisphere extractions side by side.

  The front half (left columns) of the right extraction fills the canvas' left
  half and the front half of the left extraction fills the right half.
  """
  left_half = left.shape[1] // 2
  right_half = right.shape[1] // 2
  height = max(left.shape[0], right.shape[0])
  channels = left.shape[2] if left.ndim == 3 else 1

  merged = create_image_buffer(left_half + right_half, height, background[:channels],
                               channels=channels, dtype=left.dtype)
  if left.ndim == 2:
    merged = merged[:, :, 0]

  merged[:right.shape[0], :right_half] = right[:, :right_half]
  merged[:left.shape[0], right_half:right_half + left_half] = left[:, :left_half]
  return merged


def merge_dual_fisheye(source: np.ndarray, left_lens: Optional[LensParams] = None,
                       right_lens: Optional[LensParams] = None,
                       background: Sequence[int] = TRANSPARENT, use_vectorized: bool = True,
                       cache_manager: Optional[CacheManager] = None) -> DualFisheyeResult:
  """
  Turn a dual-fisheye frame into one equirectangular panorama.

  Parameters:
  - source: dual-fisheye image buffer
  - left_lens, right_lens: lens circles; default to default_dual_fisheye_lenses
  - background: value of pixels no lens covers
  - use_vectorized: map generator selection, see EquirectProjection
  - cache_manager: Optional cache shared by both projectors

  Returns:
  - DualFisheyeResult with the left and right extractions and the merged panorama
  """
  if source is None:
    raise ValueError("Input image is None")

  start_time = time.time()

  if left_lens is None or right_lens is None:
    source_height, source_width = source.shape[:2]
    default_left, default_right = default_dual_fisheye_lenses(source_width, source_height)
    left_lens = left_lens or default_left
    right_lens = right_lens or default_right

  if cache_manager is None:
    cache_manager = CacheManager()

  print(f"Merging dual fisheye: left={left_lens}, right={right_lens}")

  left_projector = EquirectProjection(left_lens, use_vectorized=use_vectorized, cache_manager=cache_manager)
  right_projector = EquirectProjection(right_lens, use_vectorized=use_vectorized, cache_manager=cache_manager)

  left = left_projector.extract(source, background=background)
  right = right_projector.extract(source, background=background)
  merged = composite_hemispheres(left, right, background)

  merge_time = time.time() - start_time
  print(f"Merged panorama: {merged.shape[1]}x{merged.shape[0]}")
  print(f"\033[33mDual fisheye merge processing time: {merge_time:.4f} seconds\033[0m")

  return DualFisheyeResult(left, right, merged)

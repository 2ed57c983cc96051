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
import multiprocessing
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .cache_manager import CacheManager
from .image_buffer import create_image_buffer
from .lens_params import LensParams

MODE_EXTRACT = 'extract'
MODE_MERGE = 'merge'

# Fixed canvas of the interactive merge view
MERGE_OUTPUT_SIZE = (1920, 1080)

TRANSPARENT = (0, 0, 0, 0)


def equirect_pixel_to_fisheye(col: int, row: int, output_width: int, output_height: int,
                              center_x: float, center_y: float, radius: float, aperture: float,
                              rotation: float = 0.0,
                              source_size: Optional[Tuple[int, int]] = None) -> Optional[Tuple[int, int]]:
  """
  Map one equirectangular pixel to the fisheye source pixel it samples.

  Parameters:
  - col, row: destination pixel
  - output_width, output_height: size of the equirectangular canvas
  - center_x, center_y, radius: fisheye circle in source pixels
  - aperture: lens field of view in radians
  - rotation: lens mounting rotation in radians
  - source_size: optional (width, height) used to reject out-of-bounds samples

  Returns:
  - (src_x, src_y), or None when the ray is outside the lens field of view
    or lands outside the source image
  """
  half_width = output_width / 2.0
  half_height = output_height / 2.0
  equirect_x = -(col - half_width) / half_width
  equirect_y = -(row - half_height) / half_height

  longitude = equirect_x * math.pi
  latitude = equirect_y * math.pi / 2

  p_x = math.cos(latitude) * math.cos(longitude)
  p_y = math.cos(latitude) * math.sin(longitude)
  p_z = math.sin(latitude)

  # equidistant fisheye, optical axis along +y
  r = 2 * math.atan2(math.sqrt(p_x * p_x + p_z * p_z), p_y) / aperture
  theta = math.atan2(p_z, p_x)
  unit_x = r * math.cos(theta)
  unit_y = r * math.sin(theta)

  if abs(unit_x) > 1 or abs(unit_y) > 1:
    return None

  cos_rot = math.cos(rotation)
  sin_rot = math.sin(rotation)
  rotated_x = unit_x * cos_rot - unit_y * sin_rot
  rotated_y = unit_x * sin_rot + unit_y * cos_rot

  # image rows grow downward, unit circle y grows upward
  src_x = math.floor(center_x + rotated_x * radius)
  src_y = math.floor(center_y - rotated_y * radius)

  if source_size is not None:
    source_width, source_height = source_size
    if src_x < 0 or src_x >= source_width or src_y < 0 or src_y >= source_height:
      return None

  return (src_x, src_y)


def fisheye_to_equirect_pixel(x: float, y: float, output_width: int, output_height: int,
                              center_x: float, center_y: float, radius: float, aperture: float,
                              rotation: float = 0.0) -> Tuple[float, float]:
  """
  Inverse of equirect_pixel_to_fisheye: locate a fisheye source point on the
  equirectangular canvas.

  Returns:
  - fractional (col, row) on the equirectangular canvas
  """
  unit_x = (x - center_x) / radius
  unit_y = (center_y - y) / radius

  cos_rot = math.cos(-rotation)
  sin_rot = math.sin(-rotation)
  unit_x, unit_y = unit_x * cos_rot - unit_y * sin_rot, unit_x * sin_rot + unit_y * cos_rot

  r = math.hypot(unit_x, unit_y)
  theta = math.atan2(unit_y, unit_x)
  off_axis = r * aperture / 2

  p_x = math.sin(off_axis) * math.cos(theta)
  p_y = math.cos(off_axis)
  p_z = math.sin(off_axis) * math.sin(theta)

  latitude = math.asin(max(-1.0, min(1.0, p_z)))
  longitude = math.atan2(p_y, p_x)

  half_width = output_width / 2.0
  half_height = output_height / 2.0
  col = half_width - (longitude / math.pi) * half_width
  row = half_height - (latitude / (math.pi / 2)) * half_height
  return (col, row)


def apply_equirect_projection_maps(img: np.ndarray, map_x: np.ndarray, map_y: np.ndarray,
                                   background: Sequence[int] = TRANSPARENT) -> np.ndarray:
  """
  Apply projection maps to a source image using nearest-by-truncation sampling.

  Parameters:
  - img: source image as numpy array (height, width[, channels])
  - map_x, map_y: integer source coordinates per output pixel, -1 where rejected
  - background: fill value for rejected pixels

  Returns:
  - new image buffer; rejected pixels keep the background value
  """
  if img is None:
    raise ValueError("Input image is None")

  output_height, output_width = map_x.shape

  start_time = time.time()

  if img.ndim == 2:
    output = np.full((output_height, output_width), background[0], dtype=img.dtype)
  else:
    output = create_image_buffer(output_width, output_height, background,
                                 channels=img.shape[2], dtype=img.dtype)

  valid = map_x >= 0
  output[valid] = img[map_y[valid], map_x[valid]]

  apply_time = time.time() - start_time
  print(f"Applied projection maps to create {output_width}x{output_height} image "
        f"({np.count_nonzero(valid)} of {valid.size} pixels sampled)")
  print(f"\033[33mMap application time: {apply_time:.4f} seconds\033[0m")

  return output


class EquirectProjection:
  """
  Fisheye <-> equirectangular projection engine for one lens circle.

  Two traversal modes share the same per-pixel mapping:
  - 'extract': the equirectangular output is floor(2r) x floor(2r)/2 and the
    lens rotation is applied (dual-fisheye extraction)
  - 'merge': a fixed 1920x1080 equirectangular canvas without the rotation
    term (interactive single circle merge)

  Projection maps are generated once per parameter set and kept in a
  CacheManager, so projecting several frames with the same circle only costs
  the final gather.
  """

  def __init__(self, lens_params: LensParams, use_vectorized: bool = True,
               cache_manager: Optional[CacheManager] = None):
    """
    Parameters:
    - lens_params: LensParams describing the fisheye circle
    - use_vectorized: if True, use NumPy map generation; if False, use the per-pixel reference loop
    - cache_manager: Optional shared cache manager. If None, creates a new one.
    """
    lens_params.validate()
    self.lens_params = lens_params
    self.use_vectorized = use_vectorized
    self.cache_manager = cache_manager if cache_manager is not None else CacheManager()

    self.center_x = float(lens_params.center_x)
    self.center_y = float(lens_params.center_y)
    self.radius = float(lens_params.radius)
    self.aperture = float(lens_params.aperture)
    self.rotation = float(lens_params.rotation)

  def _resolve_output_size(self, mode: str, output_width: Optional[int],
                           output_height: Optional[int]) -> Tuple[int, int]:
    if mode == MODE_EXTRACT:
      default_size = self.lens_params.get_equirect_size()
    elif mode == MODE_MERGE:
      default_size = MERGE_OUTPUT_SIZE
    else:
      raise ValueError(f"Unknown projection mode: {mode}")

    width = default_size[0] if output_width is None else int(output_width)
    height = default_size[1] if output_height is None else int(output_height)
    return width, height

  def _mode_rotation(self, mode: str) -> float:
    return self.rotation if mode == MODE_EXTRACT else 0.0

  def _generate_cache_key(self, mode: str, output_width: int, output_height: int,
                          source_width: int, source_height: int) -> str:
    """
    Generate a unique cache key; the mode name is the key prefix.

    Circle and angles are written as exact float reprs, since circles a
    fraction of a pixel apart still produce different maps.
    """
    generator = 'vectorized' if self.use_vectorized else 'reference'
    return (f"{mode}_{output_width}x{output_height}_src{source_width}x{source_height}"
            f"_c{self.center_x!r},{self.center_y!r}_r{self.radius!r}"
            f"_ap{self.aperture!r}_rot{self._mode_rotation(mode)!r}_{generator}")

  def _generate_projection_maps(self, output_width: int, output_height: int,
                                source_width: int, source_height: int,
                                rotation: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Dispatch to the vectorized or reference map generator.

    Returns:
    - map_x, map_y: int32 source coordinates per output pixel, -1 where rejected
    """
    if output_width <= 0 or output_height <= 0:
      empty = np.full((max(output_height, 0), max(output_width, 0)), -1, dtype=np.int32)
      return empty, empty.copy()

    if self.use_vectorized:
      print("Using vectorized (fast) map generation")
      return self._generate_projection_maps_vectorized(output_width, output_height,
                                                       source_width, source_height, rotation)
    else:
      print("Using reference (slow but exact per-pixel) map generation")
      return self._generate_projection_maps_reference(output_width, output_height,
                                                      source_width, source_height, rotation)

  def _generate_projection_maps_reference(self, output_width: int, output_height: int,
                                          source_width: int, source_height: int,
                                          rotation: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Reference implementation: walk every destination pixel with scalar math.
    """
    start_time = time.time()

    map_x = np.full((output_height, output_width), -1, dtype=np.int32)
    map_y = np.full((output_height, output_width), -1, dtype=np.int32)

    print(f"Generating equirectangular maps: {output_width}x{output_height} from {source_width}x{source_height}")
    print(f"Circle: center=({self.center_x:.1f}, {self.center_y:.1f}), radius={self.radius:.1f}")
    print(f"Aperture: {np.degrees(self.aperture):.1f}°, rotation: {np.degrees(rotation):.1f}°")

    for row in range(output_height):
      for col in range(output_width):
        sample = equirect_pixel_to_fisheye(col, row, output_width, output_height,
                                           self.center_x, self.center_y, self.radius,
                                           self.aperture, rotation,
                                           source_size=(source_width, source_height))
        if sample is None:
          continue

        map_x[row, col] = sample[0]
        map_y[row, col] = sample[1]

    map_generation_time = time.time() - start_time
    print(f"\033[33mReference map generation processing time: {map_generation_time:.4f} seconds\033[0m")

    return map_x, map_y

  def _process_row_chunk(self, row_start: int, row_end: int, output_width: int, output_height: int,
                         source_width: int, source_height: int,
                         rotation: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Compute the maps for rows [row_start, row_end).

    Returns:
    - Tuple of (map_x_chunk, map_y_chunk, valid_mask_chunk)
    """
    chunk_height = row_end - row_start

    col_coords, row_coords = np.meshgrid(
      np.arange(output_width, dtype=np.float64),
      np.arange(row_start, row_end, dtype=np.float64)
    )

    half_width = output_width / 2.0
    half_height = output_height / 2.0
    equirect_x = -(col_coords - half_width) / half_width
    equirect_y = -(row_coords - half_height) / half_height

    longitude = equirect_x * np.pi
    latitude = equirect_y * np.pi / 2

    cos_lat = np.cos(latitude)
    p_x = cos_lat * np.cos(longitude)
    p_y = cos_lat * np.sin(longitude)
    p_z = np.sin(latitude)

    r = 2 * np.arctan2(np.sqrt(p_x * p_x + p_z * p_z), p_y) / self.aperture
    theta = np.arctan2(p_z, p_x)
    unit_x = r * np.cos(theta)
    unit_y = r * np.sin(theta)

    valid_mask = (np.abs(unit_x) <= 1) & (np.abs(unit_y) <= 1)

    cos_rot = math.cos(rotation)
    sin_rot = math.sin(rotation)
    rotated_x = unit_x * cos_rot - unit_y * sin_rot
    rotated_y = unit_x * sin_rot + unit_y * cos_rot

    src_x = np.floor(self.center_x + rotated_x * self.radius)
    src_y = np.floor(self.center_y - rotated_y * self.radius)

    valid_mask &= (src_x >= 0) & (src_x < source_width) & (src_y >= 0) & (src_y < source_height)

    map_x_chunk = np.full((chunk_height, output_width), -1, dtype=np.int32)
    map_y_chunk = np.full((chunk_height, output_width), -1, dtype=np.int32)
    map_x_chunk[valid_mask] = src_x[valid_mask].astype(np.int32)
    map_y_chunk[valid_mask] = src_y[valid_mask].astype(np.int32)

    return map_x_chunk, map_y_chunk, valid_mask

  def _generate_projection_maps_vectorized(self, output_width: int, output_height: int,
                                           source_width: int, source_height: int,
                                           rotation: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Parallel vectorized implementation: NumPy array math over row chunks,
    chunks processed by a thread pool. Rows are independent, so chunks can
    be computed in any order.
    """
    start_time = time.time()

    num_cores = min(multiprocessing.cpu_count(), 8)  # Cap at 8 threads to avoid overhead
    min_chunk_size = 32
    chunk_size = max(min_chunk_size, output_height // (num_cores * 2))

    print(f"Generating equirectangular maps: {output_width}x{output_height} from {source_width}x{source_height}")
    print(f"Circle: center=({self.center_x:.1f}, {self.center_y:.1f}), radius={self.radius:.1f}")
    print(f"Aperture: {np.degrees(self.aperture):.1f}°, rotation: {np.degrees(rotation):.1f}°")

    map_x = np.full((output_height, output_width), -1, dtype=np.int32)
    map_y = np.full((output_height, output_width), -1, dtype=np.int32)

    if output_height < 128 or output_width < 128:
      print("Using single-threaded processing for small image")
      map_x_chunk, map_y_chunk, _ = self._process_row_chunk(
        0, output_height, output_width, output_height,
        source_width, source_height, rotation
      )
      map_x[:] = map_x_chunk
      map_y[:] = map_y_chunk
    else:
      print(f"Using {num_cores} threads with chunk size {chunk_size} rows")
      with ThreadPoolExecutor(max_workers=num_cores) as executor:
        futures = []
        row_ranges = []

        for row_start in range(0, output_height, chunk_size):
          row_end = min(row_start + chunk_size, output_height)
          row_ranges.append((row_start, row_end))
          futures.append(executor.submit(
            self._process_row_chunk,
            row_start, row_end, output_width, output_height,
            source_width, source_height, rotation
          ))

        for future, (row_start, row_end) in zip(futures, row_ranges):
          map_x_chunk, map_y_chunk, _ = future.result()
          map_x[row_start:row_end] = map_x_chunk
          map_y[row_start:row_end] = map_y_chunk

    map_generation_time = time.time() - start_time
    print(f"\033[33mParallel vectorized map generation processing time: {map_generation_time:.4f} seconds\033[0m")

    return map_x, map_y

  def get_projection_maps(self, source_width: int, source_height: int, mode: str = MODE_EXTRACT,
                          output_width: Optional[int] = None,
                          output_height: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Get projection maps with caching.

    Parameters:
    - source_width, source_height: size of the fisheye source image
    - mode: 'extract' or 'merge'
    - output_width, output_height: override the mode's default canvas size

    Returns:
    - map_x, map_y: int32 source coordinates per output pixel, -1 where rejected
    """
    output_width, output_height = self._resolve_output_size(mode, output_width, output_height)
    cache_key = self._generate_cache_key(mode, output_width, output_height, source_width, source_height)

    cached_maps = self.cache_manager.get(cache_key)
    if cached_maps is not None:
      print(f"Using cached projection maps: {cache_key}")
      return cached_maps

    map_x, map_y = self._generate_projection_maps(output_width, output_height,
                                                  source_width, source_height,
                                                  self._mode_rotation(mode))

    if self.cache_manager.put(cache_key, map_x, map_y):
      print(f"Cached projection maps: {cache_key}")

    return map_x, map_y

  def project(self, input_img: np.ndarray, mode: str = MODE_EXTRACT,
              output_width: Optional[int] = None, output_height: Optional[int] = None,
              background: Sequence[int] = TRANSPARENT) -> np.ndarray:
    """
    Project the fisheye circle of input_img onto a new equirectangular buffer.

    Parameters:
    - input_img: source image as numpy array; it is only read
    - mode: 'extract' or 'merge'
    - output_width, output_height: override the mode's default canvas size
    - background: value of pixels that sample nothing

    Returns:
    - equirectangular image buffer
    """
    if input_img is None:
      raise ValueError("Input image is None")

    source_height, source_width = input_img.shape[:2]
    map_x, map_y = self.get_projection_maps(source_width, source_height, mode,
                                            output_width, output_height)

    self.cache_manager.print_status()

    return apply_equirect_projection_maps(input_img, map_x, map_y, background)

  def extract(self, input_img: np.ndarray, background: Sequence[int] = TRANSPARENT) -> np.ndarray:
    """Fisheye to equirectangular over a floor(2r) x floor(2r)/2 canvas, rotation applied."""
    return self.project(input_img, MODE_EXTRACT, background=background)

  def merge(self, input_img: np.ndarray, output_size: Tuple[int, int] = MERGE_OUTPUT_SIZE,
            background: Sequence[int] = TRANSPARENT) -> np.ndarray:
    """Fisheye circle sampled onto a fixed size equirectangular canvas, no rotation."""
    return self.project(input_img, MODE_MERGE, output_size[0], output_size[1], background)

  def clear_cache(self):
    """Clear all cached projection maps."""
    self.cache_manager.clear()
    print("Projection map cache cleared")

  def get_cache_info(self) -> Dict[str, int]:
    return self.cache_manager.get_info()

  def remove_cached_projection(self, source_width: int, source_height: int, mode: str = MODE_EXTRACT,
                               output_width: Optional[int] = None, output_height: Optional[int] = None):
    """Remove a specific projection from cache."""
    output_width, output_height = self._resolve_output_size(mode, output_width, output_height)
    cache_key = self._generate_cache_key(mode, output_width, output_height, source_width, source_height)
    if self.cache_manager.remove(cache_key):
      print(f"Removed cached projection: {cache_key}")
    else:
      print(f"Projection not in cache: {cache_key}")


def project_fisheye_to_equirect(source: np.ndarray, center: Tuple[float, float], radius: float,
                                aperture: float, rotation: float = 0.0,
                                background: Sequence[int] = TRANSPARENT,
                                use_vectorized: bool = True) -> Optional[np.ndarray]:
  """
  Extract one fisheye circle into a floor(2r) x floor(2r)/2 equirectangular image.

  Parameters:
  - source: fisheye image buffer
  - center: (x, y) circle center in source pixels
  - radius: circle radius in source pixels
  - aperture: lens field of view in radians
  - rotation: lens mounting rotation in radians

  Returns:
  - equirectangular buffer, or None when the circle is too small to project
  """
  if source is None:
    raise ValueError("Input image is None")

  lens_params = LensParams(center_x=center[0], center_y=center[1], radius=radius,
                           aperture=aperture, rotation=rotation)
  output_width, output_height = lens_params.get_equirect_size() if lens_params.is_eligible() else (0, 0)
  if output_width == 0 or output_height == 0:
    print(f"Circle radius {radius} is not eligible for projection")
    return None

  projector = EquirectProjection(lens_params, use_vectorized=use_vectorized)
  return projector.extract(source, background=background)


def project_equirect_from_fisheye(source: np.ndarray, center: Tuple[float, float], radius: float,
                                  aperture: float, output_size: Tuple[int, int] = MERGE_OUTPUT_SIZE,
                                  background: Sequence[int] = TRANSPARENT,
                                  use_vectorized: bool = True) -> np.ndarray:
  """
  Sample one fisheye circle onto a fixed size (default 1920x1080)
  equirectangular canvas, without a companion hemisphere.
  """
  if source is None:
    raise ValueError("Input image is None")

  lens_params = LensParams(center_x=center[0], center_y=center[1], radius=radius,
                           aperture=aperture, rotation=0.0)
  projector = EquirectProjection(lens_params, use_vectorized=use_vectorized)
  return projector.merge(source, output_size=output_size, background=background)

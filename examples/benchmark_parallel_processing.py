"""
Benchmark script comparing the reference (per-pixel loop) and the parallel
vectorized projection map generators, and the sphere mesh builder.
"""

import sys
import os
import time
import numpy as np

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fisheye_equirect.lens_params import LensParams, APERTURE_210_DEG
from fisheye_equirect.equirect_projection import EquirectProjection
from fisheye_equirect.sphere_mesh import SphereMesh

def benchmark_projection_performance():
  """Benchmark map generation for growing circle radii."""

  print("=" * 60)
  print("EQUIRECTANGULAR MAP GENERATION BENCHMARK")
  print("=" * 60)

  test_radii = [
    (64, "Small"),
    (240, "Medium"),
    (480, "Large"),
    (960, "Very Large")
  ]

  for radius, size_name in test_radii:
    source_size = int(4 * radius)
    lens = LensParams(center_x=radius, center_y=radius, radius=radius,
                      aperture=APERTURE_210_DEG, rotation=np.pi / 2)
    print(f"\n{size_name} circle: radius {radius}")
    print("-" * 40)

    vectorized = EquirectProjection(lens, use_vectorized=True)
    start_time = time.time()
    map_x, map_y = vectorized.get_projection_maps(source_size, source_size)
    vectorized_time = time.time() - start_time

    total_pixels = map_x.size
    print(f"✓ Vectorized time: {vectorized_time:.4f} seconds")
    print(f"✓ Pixels processed: {total_pixels:,}")
    print(f"✓ Performance: {total_pixels / max(vectorized_time, 1e-9):,.0f} pixels/second")
    print(f"✓ Memory usage: {(map_x.nbytes + map_y.nbytes) / 1024 / 1024:.1f} MB")

    # The reference loop is too slow for the big canvases
    if radius <= 240:
      reference = EquirectProjection(lens, use_vectorized=False)
      start_time = time.time()
      ref_x, ref_y = reference.get_projection_maps(source_size, source_size)
      reference_time = time.time() - start_time
      mismatches = np.count_nonzero((ref_x != map_x) | (ref_y != map_y))
      print(f"✓ Reference time: {reference_time:.4f} seconds "
            f"(speedup {reference_time / max(vectorized_time, 1e-9):.1f}x)")
      print(f"✓ Mismatching pixels: {mismatches}")

    start_time = time.time()
    vectorized.get_projection_maps(source_size, source_size)
    print(f"✓ Cache hit time: {time.time() - start_time:.6f} seconds")

  print("\n" + "=" * 60)
  print("SPHERE MESH BENCHMARK")
  print("=" * 60)

  for subdivisions in (5, 6, 7):
    start_time = time.time()
    mesh = SphereMesh(2.0, subdivisions)
    print(f"✓ Depth {subdivisions}: {mesh.vert_count:,} vertices in {time.time() - start_time:.4f} seconds")

if __name__ == "__main__":
  benchmark_projection_performance()

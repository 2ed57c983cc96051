import os
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
from fisheye_equirect.lens_params import parse_projection_config, APERTURE_202_DEG, LensParams
from fisheye_equirect.image_buffer import load_image, save_image
from fisheye_equirect.equirect_projection import EquirectProjection
from fisheye_equirect.dual_fisheye import merge_dual_fisheye
from fisheye_equirect.cache_manager import CacheManager

def create_dual_fisheye_panorama():
  """
  Demonstrate merging a dual-fisheye frame into an equirectangular panorama.
  """
  config = parse_projection_config("config/dual_fisheye.yaml")
  left_lens = config['lenses']['left']
  right_lens = config['lenses']['right']

  dual_img = load_image("data/dual_fisheye.jpg")
  os.makedirs("output/equirect", exist_ok=True)

  # One cache shared by every projector below
  cache = CacheManager(max_memory_mb=256.0)

  print("\n1. Merging both hemispheres...")
  result = merge_dual_fisheye(dual_img, left_lens, right_lens,
                              background=config['background'],
                              use_vectorized=config['use_vectorized'],
                              cache_manager=cache)
  save_image("output/equirect/left.png", result.left)
  save_image("output/equirect/right.png", result.right)
  save_image("output/equirect/merged.jpg", result.merged)

  print("\n2. Same frame with the exact 202 degree aperture...")
  left_202 = LensParams(left_lens.center_x, left_lens.center_y, left_lens.radius,
                        APERTURE_202_DEG, left_lens.rotation, name='left_202')
  right_202 = LensParams(right_lens.center_x, right_lens.center_y, right_lens.radius,
                         APERTURE_202_DEG, right_lens.rotation, name='right_202')
  result_202 = merge_dual_fisheye(dual_img, left_202, right_202, cache_manager=cache)
  save_image("output/equirect/merged_202.jpg", result_202.merged)

  print("\n3. Single circle on the fixed 1920x1080 merge canvas...")
  projector = EquirectProjection(left_lens, cache_manager=cache)
  canvas = projector.merge(dual_img, output_size=config['mode_b_size'])
  save_image("output/equirect/left_canvas.png", canvas)

  print("\n4. Repeating the merge - maps come from the cache...")
  result_cached = merge_dual_fisheye(dual_img, left_lens, right_lens,
                                     background=config['background'],
                                     use_vectorized=config['use_vectorized'],
                                     cache_manager=cache)
  if np.array_equal(result.merged, result_cached.merged):
    print("✓ Cache working correctly - identical results from cached projection")
  else:
    print("✗ Cache issue - results differ")

  cache.print_status()

if __name__ == "__main__":
  create_dual_fisheye_panorama()

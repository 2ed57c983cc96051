"""
Fisheye to Equirectangular Core Modules

This package contains the core algorithms for fisheye panorama processing:
- Lens circle parameters and YAML configuration
- Fisheye <-> equirectangular projection (extract and merge modes)
- Dual-fisheye hemisphere merging
- Subdivided sphere mesh for 3D panorama preview
"""

from .lens_params import (
  LensParams, CircleSelection, APERTURE_210_DEG, APERTURE_202_DEG,
  parse_lens_params, parse_lens_params_dict, parse_projection_config
)
from .cache_manager import CacheManager
from .image_buffer import create_image_buffer, to_bgra, load_image, save_image, scale_for_texture
from .equirect_projection import (
  EquirectProjection, apply_equirect_projection_maps,
  equirect_pixel_to_fisheye, fisheye_to_equirect_pixel,
  project_fisheye_to_equirect, project_equirect_from_fisheye
)
from .dual_fisheye import DualFisheyeResult, default_dual_fisheye_lenses, composite_hemispheres, merge_dual_fisheye
from .sphere_mesh import SphereMesh, SubdivisionEdgeCache, build_sphere

__all__ = [
  'LensParams',
  'CircleSelection',
  'APERTURE_210_DEG',
  'APERTURE_202_DEG',
  'parse_lens_params',
  'parse_lens_params_dict',
  'parse_projection_config',
  'CacheManager',
  'create_image_buffer',
  'to_bgra',
  'load_image',
  'save_image',
  'scale_for_texture',
  'EquirectProjection',
  'apply_equirect_projection_maps',
  'equirect_pixel_to_fisheye',
  'fisheye_to_equirect_pixel',
  'project_fisheye_to_equirect',
  'project_equirect_from_fisheye',
  'DualFisheyeResult',
  'default_dual_fisheye_lenses',
  'composite_hemispheres',
  'merge_dual_fisheye',
  'SphereMesh',
  'SubdivisionEdgeCache',
  'build_sphere'
]

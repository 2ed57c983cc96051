import os
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
from fisheye_equirect.sphere_mesh import build_sphere, SphereMesh
from fisheye_equirect.image_buffer import load_image, scale_for_texture

def describe_preview_sphere():
  """
  Build the preview sphere and print what a renderer would upload.
  """
  for subdivisions in range(0, 8):
    mesh = SphereMesh(2.0, subdivisions)
    print(f"  depth {subdivisions}: {mesh.vert_count} vertices, {mesh.index_count // 3} triangles")

  mesh = build_sphere(2.0, 7)
  positions, uvs, indices = mesh.get_buffers()
  print(f"\nPosition buffer: {positions.nbytes / 1024:.1f} KB ({positions.strides[0]} byte stride)")
  print(f"UV buffer: {uvs.nbytes / 1024:.1f} KB ({uvs.strides[0]} byte stride)")
  print(f"Index buffer: {indices.nbytes / 1024:.1f} KB ({indices.dtype})")

  lengths = np.linalg.norm(mesh.get_verts(), axis=1)
  print(f"Vertex distance from center: min={lengths.min():.6f}, max={lengths.max():.6f}")

  if os.path.exists("output/equirect/merged.jpg"):
    texture = scale_for_texture(load_image("output/equirect/merged.jpg"), 8192)
    print(f"Texture ready: {texture.shape[1]}x{texture.shape[0]}")

if __name__ == "__main__":
  describe_preview_sphere()

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

import time
from typing import Dict, List, Tuple

import numpy as np

OCTAHEDRON_VERTICES = [
  (0.0, 1.0, 0.0),
  (0.0, 0.0, -1.0),
  (1.0, 0.0, 0.0),
  (0.0, 0.0, 1.0),
  (-1.0, 0.0, 0.0),
  (0.0, -1.0, 0.0)
]

OCTAHEDRON_INDICES = [
  0, 1, 2,
  0, 2, 3,
  0, 3, 4,
  0, 4, 1,
  5, 1, 4,
  5, 4, 3,
  5, 3, 2,
  5, 2, 1
]

# float32 machine epsilon
SEAM_EPSILON = 1.192092896e-7

Vec3 = Tuple[float, float, float]


class SubdivisionEdgeCache:
  """
  Midpoint lookup for one subdivision pass.

  Maps an undirected edge (pair of vertex indices, order ignored) to the index
  of the vertex created by bisecting it, so that two triangles sharing an edge
  get the very same midpoint vertex and the mesh has no cracks.
  """

  def __init__(self, vertex_positions: List[Vec3]):
    self._vertex_positions = vertex_positions
    self._edges: Dict[Tuple[int, int], int] = {}

  @staticmethod
  def edge_key(ind0: int, ind1: int) -> Tuple[int, int]:
    return (max(ind0, ind1), min(ind0, ind1))

  def divide_edge(self, ind0: int, ind1: int) -> int:
    """
    Return the index of the midpoint vertex of edge (ind0, ind1), creating it
    on first use. The midpoint is the plain average of both endpoints; it is
    not pushed out to the sphere here.
    """
    key = self.edge_key(ind0, ind1)
    new_index = self._edges.get(key)
    if new_index is not None:
      return new_index

    a = self._vertex_positions[ind0]
    b = self._vertex_positions[ind1]
    new_index = len(self._vertex_positions)
    self._vertex_positions.append(((a[0] + b[0]) * 0.5, (a[1] + b[1]) * 0.5, (a[2] + b[2]) * 0.5))
    self._edges[key] = new_index
    return new_index

  def clear(self) -> None:
    self._edges.clear()

  def __len__(self) -> int:
    return len(self._edges)

  def __contains__(self, edge: Tuple[int, int]) -> bool:
    return self.edge_key(*edge) in self._edges


def subdivide(indices: List[int], edge_cache: SubdivisionEdgeCache) -> List[int]:
  """
  Split every triangle of a flat index list into four.

  Each triangle (v0, v1, v2) becomes the corner triangles a, b, d and the
  center triangle c:

          v0
          *
         / \\
        / a \\
    m20*-----*m01
      / \\ c / \\
     / b \\ / d \\
    *-----*-----*
    v2   m12    v1
  """
  new_indices = []
  for j in range(0, len(indices), 3):
    ind0, ind1, ind2 = indices[j], indices[j + 1], indices[j + 2]

    ind01 = edge_cache.divide_edge(ind0, ind1)
    ind12 = edge_cache.divide_edge(ind1, ind2)
    ind20 = edge_cache.divide_edge(ind0, ind2)

    new_indices.extend((
      ind0, ind01, ind20,   # a
      ind20, ind12, ind2,   # b
      ind20, ind01, ind12,  # c
      ind01, ind1, ind12    # d
    ))
  return new_indices


def equirect_uvs(normals: np.ndarray) -> np.ndarray:
  """
  Equirectangular texture coordinates of unit sphere points.

  The +Z facing point maps to u = 0.5 and longitude wraps into [0, 1].
  """
  longitude = np.arctan2(normals[:, 0], -normals[:, 2])
  latitude = np.arcsin(np.clip(normals[:, 1], -1.0, 1.0))

  u = longitude / (2 * np.pi) + 0.5
  v = latitude / np.pi + 0.5
  return np.column_stack((u, 1.0 - v))


def fix_seam(vertices: np.ndarray, uvs: np.ndarray, triangles: np.ndarray,
             epsilon: float = SEAM_EPSILON) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
  """
  Duplicate prime meridian vertices so no triangle interpolates across u=0/u=1.

  Every vertex with x ~ 0 and u ~ 1 gets a twin with u = 0. Each triangle
  using the vertex is rotated so the vertex sits in slot 0; when slot 0 is more
  than half the texture width away from slot 1 or slot 2 in u, the triangle
  lies on the far side of the seam and is switched over to the twin.

  Pole vertices only go through this generic rule; their fan of triangles
  still samples a distorted strip of the texture.

  Parameters:
  - vertices: (N, 3) vertex positions
  - uvs: (N, 2) texture coordinates
  - triangles: (T, 3) vertex indices per triangle

  Returns:
  - new (vertices, uvs, triangles) arrays; the inputs are left untouched
  """
  pre_count = len(vertices)
  on_seam = (np.abs(vertices[:, 0]) <= epsilon) & (np.abs(uvs[:, 0] - 1.0) <= epsilon)
  seam_indices = np.nonzero(on_seam)[0]

  triangles = np.array(triangles, copy=True)
  new_vertices = np.concatenate((vertices, vertices[seam_indices]))
  new_uvs = np.concatenate((uvs, uvs[seam_indices]))
  new_uvs[pre_count:, 0] = 0.0
  u_values = new_uvs[:, 0]

  for offset, i in enumerate(seam_indices):
    new_index = pre_count + offset

    rows, slots = np.nonzero(triangles == i)
    if len(rows) == 0:
      continue

    # rotate left for slot 1 matches, right for slot 2 matches
    left = rows[slots == 1]
    triangles[left] = triangles[left][:, [1, 2, 0]]
    right = rows[slots == 2]
    triangles[right] = triangles[right][:, [2, 0, 1]]

    touched = triangles[rows]
    u0 = u_values[touched[:, 0]]
    spans_seam = ((np.abs(u0 - u_values[touched[:, 1]]) > 0.5) |
                  (np.abs(u0 - u_values[touched[:, 2]]) > 0.5))
    triangles[rows[spans_seam], 0] = new_index

  return new_vertices, new_uvs, triangles


class SphereMesh:
  """
  Subdivided octahedron sphere with equirectangular texture coordinates.

  Used to preview a panorama in 3D: positions, uvs and indices are uploaded
  as-is by the renderer. The mesh is built once in the constructor and never
  changes afterwards; accessors return copies.
  """

  def __init__(self, radius: float, subdivisions: int = 5, fix_seam_vertices: bool = True):
    """
    Build the mesh.

    Parameters:
    - radius: sphere radius, must be positive
    - subdivisions: number of 1-to-4 triangle splits of the base octahedron
    - fix_seam_vertices: duplicate prime meridian vertices after building
    """
    if radius <= 0:
      raise ValueError(f"Invalid sphere radius: {radius}")
    if subdivisions < 0:
      raise ValueError(f"Invalid subdivision count: {subdivisions}")

    self.radius = float(radius)
    self.subdivisions = int(subdivisions)

    start_time = time.time()

    vertex_positions = list(OCTAHEDRON_VERTICES)
    indices = list(OCTAHEDRON_INDICES)
    edge_cache = SubdivisionEdgeCache(vertex_positions)

    for _ in range(self.subdivisions):
      edge_cache.clear()
      indices = subdivide(indices, edge_cache)

    # normalize once after all passes
    positions = np.array(vertex_positions, dtype=np.float64)
    normals = positions / np.linalg.norm(positions, axis=1, keepdims=True)
    vertices = normals * self.radius
    uvs = equirect_uvs(normals)
    triangles = np.array(indices, dtype=np.int64).reshape(-1, 3)

    if fix_seam_vertices:
      vertices, uvs, triangles = fix_seam(vertices, uvs, triangles)

    self._vertices = vertices
    self._uvs = uvs
    self._triangles = triangles

    build_time = time.time() - start_time
    print(f"Built sphere mesh: radius={self.radius}, subdivisions={self.subdivisions}, "
          f"{self.vert_count} vertices, {len(self._triangles)} triangles")
    print(f"\033[33mSphere mesh build time: {build_time:.4f} seconds\033[0m")

  @property
  def vert_count(self) -> int:
    return len(self._vertices)

  @property
  def tex_coord_count(self) -> int:
    return len(self._uvs)

  @property
  def index_count(self) -> int:
    return self._triangles.size

  def get_verts(self) -> np.ndarray:
    return self._vertices.copy()

  def get_uvs(self) -> np.ndarray:
    return self._uvs.copy()

  def get_indices(self) -> np.ndarray:
    return self._triangles.reshape(-1).copy()

  def get_triangles(self) -> np.ndarray:
    return self._triangles.copy()

  def get_buffers(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Get the arrays in the layout a renderer uploads to GPU buffers.

    Returns:
    - positions: contiguous float32 (N, 3), 12 byte stride
    - uvs: contiguous float32 (N, 2), 8 byte stride
    - indices: contiguous flat uint32
    """
    return (np.ascontiguousarray(self._vertices, dtype=np.float32),
            np.ascontiguousarray(self._uvs, dtype=np.float32),
            np.ascontiguousarray(self._triangles.reshape(-1), dtype=np.uint32))

  def __repr__(self):
    return (f"SphereMesh(radius={self.radius}, subdivisions={self.subdivisions}, "
            f"vertices={self.vert_count}, indices={self.index_count})")


def build_sphere(radius: float, subdivisions: int) -> SphereMesh:
  """Build a seam-fixed preview sphere."""
  return SphereMesh(radius, subdivisions)

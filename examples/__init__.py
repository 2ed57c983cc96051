"""
Fisheye to Equirectangular Examples

This package contains example scripts demonstrating the usage of the projection and mesh modules:
- Dual-fisheye frame to equirectangular panorama
- Sphere mesh generation for the 3D panorama preview
- Map generation benchmarks (reference vs vectorized)
"""

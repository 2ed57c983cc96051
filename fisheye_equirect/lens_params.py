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

import numpy as np
import yaml

# Theta S style lens, 210 degrees rounded to four decimals
APERTURE_210_DEG = 3.6652
APERTURE_202_DEG = math.radians(202.0)


class CircleSelection:
  """
  Circular fisheye region picked interactively on the source image.

  The selection stays mutable while the user drags it around and is frozen
  into a LensParams object when a projection is requested.
  """

  def __init__(self, center_x=0.0, center_y=0.0, radius=0.0):
    self.center_x = float(center_x)
    self.center_y = float(center_y)
    self.radius = max(0.0, float(radius))

  def set_center(self, x, y):
    self.center_x = float(x)
    self.center_y = float(y)

  def set_radius(self, radius):
    self.radius = max(0.0, float(radius))

  def drag_to(self, x, y):
    """Resize the circle so its edge passes through the dragged point."""
    self.radius = math.hypot(x - self.center_x, y - self.center_y)

  def is_eligible(self):
    """A zero radius circle cannot be projected."""
    return self.radius > 0

  def __repr__(self):
    return f"CircleSelection(center=({self.center_x:.1f}, {self.center_y:.1f}), radius={self.radius:.1f})"


class LensParams:
  """
  Lens parameters for one circular equidistant fisheye image region.

  Holds the circle (center and radius in source pixels), the total aperture
  angle of the lens and the rotation needed to compensate for how the lens is
  mounted. Angles are stored in radians.
  """

  def __init__(self, center_x=None, center_y=None, radius=None,
               aperture=APERTURE_210_DEG, rotation=0.0, name=None):
    """
    Initialize lens parameters.

    Parameters:
    - center_x, center_y: circle center in source image pixels
    - radius: circle radius in source image pixels
    - aperture: total field of view of the lens in radians
    - rotation: lens mounting rotation in radians
    - name: optional identifier (e.g. 'left', 'right')
    """
    self.center_x = center_x
    self.center_y = center_y
    self.radius = radius
    self.aperture = aperture
    self.rotation = rotation
    self.name = name

  @classmethod
  def from_selection(cls, selection, aperture=APERTURE_210_DEG, rotation=0.0, name=None):
    """Freeze an interactive circle selection into lens parameters."""
    return cls(center_x=selection.center_x, center_y=selection.center_y,
               radius=selection.radius, aperture=aperture,
               rotation=rotation, name=name)

  def to_dict(self):
    return {
      'name': self.name,
      'center_x': self.center_x,
      'center_y': self.center_y,
      'radius': self.radius,
      'aperture': self.aperture,
      'rotation': self.rotation
    }

  def get_center(self):
    return (self.center_x, self.center_y)

  def get_equirect_size(self):
    """
    Get the natural equirectangular output size for this circle.

    Returns:
    Tuple (width, height) where width = floor(2 * radius), height = width // 2.
    """
    width = int(math.floor(2 * self.radius))
    return (width, width // 2)

  def is_eligible(self):
    return self.radius is not None and self.radius > 0

  def validate(self):
    """
    Validate lens parameters.

    Raises:
    ValueError if any parameter is missing or out of range.
    """
    if self.center_x is None or self.center_y is None or self.radius is None:
      raise ValueError(f"Incomplete lens circle: center=({self.center_x}, {self.center_y}), radius={self.radius}")

    if self.radius <= 0:
      raise ValueError(f"Invalid lens radius: {self.radius}")

    if not (0 < self.aperture <= 2 * np.pi):
      raise ValueError(f"Invalid aperture: {self.aperture} rad (expected 0 < aperture <= 2*pi)")

    if not np.isfinite(self.rotation):
      raise ValueError(f"Invalid rotation: {self.rotation}")

  def __str__(self):
    return (f"LensParams(name={self.name}, "
            f"center=({self.center_x:.1f}, {self.center_y:.1f}), radius={self.radius:.1f}, "
            f"aperture={np.degrees(self.aperture):.1f}°, rotation={np.degrees(self.rotation):.1f}°)")

  def __repr__(self):
    return self.__str__()


def _read_angle(data, key, default):
  """Read an angle given either in radians (key) or degrees (key_deg)."""
  if key in data:
    return float(data[key])
  if f"{key}_deg" in data:
    return math.radians(float(data[f"{key}_deg"]))
  return default


def _load_yaml(filename):
  try:
    with open(filename, 'r') as f:
      data = yaml.safe_load(f)
  except FileNotFoundError:
    raise FileNotFoundError(f"Lens parameters file not found: {filename}")
  except yaml.YAMLError as e:
    raise ValueError(f"Invalid YAML format in file '{filename}': {e}")

  if not isinstance(data, dict):
    raise ValueError(f"Expected a mapping at the top level of '{filename}'")
  return data


def _parse_lenses(data):
  try:
    lenses = data['lenses']
    if not lenses:
      raise ValueError("No lenses defined")

    result = {}
    for name, lens_data in lenses.items():
      lens_params = LensParams(
        center_x=float(lens_data['center_x']),
        center_y=float(lens_data['center_y']),
        radius=float(lens_data['radius']),
        aperture=_read_angle(lens_data, 'aperture', APERTURE_210_DEG),
        rotation=_read_angle(lens_data, 'rotation', 0.0),
        name=name
      )
      lens_params.validate()
      result[name] = lens_params

    return result

  except KeyError as e:
    raise ValueError(f"Missing required parameter in YAML file: {e}")
  except (TypeError, AttributeError) as e:
    raise ValueError(f"Invalid parameter format in YAML file: {e}")


def parse_lens_params(filename):
  """
  Parse lens parameters from a YAML file.

  Expected format:

    lenses:
      left:
        center_x: 480
        center_y: 480
        radius: 480
        aperture_deg: 210
        rotation_deg: 90

  Parameters:
  - filename: path to YAML lens parameters file

  Returns:
  Dictionary mapping lens name to LensParams.

  Raises:
  ValueError if file format is invalid or parameters are missing.
  FileNotFoundError if the file doesn't exist.
  """
  return _parse_lenses(_load_yaml(filename))


def parse_lens_params_dict(filename):
  """Parse lens parameters and return them as plain dictionaries."""
  return {name: lens.to_dict() for name, lens in parse_lens_params(filename).items()}


def parse_projection_config(filename):
  """
  Parse a full projection configuration: lenses plus the optional output section.

  Returns:
  Dictionary with keys 'lenses', 'background', 'mode_b_size' and 'use_vectorized'.
  """
  data = _load_yaml(filename)
  lenses = _parse_lenses(data)
  output = data.get('output') or {}

  try:
    background = tuple(int(c) for c in output.get('background', (0, 0, 0, 0)))
    mode_b_size = tuple(int(s) for s in output.get('mode_b_size', (1920, 1080)))
  except (TypeError, ValueError) as e:
    raise ValueError(f"Invalid output section in YAML file: {e}")

  if len(background) != 4 or any(c < 0 or c > 255 for c in background):
    raise ValueError(f"Background must be four BGRA values in 0..255, got {background}")
  if len(mode_b_size) != 2 or min(mode_b_size) <= 0:
    raise ValueError(f"Invalid mode_b_size: {mode_b_size}")

  return {
    'lenses': lenses,
    'background': background,
    'mode_b_size': mode_b_size,
    'use_vectorized': bool(output.get('use_vectorized', True))
  }

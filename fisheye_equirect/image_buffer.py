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

import cv2
import numpy as np
from typing import Sequence, Tuple


def create_image_buffer(width: int, height: int, background: Sequence[int] = (0, 0, 0, 0),
                        channels: int = 4, dtype=np.uint8) -> np.ndarray:
  """
  Allocate a fresh image buffer filled with a background color.

  Parameters:
  - width, height: buffer dimensions in pixels
  - background: per-channel fill value (B, G, R, A for 4-channel buffers)
  - channels: number of channels per pixel

  Returns:
  - numpy array of shape (height, width, channels)
  """
  if len(background) != channels:
    raise ValueError(f"Background {tuple(background)} does not match {channels} channels")

  buffer = np.empty((height, width, channels), dtype=dtype)
  buffer[:] = np.asarray(background, dtype=dtype)
  return buffer


def to_bgra(img: np.ndarray) -> np.ndarray:
  """
  Convert a grayscale, BGR or BGRA image to a new 4-channel BGRA buffer.
  """
  if img is None:
    raise ValueError("Input image is None")

  if img.ndim == 2:
    return cv2.cvtColor(img, cv2.COLOR_GRAY2BGRA)
  if img.shape[2] == 3:
    return cv2.cvtColor(img, cv2.COLOR_BGR2BGRA)
  if img.shape[2] == 4:
    return img.copy()

  raise ValueError(f"Unsupported number of channels: {img.shape[2]}")


def load_image(path: str) -> np.ndarray:
  """Load an image from disk as a BGRA buffer."""
  img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
  if img is None:
    raise ValueError(f"Could not load image: {path}")
  return to_bgra(img)


def save_image(path: str, img: np.ndarray) -> None:
  """Encode an image buffer to disk; the format follows the file extension."""
  if img is None:
    raise ValueError("Cannot save an empty image")

  # JPEG has no alpha channel
  if path.lower().endswith(('.jpg', '.jpeg')) and img.ndim == 3 and img.shape[2] == 4:
    img = cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)

  if not cv2.imwrite(path, img):
    raise ValueError(f"Could not write image: {path}")
  print(f"Saved: {path}")


def scale_for_texture(img: np.ndarray, max_texture_size: int) -> np.ndarray:
  """
  Shrink an equirectangular image so it fits into a GPU texture.

  Images not wider than max_texture_size are returned unchanged. Wider
  images are resized with bicubic interpolation to max_texture_size x
  max_texture_size / 2, the 2:1 shape of an equirectangular panorama.
  """
  height, width = img.shape[:2]
  if width <= max_texture_size:
    return img

  target_size: Tuple[int, int] = (max_texture_size, max_texture_size // 2)
  print(f"Scaling texture from {width}x{height} to {target_size[0]}x{target_size[1]}")
  return cv2.resize(img, target_size, interpolation=cv2.INTER_CUBIC)

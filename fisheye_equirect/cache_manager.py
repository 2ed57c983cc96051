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

import threading
import time
from collections import OrderedDict
from typing import Dict, Tuple, Optional, Any

import numpy as np

MB = 1024 * 1024

# Key prefixes written by EquirectProjection._generate_cache_key
PROJECTION_MODES = ('extract', 'merge')


def _projection_mode(cache_key: str) -> str:
  """Projection mode encoded as the key prefix, 'other' for foreign keys."""
  mode = cache_key.split('_', 1)[0]
  return mode if mode in PROJECTION_MODES else 'other'


def _maps_nbytes(map_x: np.ndarray, map_y: np.ndarray) -> int:
  return map_x.nbytes + map_y.nbytes


class CacheManager:
  """
  Thread-safe LRU cache for fisheye/equirectangular projection maps.

  Map generation is the expensive part of a projection, while applying the
  maps is a single gather. This cache keeps generated (map_x, map_y) pairs so
  that repeated projections with the same circle, aperture, rotation and
  image sizes skip the per-pixel trigonometry. The two hemispheres of a dual
  fisheye frame typically share one instance.

  Memory use is tracked incrementally in bytes; the optional limit is given
  in MB and enforced by evicting the least recently used maps first.
  """

  def __init__(self, max_memory_mb: Optional[float] = None):
    """
    Parameters:
    - max_memory_mb: Optional maximum memory usage in MB. If None, no limit is enforced.
    """
    self._entries: "OrderedDict[str, Tuple[np.ndarray, np.ndarray]]" = OrderedDict()
    self._max_memory_mb = max_memory_mb
    self._memory_bytes = 0
    self._lock = threading.RLock()
    self._access_count = 0
    self._hit_count = 0
    self._eviction_count = 0
    self._last_access: Dict[str, float] = {}

  @property
  def max_memory_mb(self) -> Optional[float]:
    return self._max_memory_mb

  def _limit_bytes(self) -> Optional[float]:
    return None if self._max_memory_mb is None else self._max_memory_mb * MB

  def _drop(self, cache_key: str) -> int:
    map_x, map_y = self._entries.pop(cache_key)
    self._last_access.pop(cache_key, None)
    freed = _maps_nbytes(map_x, map_y)
    self._memory_bytes -= freed
    return freed

  def _make_room(self, needed_bytes: int) -> bool:
    """Evict least recently used maps until needed_bytes fit under the limit."""
    limit = self._limit_bytes()
    if limit is None:
      return True

    while self._entries and self._memory_bytes + needed_bytes > limit:
      lru_key = next(iter(self._entries))
      freed = self._drop(lru_key)
      self._eviction_count += 1
      print(f"LRU evicted: {lru_key} (freed {freed / MB:.1f} MB)")

    return self._memory_bytes + needed_bytes <= limit

  def get(self, cache_key: str) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    Look up projection maps and mark them as most recently used.

    Returns:
    - Tuple of (map_x, map_y) if found, None otherwise
    """
    with self._lock:
      self._access_count += 1
      maps = self._entries.get(cache_key)
      if maps is None:
        return None

      self._entries.move_to_end(cache_key)
      self._last_access[cache_key] = time.time()
      self._hit_count += 1
      return maps

  def put(self, cache_key: str, map_x: np.ndarray, map_y: np.ndarray) -> bool:
    """
    Store copies of projection maps; replacing a key keeps a single entry.

    Returns:
    - True if the maps were stored, False if they do not fit the memory limit
    """
    with self._lock:
      if cache_key in self._entries:
        self._drop(cache_key)

      needed_bytes = _maps_nbytes(map_x, map_y)
      if not self._make_room(needed_bytes):
        print(f"Warning: {cache_key} ({needed_bytes / MB:.1f} MB) exceeds the "
              f"{self._max_memory_mb:.1f} MB cache limit, not cached")
        return False

      self._entries[cache_key] = (map_x.copy(), map_y.copy())
      self._last_access[cache_key] = time.time()
      self._memory_bytes += needed_bytes
      return True

  def remove(self, cache_key: str) -> bool:
    with self._lock:
      if cache_key not in self._entries:
        return False
      self._drop(cache_key)
      return True

  def clear(self) -> None:
    """Clear all cached projection maps."""
    with self._lock:
      self._entries.clear()
      self._last_access.clear()
      self._memory_bytes = 0

  def contains(self, cache_key: str) -> bool:
    with self._lock:
      return cache_key in self._entries

  def get_mode_usage(self) -> Dict[str, Dict[str, float]]:
    """
    Entry count and memory per projection mode.

    Returns:
    - {'extract': {'count': n, 'memory_mb': mb}, 'merge': {...}} plus an
      'other' bucket when keys without a mode prefix were stored
    """
    with self._lock:
      usage = {mode: {'count': 0, 'memory_mb': 0.0} for mode in PROJECTION_MODES}
      for key, (map_x, map_y) in self._entries.items():
        bucket = usage.setdefault(_projection_mode(key), {'count': 0, 'memory_mb': 0.0})
        bucket['count'] += 1
        bucket['memory_mb'] += _maps_nbytes(map_x, map_y) / MB
      return usage

  def get_info(self) -> Dict[str, Any]:
    """
    Get cache statistics.

    Returns:
    - Dictionary with entry counts per projection mode, memory usage and LRU counters
    """
    with self._lock:
      usage = self.get_mode_usage()
      return {
        'total_cached_projections': len(self._entries),
        'extract_projections': usage['extract']['count'],
        'merge_projections': usage['merge']['count'],
        'mode_usage': usage,
        'memory_usage_bytes': self._memory_bytes,
        'memory_usage_mb': self._memory_bytes / MB,
        'max_memory_mb': self._max_memory_mb,
        'memory_limit_enabled': self._max_memory_mb is not None,
        'total_accesses': self._access_count,
        'total_hits': self._hit_count,
        'total_evictions': self._eviction_count
      }

  def print_status(self) -> None:
    """Print current cache status in a human-readable format."""
    info = self.get_info()
    print(f"Cache status: {info['total_cached_projections']} projections "
          f"({info['extract_projections']} extract, {info['merge_projections']} merge), "
          f"{info['memory_usage_mb']:.1f} MB")

    if info['memory_limit_enabled']:
      usage_percent = (info['memory_usage_mb'] / info['max_memory_mb']) * 100
      print(f"Cache memory usage: {usage_percent:.1f}% of {info['max_memory_mb']:.1f} MB limit")

  def get_cache_keys(self, prefix: Optional[str] = None) -> list:
    """
    Get all cache keys, optionally filtered by prefix ('extract_' or 'merge_').
    """
    with self._lock:
      return [key for key in self._entries if prefix is None or key.startswith(prefix)]

  def get_lru_order(self) -> list:
    """Get cache keys ordered from least to most recently used."""
    with self._lock:
      return list(self._entries)

  def get_idle_seconds(self) -> Dict[str, float]:
    """Seconds since each entry was stored or last read."""
    with self._lock:
      now = time.time()
      return {key: now - self._last_access[key] for key in self._entries}

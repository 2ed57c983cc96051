"""Tests for the shared LRU cache of projection maps."""

import numpy as np

from fisheye_equirect.cache_manager import CacheManager
from fisheye_equirect.equirect_projection import EquirectProjection
from fisheye_equirect.lens_params import LensParams


def _maps(fill=0):
  # 512 KB per map, 1 MB per entry
  map_x = np.full((512, 256), fill, dtype=np.int32)
  map_y = np.full((512, 256), fill, dtype=np.int32)
  return map_x, map_y


def test_put_and_get():
  cache = CacheManager()
  map_x, map_y = _maps(3)
  assert cache.put('extract_a', map_x, map_y)

  cached_x, cached_y = cache.get('extract_a')
  np.testing.assert_array_equal(cached_x, map_x)
  np.testing.assert_array_equal(cached_y, map_y)
  assert cache.contains('extract_a')
  assert cache.get('extract_missing') is None

  info = cache.get_info()
  assert info['total_accesses'] == 2
  assert info['total_hits'] == 1
  assert info['memory_usage_mb'] == 1.0
  assert not info['memory_limit_enabled']


def test_put_stores_copies():
  cache = CacheManager()
  map_x, map_y = _maps(1)
  cache.put('extract_a', map_x, map_y)
  map_x[:] = 7

  cached_x, _ = cache.get('extract_a')
  assert cached_x.max() == 1


def test_cache_key_prefixes():
  cache = CacheManager()
  cache.put('extract_a', *_maps())
  cache.put('extract_b', *_maps())
  cache.put('merge_a', *_maps())

  assert cache.get_cache_keys() == ['extract_a', 'extract_b', 'merge_a']
  assert cache.get_cache_keys(prefix='merge_') == ['merge_a']

  info = cache.get_info()
  assert info['total_cached_projections'] == 3
  assert info['extract_projections'] == 2
  assert info['merge_projections'] == 1


def test_cache_operations():
  cache = CacheManager()
  cache.put('extract_a', *_maps())
  cache.put('merge_a', *_maps())

  assert cache.remove('extract_a')
  assert not cache.remove('extract_a')
  assert cache.get_cache_keys() == ['merge_a']

  cache.clear()
  assert cache.get_info()['total_cached_projections'] == 0


def test_lru_eviction():
  cache = CacheManager(max_memory_mb=2.5)
  assert cache.max_memory_mb == 2.5

  cache.put('extract_first', *_maps())
  cache.put('extract_second', *_maps())
  assert cache.get_lru_order() == ['extract_first', 'extract_second']

  # touching the oldest entry makes the second one least recently used
  cache.get('extract_first')
  assert cache.get_lru_order() == ['extract_second', 'extract_first']

  cache.put('merge_third', *_maps())
  assert cache.get_lru_order() == ['extract_first', 'merge_third']

  info = cache.get_info()
  assert info['total_evictions'] == 1
  assert info['memory_limit_enabled']


def test_entry_larger_than_limit():
  cache = CacheManager(max_memory_mb=0.5)
  cache.put('extract_small', np.zeros(10, dtype=np.int32), np.zeros(10, dtype=np.int32))

  assert not cache.put('extract_big', *_maps())
  assert not cache.contains('extract_big')
  assert cache.get_info()['total_evictions'] == 1


def test_shared_between_projectors():
  shared_cache = CacheManager()
  left = EquirectProjection(LensParams(50, 50, 50), cache_manager=shared_cache)
  right = EquirectProjection(LensParams(150, 50, 50), cache_manager=shared_cache)

  left.get_projection_maps(200, 100)
  right.get_projection_maps(200, 100)
  right.get_projection_maps(200, 100, mode='merge', output_width=64, output_height=36)

  info = shared_cache.get_info()
  assert info['extract_projections'] == 2
  assert info['merge_projections'] == 1
  assert left.get_cache_info() == right.get_cache_info()


def test_print_status(capsys):
  cache = CacheManager(max_memory_mb=4.0)
  cache.put('extract_a', *_maps())
  cache.print_status()

  out = capsys.readouterr().out
  assert '1 projections (1 extract, 0 merge)' in out
  assert '25.0% of 4.0 MB limit' in out


def test_mode_usage():
  cache = CacheManager()
  cache.put('extract_a', *_maps())
  cache.put('extract_b', *_maps())
  cache.put('merge_a', *_maps())

  usage = cache.get_mode_usage()
  assert usage['extract'] == {'count': 2, 'memory_mb': 2.0}
  assert usage['merge'] == {'count': 1, 'memory_mb': 1.0}
  assert 'other' not in usage
  assert cache.get_info()['mode_usage'] == usage

  cache.put('thumbnail', *_maps())
  assert cache.get_mode_usage()['other']['count'] == 1


def test_replacing_entry_keeps_memory_accounting():
  cache = CacheManager()
  cache.put('extract_a', *_maps(1))
  cache.put('extract_a', *_maps(2))

  assert cache.get_info()['total_cached_projections'] == 1
  assert cache.get_info()['memory_usage_mb'] == 1.0
  assert cache.get('extract_a')[0].max() == 2

  cache.remove('extract_a')
  assert cache.get_info()['memory_usage_bytes'] == 0


def test_idle_seconds():
  cache = CacheManager()
  cache.put('extract_a', *_maps())
  cache.put('merge_a', *_maps())

  idle = cache.get_idle_seconds()
  assert set(idle) == {'extract_a', 'merge_a'}
  assert all(seconds >= 0 for seconds in idle.values())

  cache.clear()
  assert cache.get_idle_seconds() == {}

from __future__ import annotations

import numpy as np
import pytest

from laser_prep.buffers import PixelBuffer
from laser_prep.cache import EdgeMagnitudeCache


def _pixels(seed):
    rng = np.random.default_rng(seed)
    return PixelBuffer.from_array(rng.integers(0, 256, size=(12, 14, 3), dtype=np.uint8))


def test_identical_content_hits_cache():
    cache = EdgeMagnitudeCache()
    first = cache.get_or_compute(_pixels(1))
    second = cache.get_or_compute(_pixels(1))
    assert first is second
    assert cache.get_stats() == {"cached": True, "hits": 1, "misses": 1, "hit_rate": 0.5}


def test_new_content_recomputes():
    calls = []

    def compute(pixels):
        calls.append(pixels.fingerprint())
        return np.zeros((pixels.height, pixels.width))

    cache = EdgeMagnitudeCache()
    cache.get_or_compute(_pixels(1), compute)
    cache.get_or_compute(_pixels(2), compute)
    cache.get_or_compute(_pixels(2), compute)
    assert len(calls) == 2
    assert cache.misses == 2 and cache.hits == 1


def test_cached_field_is_read_only():
    field = EdgeMagnitudeCache().get_or_compute(_pixels(3))
    assert field.dtype == np.float32
    with pytest.raises(ValueError):
        field[0, 0] = 1.0


def test_presmoothing_is_part_of_the_key():
    pixels = _pixels(4)
    assert EdgeMagnitudeCache().key_for(pixels) != EdgeMagnitudeCache(presmooth=False).key_for(pixels)


def test_clear_resets_state():
    cache = EdgeMagnitudeCache()
    cache.get_or_compute(_pixels(5))
    cache.clear()
    assert cache.get_stats() == {"cached": False, "hits": 0, "misses": 0, "hit_rate": 0}

from __future__ import annotations

import numpy as np
import pytest

from laser_prep.clahe import apply_clahe, equalization_table, tile_grid

try:
    from .documentation import documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents


def _global_equalization(gray: np.ndarray) -> np.ndarray:
    cdf = np.cumsum(np.bincount(gray.ravel(), minlength=256)).astype(np.float64)
    table = np.floor((cdf - cdf[0]) / (cdf[255] - cdf[0]) * 255.0 + 0.5)
    return table.astype(np.uint8)[gray]


def test_tile_grid_never_drops_below_one_tile():
    assert tile_grid(100, 60, 30) == (3, 2)
    assert tile_grid(10, 10, 30) == (1, 1)
    with pytest.raises(ValueError):
        tile_grid(10, 10, 0)


@documents("A tile with a single gray value maps through the identity")
def test_uniform_image_is_unchanged():
    gray = np.full((64, 48), 137, dtype=np.uint8)
    assert np.array_equal(apply_clahe(gray, 4.0, 16), gray)


def test_flat_histogram_table_is_monotonic_and_spans_range():
    table = equalization_table(np.full(256, 10), 4.0)
    assert table[0] == 0 and table[255] == 255
    assert np.all(np.diff(table.astype(int)) >= 0)


def test_single_tile_without_clipping_matches_global_equalization():
    rng = np.random.default_rng(21)
    gray = rng.integers(40, 120, size=(20, 24), dtype=np.uint8)
    result = apply_clahe(gray, 0.0, 64)
    assert np.array_equal(result, _global_equalization(gray))


def test_clip_limit_zero_still_equalizes():
    gray = np.tile(np.array([100, 101, 102, 103], dtype=np.uint8), (8, 2))
    result = apply_clahe(gray, 0.0, 8)
    assert sorted(np.unique(result).tolist()) == [64, 128, 191, 255]


def test_clipping_limits_contrast_gain():
    rng = np.random.default_rng(4)
    gray = rng.integers(120, 136, size=(64, 64), dtype=np.uint8)
    unclipped = apply_clahe(gray, 0.0, 32)
    clipped = apply_clahe(gray, 1.0, 32)
    assert np.ptp(clipped) < np.ptp(unclipped)


def test_output_preserves_shape_and_dtype():
    rng = np.random.default_rng(8)
    gray = rng.integers(0, 256, size=(37, 53), dtype=np.uint8)
    result = apply_clahe(gray, 4.0, 10)
    assert result.shape == gray.shape
    assert result.dtype == np.uint8


def test_rejects_non_uint8_input():
    with pytest.raises(ValueError):
        apply_clahe(np.zeros((4, 4), dtype=np.float32), 2.0, 2)

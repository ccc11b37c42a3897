from __future__ import annotations

import numpy as np
import pytest

from laser_prep.buffers import PixelBuffer
from laser_prep.cache import EdgeMagnitudeCache
from laser_prep.errors import ConfigurationError
from laser_prep.placement import (
    EdgeMode,
    FillMode,
    GridSpec,
    GridType,
    PlacementSettings,
    ThresholdMode,
    dilation_radius,
    footprint_radius_px,
    place_elements,
    sample_elements,
    to_mm,
)

try:
    from .documentation import documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents


def _solid(value, size=(10, 10), alpha=255):
    arr = np.zeros(size + (4,), dtype=np.uint8)
    arr[..., :3] = value
    arr[..., 3] = alpha
    return PixelBuffer(arr)


def _step(size=100):
    arr = np.zeros((size, size), dtype=np.uint8)
    arr[:, size // 2:] = 255
    return PixelBuffer.from_array(arr)


@documents("A 10 mm canvas holds a 2x2 grid of 4 mm elements")
def test_fill_square_grid_positions():
    grid = GridSpec(4.0, 10.0, 10.0, grid_type=GridType.SQUARE)
    placed = sample_elements(_solid(200), grid, FillMode())
    assert [(e.x, e.y) for e in placed] == [(2.0, 2.0), (6.0, 2.0), (2.0, 6.0), (6.0, 6.0)]
    assert all(e.color == (200, 200, 200, 255) for e in placed)


def test_hex_grid_offsets_odd_rows_and_counts_slots():
    grid = GridSpec(4.0, 20.0, 20.0, grid_type=GridType.HEX)
    assert (grid.cols, grid.rows) == (5, 5)
    assert grid.total_slots == 3 * 5 + 2 * 4
    cells = list(grid.cells())
    assert len(cells) == grid.total_slots
    odd_row = [c for c in cells if c[0] == 1]
    assert odd_row[0][2] == pytest.approx(4.0)
    assert odd_row[0][3] == pytest.approx(2.0 + 4.0 * np.sqrt(3.0) / 2.0)


def test_fill_places_every_fitting_cell():
    grid = GridSpec(4.0, 20.0, 20.0, grid_type=GridType.HEX)
    placed = sample_elements(_solid(90, size=(40, 40)), grid, FillMode())
    fitting = [c for c in grid.cells() if grid.fits(c[2], c[3])]
    assert len(placed) == len(fitting) == grid.total_slots


def test_gap_increases_pitch():
    grid = GridSpec(4.0, 30.0, 30.0, gap=0.5)
    assert grid.pitch == pytest.approx(6.0)
    assert grid.cols == 5


def test_transparent_image_places_nothing():
    grid = GridSpec(4.0, 10.0, 10.0)
    assert sample_elements(_solid(0, alpha=0), grid, FillMode()) == []
    assert sample_elements(_solid(0, alpha=0), grid, ThresholdMode(256)) == []


def test_threshold_extremes():
    grid = GridSpec(4.0, 10.0, 10.0)
    pixels = _solid(0)
    assert sample_elements(pixels, grid, ThresholdMode(0)) == []
    assert len(sample_elements(_solid(255), grid, ThresholdMode(256))) == grid.total_slots


def test_threshold_places_on_dark_regions_only():
    grid = GridSpec(4.0, 40.0, 40.0)
    placed = sample_elements(_step(), grid, ThresholdMode(128))
    assert placed
    assert all(e.x < 20.0 for e in placed)


def test_edge_mode_places_along_the_step():
    settings = PlacementSettings(
        element_diameter=4.0,
        width_mm=50.0,
        height_mm=50.0,
        grid_type="square",
        mode="edge",
        threshold=128,
        edge_width_rows=1.0,
    )
    placed = place_elements(_step(), settings)
    xs = {e.x for e in placed}
    assert 26.0 in xs
    assert xs <= {22.0, 26.0}
    assert sum(1 for e in placed if e.x == 26.0) == settings.grid().rows


def test_edge_mask_must_match_image():
    with pytest.raises(ValueError):
        sample_elements(_solid(0), GridSpec(4.0, 10.0, 10.0), EdgeMode(np.zeros((3, 3), dtype=bool)))


def test_unknown_mode_raises_type_error():
    with pytest.raises(TypeError):
        sample_elements(_solid(0), GridSpec(4.0, 10.0, 10.0), object())


def test_footprint_and_dilation_radius_scale_with_canvas():
    settings = PlacementSettings(element_diameter=4.0, width_mm=50.0, height_mm=50.0, edge_width_rows=2.0)
    pixels = _step()
    assert footprint_radius_px(pixels, settings.grid()) == 4
    assert dilation_radius(pixels, settings) == 8


def test_placement_is_deterministic_and_reuses_edge_cache():
    settings = PlacementSettings(element_diameter=4.0, width_mm=50.0, height_mm=50.0)
    cache = EdgeMagnitudeCache()
    first = place_elements(_step(), settings, cache=cache)
    second = place_elements(_step(), settings, cache=cache)
    assert first == second
    assert cache.get_stats()["hits"] == 1
    assert cache.get_stats()["misses"] == 1


def test_unit_conversion():
    assert to_mm(1.0, "in") == pytest.approx(25.4)
    assert to_mm(96.0, "px") == pytest.approx(25.4)
    with pytest.raises(ConfigurationError):
        to_mm(1.0, "cm")


@pytest.mark.parametrize(
    "overrides",
    [
        {"element_diameter": 0.0},
        {"gap": 1.5},
        {"mode": "spiral"},
        {"grid_type": "triangle"},
        {"mode": "threshold", "threshold": 300},
        {"mode": "edge", "threshold": 256},
        {"edge_width_rows": float("nan")},
        {"element_diameter": float("inf")},
        {"width_mm": float("nan")},
        {"gap": float("nan")},
        {"mode": "threshold", "threshold": float("nan")},
    ],
)
def test_invalid_placement_settings(overrides):
    with pytest.raises(ConfigurationError):
        PlacementSettings(**overrides)


def test_coarse_source_still_places_every_opaque_cell():
    grid = GridSpec(4.0, 10.0, 10.0)
    pixels = _solid(255, size=(1, 1))
    assert len(sample_elements(pixels, grid, ThresholdMode(256))) == grid.total_slots
    assert len(sample_elements(pixels, grid, FillMode())) == grid.total_slots

from __future__ import annotations

import numpy as np
import pytest
from hypothesis import given, strategies as st

from laser_prep.buffers import PixelBuffer
from laser_prep.color import alpha_channel, linear_luminance, srgb_to_linear

try:
    from .documentation import documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents


def _solid(rgb, alpha=255, size=(2, 3)):
    arr = np.zeros(size + (4,), dtype=np.uint8)
    arr[..., :3] = rgb
    arr[..., 3] = alpha
    return PixelBuffer(arr)


def test_black_and_white_map_to_luminance_extremes():
    assert np.all(linear_luminance(_solid((0, 0, 0))) == 0.0)
    assert np.allclose(linear_luminance(_solid((255, 255, 255))), 1.0, atol=1e-6)


def test_luminance_has_field_shape_and_dtype():
    lum = linear_luminance(_solid((10, 200, 30), size=(5, 7)))
    assert lum.shape == (5, 7)
    assert lum.dtype == np.float32


def test_srgb_curve_is_continuous_at_segment_boundary():
    below = srgb_to_linear(np.array([0.04045], dtype=np.float32))[0]
    above = srgb_to_linear(np.array([0.04046], dtype=np.float32))[0]
    assert below == pytest.approx(0.04045 / 12.92, rel=1e-5)
    assert above == pytest.approx(below, abs=1e-5)


def test_green_weighs_more_than_red_more_than_blue():
    red = linear_luminance(_solid((255, 0, 0)))[0, 0]
    green = linear_luminance(_solid((0, 255, 0)))[0, 0]
    blue = linear_luminance(_solid((0, 0, 255)))[0, 0]
    assert red == pytest.approx(0.2126, abs=1e-5)
    assert green == pytest.approx(0.7152, abs=1e-5)
    assert blue == pytest.approx(0.0722, abs=1e-5)


@documents("Alpha never influences luminance")
def test_alpha_is_ignored():
    opaque = linear_luminance(_solid((120, 60, 200), alpha=255))
    clear = linear_luminance(_solid((120, 60, 200), alpha=0))
    assert np.array_equal(opaque, clear)


def test_plain_rgb_arrays_are_accepted():
    arr = np.full((3, 3, 3), 128, dtype=np.uint8)
    assert np.allclose(linear_luminance(arr), linear_luminance(PixelBuffer.from_array(arr)))
    assert np.all(alpha_channel(arr) == 255.0)


def test_gray_ramp_is_monotonic():
    ramp = np.repeat(np.arange(256, dtype=np.uint8)[None, :, None], 3, axis=2)
    lum = linear_luminance(ramp)[0]
    assert np.all(np.diff(lum) >= 0)


@given(
    st.tuples(st.integers(0, 255), st.integers(0, 255), st.integers(0, 255)),
    st.tuples(st.integers(0, 255), st.integers(0, 255), st.integers(0, 255)),
)
def test_brighter_channels_never_lower_luminance(base, delta):
    lower = tuple(min(b, 255) for b in base)
    upper = tuple(min(b + d, 255) for b, d in zip(base, delta))
    assert linear_luminance(_solid(upper))[0, 0] >= linear_luminance(_solid(lower))[0, 0]

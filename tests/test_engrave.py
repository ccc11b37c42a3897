from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from laser_prep.buffers import PixelBuffer, quantize_unit
from laser_prep.color import linear_luminance
from laser_prep.engrave import (
    MATERIAL_PRESETS,
    PowerMapSettings,
    apply_tone_curve,
    generate_power_map,
    inches_to_px,
    target_pixel_size,
)
from laser_prep.errors import ConfigurationError

try:
    from .documentation import documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents


def _gradient(width=64, height=32):
    ramp = np.linspace(0, 255, width, dtype=np.float64)
    gray = np.tile(np.floor(ramp + 0.5).astype(np.uint8), (height, 1))
    return PixelBuffer.from_array(gray)


def test_default_settings_match_plywood_calibration():
    settings = PowerMapSettings()
    assert settings.gray_levels == (104, 187, 188, 216, 255)
    assert settings.dpi == 600
    assert settings.invert and settings.apply_clahe
    assert settings.target_height_in == 2.0


@documents("With every optional stage disabled the output is quantized luminance")
def test_linear_preset_outputs_quantized_luminance():
    pixels = _gradient()
    result = generate_power_map(pixels, MATERIAL_PRESETS["linear"])
    expected = quantize_unit(linear_luminance(pixels))
    assert np.array_equal(result.data, expected)
    assert result.data.dtype == np.uint8
    assert (result.width, result.height) == (pixels.width, pixels.height)


def test_inversion_maps_white_to_zero_and_black_to_full_power():
    arr = np.zeros((4, 4), dtype=np.uint8)
    arr[:, 2:] = 255
    settings = dataclasses.replace(MATERIAL_PRESETS["linear"], invert=True)
    result = generate_power_map(PixelBuffer.from_array(arr), settings)
    assert np.all(result.data[:, :2] == 255)
    assert np.all(result.data[:, 2:] == 0)


def test_plywood_output_stays_within_calibrated_levels():
    result = generate_power_map(_gradient(100, 50), MATERIAL_PRESETS["plywood"])
    assert result.dpi == 600
    assert result.height == 1200
    assert result.width == 2400
    assert result.data.min() >= 104
    assert result.data.max() <= 255


def test_lut_only_uses_values_produced_by_table():
    settings = dataclasses.replace(MATERIAL_PRESETS["linear"], gray_levels=(50, 60))
    result = generate_power_map(_gradient(), settings)
    assert result.data.min() >= 50 and result.data.max() <= 60


def test_target_size_follows_aspect_ratio_when_one_side_is_set():
    settings = dataclasses.replace(MATERIAL_PRESETS["linear"], dpi=100, target_width_in=1.0)
    assert target_pixel_size(300, 150, settings) == (100, 50)
    settings = dataclasses.replace(MATERIAL_PRESETS["linear"], dpi=100, target_height_in=1.0)
    assert target_pixel_size(300, 150, settings) == (200, 100)
    assert target_pixel_size(300, 150, MATERIAL_PRESETS["linear"]) is None


def test_both_targets_set_ignore_aspect_ratio():
    settings = dataclasses.replace(
        MATERIAL_PRESETS["linear"], dpi=10, target_width_in=2.0, target_height_in=3.0
    )
    result = generate_power_map(_gradient(), settings)
    assert (result.width, result.height) == (20, 30)


def test_inches_to_px_rounds_and_never_returns_zero():
    assert inches_to_px(2.0, 600) == 1200
    assert inches_to_px(0.0001, 10) == 1


def test_tone_curve_gamma_and_invert():
    field = np.array([[0.0, 0.25, 1.0]], dtype=np.float32)
    assert apply_tone_curve(field, invert=False) is field
    curved = apply_tone_curve(field, invert=False, gamma=0.5)
    assert curved[0, 1] == pytest.approx(0.5)
    inverted = apply_tone_curve(field, invert=True)
    assert inverted[0, 2] == pytest.approx(0.0)
    assert inverted[0, 0] == pytest.approx(1.0, abs=1e-5)


def test_to_image_records_grayscale():
    result = generate_power_map(_gradient(), MATERIAL_PRESETS["linear"])
    image = result.to_image()
    assert image.mode == "L"
    assert image.size == (result.width, result.height)


@pytest.mark.parametrize(
    "overrides",
    [
        {"dpi": 0},
        {"dpi": 5000},
        {"gamma": 0.0},
        {"gray_levels": (128,)},
        {"sharpen_amount": -1.0},
        {"clahe_tile": 0},
        {"target_height_in": -2.0},
        {"gamma": float("nan")},
        {"sharpen_sigma": float("nan")},
        {"target_width_in": float("nan")},
        {"target_height_in": float("inf")},
        {"dpi": float("nan")},
        {"clahe_clip": float("nan")},
        {"sharpen_amount": float("nan")},
    ],
)
def test_invalid_settings_raise_configuration_error(overrides):
    with pytest.raises(ConfigurationError):
        PowerMapSettings(**overrides)


def test_generation_is_deterministic():
    pixels = _gradient(40, 30)
    settings = dataclasses.replace(MATERIAL_PRESETS["plywood"], target_height_in=None)
    first = generate_power_map(pixels, settings)
    second = generate_power_map(pixels, settings)
    assert np.array_equal(first.data, second.data)

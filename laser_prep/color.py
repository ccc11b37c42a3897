"""Colour-space helpers: sRGB linearization and linear-light luminance."""
from __future__ import annotations

import logging
from typing import Union

import numpy as np

from .buffers import PixelBuffer

LOGGER = logging.getLogger("laser_prep")

BT709_WEIGHTS = (0.2126, 0.7152, 0.0722)


def srgb_to_linear(values: np.ndarray) -> np.ndarray:
    """Apply the inverse sRGB transfer function.

    Args:
        values: Encoded sRGB values in the [0, 1] range.

    Returns:
        Linear-light values as float32 with the same shape as ``values``.
    """
    v = np.asarray(values, dtype=np.float32)
    low = v / np.float32(12.92)
    high = np.power((np.maximum(v, 0.04045) + 0.055) / 1.055, 2.4)
    return np.where(v <= 0.04045, low, high).astype(np.float32)


def _rgb_array(pixels: Union[PixelBuffer, np.ndarray]) -> np.ndarray:
    if isinstance(pixels, PixelBuffer):
        return pixels.rgb
    arr = np.asarray(pixels)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"Expected an RGB or RGBA array, got shape {arr.shape}")
    return arr[:, :, :3]


def linear_luminance(pixels: Union[PixelBuffer, np.ndarray]) -> np.ndarray:
    """Convert encoded RGB pixels to linear-light luminance.

    Uses Rec. 709 luminance weights on linearized channels. Alpha is ignored.

    Args:
        pixels: PixelBuffer, or an ``(H, W, 3|4)`` uint8 array.

    Returns:
        ScalarField in [0, 1].
    """
    rgb = _rgb_array(pixels)
    linear = srgb_to_linear(rgb.astype(np.float32) / 255.0)
    red, green, blue = BT709_WEIGHTS
    lum = linear[:, :, 0] * red + linear[:, :, 1] * green + linear[:, :, 2] * blue
    LOGGER.debug("Extracted luminance for %sx%s pixels", rgb.shape[1], rgb.shape[0])
    return np.clip(lum, 0.0, 1.0).astype(np.float32)


def alpha_channel(pixels: Union[PixelBuffer, np.ndarray]) -> np.ndarray:
    """Return alpha as float32 in [0, 255]; RGB input is treated as opaque."""

    if isinstance(pixels, PixelBuffer):
        return pixels.alpha.astype(np.float32)
    arr = np.asarray(pixels)
    if arr.ndim == 3 and arr.shape[2] == 4:
        return arr[:, :, 3].astype(np.float32)
    return np.full(arr.shape[:2], 255.0, dtype=np.float32)


__all__ = ["BT709_WEIGHTS", "alpha_channel", "linear_luminance", "srgb_to_linear"]

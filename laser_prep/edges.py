"""Sobel edge magnitude and dilated edge masks.

Edge placement samples the mask once per grid cell, so a one-pixel edge
would be missed by most cells. :func:`build_edge_mask` therefore grows the
thresholded edges with a disc so they form a continuous band.
"""
from __future__ import annotations

import logging

import numpy as np
from scipy import ndimage

from .buffers import require_field
from .filters import gaussian_blur

LOGGER = logging.getLogger("laser_prep")


def edge_presmooth_sigma(width: int, height: int) -> float:
    """Noise-suppression sigma scaled to the image size."""

    return max(1.0, min(width, height) / 300.0)


def sobel_magnitude(field: np.ndarray, presmooth: bool = True) -> np.ndarray:
    """Compute the Sobel gradient magnitude of a ScalarField.

    Args:
        field: Two-dimensional float buffer (typically luminance).
        presmooth: Blur with :func:`edge_presmooth_sigma` before differentiating.

    Returns:
        Float32 magnitude field; the one-pixel border is zero.
    """
    data = require_field(field)
    height, width = data.shape
    if presmooth:
        data = gaussian_blur(data, edge_presmooth_sigma(width, height))

    magnitude = np.zeros((height, width), dtype=np.float32)
    if height < 3 or width < 3:
        return magnitude

    top, mid, bot = data[:-2], data[1:-1], data[2:]
    gx = (
        (top[:, 2:] + 2.0 * mid[:, 2:] + bot[:, 2:])
        - (top[:, :-2] + 2.0 * mid[:, :-2] + bot[:, :-2])
    )
    gy = (
        (bot[:, :-2] + 2.0 * bot[:, 1:-1] + bot[:, 2:])
        - (top[:, :-2] + 2.0 * top[:, 1:-1] + top[:, 2:])
    )
    magnitude[1:-1, 1:-1] = np.sqrt(gx * gx + gy * gy)
    return magnitude


def threshold_edges(magnitude: np.ndarray, sensitivity: int) -> np.ndarray:
    """Binarize an edge magnitude field.

    The field is normalized to [0, 255] by its maximum and pixels at or above
    ``255 - sensitivity`` are kept, so higher sensitivity keeps more edges.
    """
    data = require_field(magnitude, "magnitude")
    if not 0 <= sensitivity <= 255:
        raise ValueError(f"sensitivity must be between 0 and 255, got {sensitivity}")
    peak = float(data.max())
    if peak == 0.0:
        peak = 1.0
    # Compares data / peak * 255 >= cutoff without dividing, so the peak always passes at cutoff 255.
    return data.astype(np.float64) * 255.0 >= (255 - sensitivity) * peak


def dilate_mask(mask: np.ndarray, radius: int) -> np.ndarray:
    """Grow a BinaryMask by stamping a filled disc on every set pixel.

    A pixel is set when its Euclidean distance to the nearest set pixel is at
    most ``radius``, which is the disc ``dx*dx + dy*dy <= radius*radius``.

    Args:
        mask: Two-dimensional boolean array.
        radius: Disc radius in pixels; zero returns a copy.

    Returns:
        New boolean mask that contains ``mask``.
    """
    source = np.asarray(mask, dtype=bool)
    if source.ndim != 2:
        raise ValueError(f"mask must be two-dimensional, got shape {source.shape}")
    if radius <= 0 or not source.any():
        return source.copy()
    distance = ndimage.distance_transform_edt(~source)
    return distance <= radius


def build_edge_mask(magnitude: np.ndarray, sensitivity: int, dilate_radius: int) -> np.ndarray:
    """Threshold ``magnitude`` and dilate the result by ``dilate_radius``."""

    binary = threshold_edges(magnitude, sensitivity)
    LOGGER.debug(
        "Edge mask sensitivity=%s radius=%s (%s edge pixels before dilation)",
        sensitivity,
        dilate_radius,
        int(binary.sum()),
    )
    return dilate_mask(binary, dilate_radius)


__all__ = [
    "build_edge_mask",
    "dilate_mask",
    "edge_presmooth_sigma",
    "sobel_magnitude",
    "threshold_edges",
]

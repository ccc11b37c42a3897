"""Contrast-limited adaptive histogram equalization (CLAHE).

The image is split into a regular grid of tiles. Each tile gets its own
equalization table built from a (optionally clipped) histogram, anchored at
the tile centre, and every output pixel blends the tables of its four
nearest tile centres bilinearly. Tiles on the image border clamp rather
than wrap.
"""
from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

LOGGER = logging.getLogger("laser_prep")

_IDENTITY_TABLE = np.arange(256, dtype=np.uint8)


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


def tile_grid(width: int, height: int, tile_size: int) -> Tuple[int, int]:
    """Return the ``(tiles_x, tiles_y)`` used for an image of this size."""

    if tile_size < 1:
        raise ValueError(f"tile_size must be at least 1, got {tile_size}")
    return max(1, width // tile_size), max(1, height // tile_size)


def _tile_bounds(length: int, tiles: int) -> np.ndarray:
    step = length / tiles
    return _round_half_up(np.arange(tiles + 1, dtype=np.float64) * step).astype(np.intp)


def equalization_table(histogram: np.ndarray, clip_limit: float) -> np.ndarray:
    """Build a 256-entry remapping table from a tile histogram.

    Args:
        histogram: 256-bin pixel counts of one tile.
        clip_limit: Relative clip limit; values <= 0 disable clipping.

    Returns:
        ``uint8`` table. Tiles without tonal spread map through the identity.
    """
    hist = np.asarray(histogram, dtype=np.float64).copy()
    if np.count_nonzero(hist) <= 1:
        return _IDENTITY_TABLE.copy()

    if clip_limit > 0:
        limit = max(1.0, clip_limit * float(hist.sum()) / 256.0)
        excess = float(np.sum(np.maximum(hist - limit, 0.0)))
        hist = np.minimum(hist, limit) + excess / 256.0

    cdf = np.cumsum(hist)
    span = cdf[255] - cdf[0]
    if span <= 0:
        return _IDENTITY_TABLE.copy()
    table = _round_half_up((cdf - cdf[0]) / span * 255.0)
    return np.clip(table, 0, 255).astype(np.uint8)


def _axis_weights(length: int, tiles: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    step = length / tiles
    position = (np.arange(length, dtype=np.float64) - step / 2.0) / step
    lower = np.clip(np.floor(position), 0, tiles - 1).astype(np.intp)
    upper = np.minimum(lower + 1, tiles - 1)
    weight = np.clip(position - lower, 0.0, 1.0)
    return lower, upper, weight


def apply_clahe(gray: np.ndarray, clip_limit: float, tile_size: int) -> np.ndarray:
    """Equalize an 8-bit single-channel image tile by tile.

    Args:
        gray: ``uint8`` array of shape ``(height, width)``.
        clip_limit: Histogram clip limit relative to a flat histogram (0 disables clipping).
        tile_size: Nominal tile edge in pixels.

    Returns:
        New ``uint8`` array with the same shape as ``gray``.
    """
    source = np.asarray(gray)
    if source.ndim != 2 or source.size == 0:
        raise ValueError(f"CLAHE expects a non-empty 2D array, got shape {source.shape}")
    if source.dtype != np.uint8:
        raise ValueError(f"CLAHE expects uint8 samples, got {source.dtype}")

    height, width = source.shape
    tiles_x, tiles_y = tile_grid(width, height, tile_size)
    xs = _tile_bounds(width, tiles_x)
    ys = _tile_bounds(height, tiles_y)
    LOGGER.debug(
        "CLAHE clip=%s tile=%s grid=%sx%s on %sx%s",
        clip_limit,
        tile_size,
        tiles_x,
        tiles_y,
        width,
        height,
    )

    tables = np.empty((tiles_y, tiles_x, 256), dtype=np.uint8)
    for ty in range(tiles_y):
        for tx in range(tiles_x):
            tile = source[ys[ty]:ys[ty + 1], xs[tx]:xs[tx + 1]]
            histogram = np.bincount(tile.ravel(), minlength=256)
            tables[ty, tx] = equalization_table(histogram, clip_limit)

    tx0, tx1, ax = _axis_weights(width, tiles_x)
    ty0, ty1, ay = _axis_weights(height, tiles_y)
    rows0 = ty0[:, None]
    rows1 = ty1[:, None]
    cols0 = tx0[None, :]
    cols1 = tx1[None, :]
    ax = ax[None, :]
    ay = ay[:, None]

    v00 = tables[rows0, cols0, source].astype(np.float64)
    v10 = tables[rows0, cols1, source].astype(np.float64)
    v01 = tables[rows1, cols0, source].astype(np.float64)
    v11 = tables[rows1, cols1, source].astype(np.float64)

    top = v00 * (1.0 - ax) + v10 * ax
    bottom = v01 * (1.0 - ax) + v11 * ax
    blended = _round_half_up(top * (1.0 - ay) + bottom * ay)
    return np.clip(blended, 0, 255).astype(np.uint8)


__all__ = ["apply_clahe", "equalization_table", "tile_grid"]

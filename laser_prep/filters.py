"""Gaussian smoothing, unsharp masking and bilinear resampling."""
from __future__ import annotations

import functools
import logging
import math

import numpy as np

from .buffers import require_field

LOGGER = logging.getLogger("laser_prep")

# Below this sigma the kernel degenerates to a near-delta; blurring is skipped.
MIN_BLUR_SIGMA = 0.5


@functools.lru_cache(maxsize=32)
def _gaussian_kernel_cached(sigma: float) -> np.ndarray:
    radius = int(math.ceil(3.0 * sigma))
    if radius <= 0:
        kernel = np.array([1.0], dtype=np.float32)
    else:
        ax = np.arange(-radius, radius + 1, dtype=np.float64)
        kernel = np.exp(-(ax ** 2) / (2.0 * sigma ** 2))
        kernel /= np.sum(kernel)
    cached = kernel.astype(np.float32)
    cached.setflags(write=False)
    return cached


def gaussian_kernel(sigma: float) -> np.ndarray:
    """Generate a normalized 1D Gaussian kernel with mutable copy.

    Args:
        sigma: Standard deviation in pixels; the half-width is ``ceil(3 * sigma)``.

    Returns:
        1D float32 array summing to one.
    """
    return _gaussian_kernel_cached(float(sigma)).copy()


def gaussian_kernel_cached(sigma: float) -> np.ndarray:
    """Return the cached read-only Gaussian kernel for ``sigma``."""

    return _gaussian_kernel_cached(float(sigma))


gaussian_kernel.cache_clear = _gaussian_kernel_cached.cache_clear  # type: ignore[attr-defined]
gaussian_kernel.cache_info = _gaussian_kernel_cached.cache_info  # type: ignore[attr-defined]


def separable_convolve(arr: np.ndarray, kernel: np.ndarray, axis: int) -> np.ndarray:
    """Apply a symmetric 1D kernel along ``axis`` with edge replication.

    Args:
        arr: Two-dimensional input array.
        kernel: Odd-length symmetric kernel.
        axis: Axis along which to convolve.

    Returns:
        Convolved float32 array with the same shape as ``arr``.
    """
    half = kernel.size // 2
    if half == 0:
        return (arr * kernel[0]).astype(np.float32)
    pad_width = [(0, 0)] * arr.ndim
    pad_width[axis] = (half, half)
    padded = np.pad(arr.astype(np.float32, copy=False), pad_width, mode="edge")
    length = arr.shape[axis]
    out = np.zeros(arr.shape, dtype=np.float32)
    for offset, weight in enumerate(kernel):
        window = np.take(padded, np.arange(offset, offset + length), axis=axis)
        out += window * weight
    return out


def gaussian_blur(field: np.ndarray, sigma: float) -> np.ndarray:
    """Blur a ScalarField with a separable Gaussian.

    Sigmas below :data:`MIN_BLUR_SIGMA` return an unmodified copy.

    Args:
        field: Two-dimensional float buffer.
        sigma: Standard deviation in pixels.

    Returns:
        New blurred float32 buffer with the same shape as ``field``.
    """
    data = require_field(field)
    if sigma < MIN_BLUR_SIGMA:
        return data.copy()
    kernel = gaussian_kernel_cached(sigma)
    LOGGER.debug("Gaussian blur sigma=%.3f taps=%s", sigma, kernel.size)
    blurred = separable_convolve(data, kernel, axis=1)
    return separable_convolve(blurred, kernel, axis=0)


def unsharp_mask(field: np.ndarray, amount: float, sigma: float) -> np.ndarray:
    """Sharpen a [0, 1] field by subtracting a blurred copy.

    Args:
        field: ScalarField in [0, 1].
        amount: Sharpening strength (>= 0); zero returns a copy.
        sigma: Blur sigma for the mask.

    Returns:
        Sharpened field clipped to [0, 1].
    """
    data = require_field(field)
    if amount <= 0:
        return data.copy()
    blurred = gaussian_blur(data, sigma)
    LOGGER.debug("Unsharp mask amount=%s sigma=%s", amount, sigma)
    sharpened = data * (1.0 + amount) - blurred * amount
    return np.clip(sharpened, 0.0, 1.0).astype(np.float32)


def resize_bilinear(field: np.ndarray, new_width: int, new_height: int) -> np.ndarray:
    """Resample a ScalarField to ``new_width`` x ``new_height``.

    Destination pixel ``d`` reads source coordinate ``d * src / dst`` and blends
    the four surrounding samples, clamped to the source bounds.
    """
    data = require_field(field)
    if new_width <= 0 or new_height <= 0:
        raise ValueError(f"Resize target must be positive, got {new_width}x{new_height}")
    height, width = data.shape
    if width == new_width and height == new_height:
        return data.copy()

    x = np.arange(new_width, dtype=np.float64) * (width / new_width)
    y = np.arange(new_height, dtype=np.float64) * (height / new_height)
    x0 = np.minimum(np.floor(x).astype(np.intp), width - 1)
    y0 = np.minimum(np.floor(y).astype(np.intp), height - 1)
    x1 = np.minimum(x0 + 1, width - 1)
    y1 = np.minimum(y0 + 1, height - 1)
    fx = (x - x0).astype(np.float32).reshape(1, -1)
    fy = (y - y0).astype(np.float32).reshape(-1, 1)

    top = data[np.ix_(y0, x0)] * (1.0 - fx) + data[np.ix_(y0, x1)] * fx
    bottom = data[np.ix_(y1, x0)] * (1.0 - fx) + data[np.ix_(y1, x1)] * fx
    LOGGER.debug("Resizing from %sx%s to %sx%s", width, height, new_width, new_height)
    return (top * (1.0 - fy) + bottom * fy).astype(np.float32)


__all__ = [
    "MIN_BLUR_SIGMA",
    "gaussian_blur",
    "gaussian_kernel",
    "gaussian_kernel_cached",
    "resize_bilinear",
    "separable_convolve",
    "unsharp_mask",
]

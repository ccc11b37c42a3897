"""Memoization of the edge magnitude field.

Edge placement is typically re-run many times against the same photograph
while threshold and dilation settings are tuned. The Sobel pass only depends
on the image content and the presmoothing parameters, so the last result is
kept and reused while that key is unchanged.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Optional, Tuple

import numpy as np

from .buffers import PixelBuffer
from .color import linear_luminance
from .edges import edge_presmooth_sigma, sobel_magnitude

LOGGER = logging.getLogger("laser_prep")

CacheKey = Tuple[str, Tuple[object, ...]]


@dataclasses.dataclass
class EdgeMagnitudeCache:
    """Holds the most recent edge magnitude field and the key it was computed for."""

    presmooth: bool = True
    hits: int = 0
    misses: int = 0
    _key: Optional[CacheKey] = dataclasses.field(default=None, repr=False)
    _field: Optional[np.ndarray] = dataclasses.field(default=None, repr=False)

    def key_for(self, pixels: PixelBuffer) -> CacheKey:
        sigma = edge_presmooth_sigma(pixels.width, pixels.height) if self.presmooth else 0.0
        return pixels.fingerprint(), (self.presmooth, sigma)

    def get_or_compute(
        self,
        pixels: PixelBuffer,
        compute_fn: Optional[Callable[[PixelBuffer], np.ndarray]] = None,
    ) -> np.ndarray:
        """Return the edge magnitude for ``pixels``, recomputing only on a key change.

        Args:
            pixels: Source capture.
            compute_fn: Override for the magnitude computation (defaults to Sobel
                over linear luminance).

        Returns:
            Read-only float32 magnitude field.
        """
        key = self.key_for(pixels)
        if key == self._key and self._field is not None:
            self.hits += 1
            LOGGER.debug("Edge cache hit: %s", key[0][:8])
            return self._field

        self.misses += 1
        LOGGER.debug("Edge cache miss: %s, computing...", key[0][:8])
        if compute_fn is None:
            field = sobel_magnitude(linear_luminance(pixels), presmooth=self.presmooth)
        else:
            field = np.array(compute_fn(pixels), dtype=np.float32)
        field.setflags(write=False)
        self._key = key
        self._field = field
        return field

    def clear(self) -> None:
        self._key = None
        self._field = None
        self.hits = 0
        self.misses = 0

    def get_stats(self) -> dict:
        total = self.hits + self.misses
        return {
            "cached": self._field is not None,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total > 0 else 0,
        }


__all__ = ["EdgeMagnitudeCache"]

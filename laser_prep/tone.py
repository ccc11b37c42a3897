"""Calibration tone LUTs for variable-depth engraving.

Calibration levels are the gray values a material actually engraves well
at. The LUT spreads them over evenly spaced input breakpoints and linearly
interpolates between neighbours, so continuous tone is remapped onto the
calibrated response.
"""
from __future__ import annotations

import dataclasses
import functools
import logging
import numbers
from typing import Iterable, Tuple

import numpy as np

from .errors import ConfigurationError

LOGGER = logging.getLogger("laser_prep")


def normalise_levels(levels: Iterable[int], *, sort_levels: bool = True) -> Tuple[int, ...]:
    """Validate and deduplicate calibration gray levels.

    Args:
        levels: Gray levels in [0, 255].
        sort_levels: Sort ascending; when ``False`` the first-seen order is kept
            so non-monotonic calibration curves survive.

    Raises:
        ConfigurationError: On non-integer or out-of-range values, or fewer than
            two distinct levels.
    """
    cleaned = []
    for value in levels:
        if isinstance(value, bool) or not isinstance(value, numbers.Integral):
            raise ConfigurationError(f"Calibration levels must be integers, got {value!r}")
        if not 0 <= int(value) <= 255:
            raise ConfigurationError(f"Calibration levels must be between 0 and 255, got {value}")
        cleaned.append(int(value))

    unique = tuple(dict.fromkeys(cleaned))
    if sort_levels:
        unique = tuple(sorted(unique))
    if len(unique) < 2:
        raise ConfigurationError(
            f"At least two distinct calibration levels are required, got {cleaned}"
        )
    return unique


@dataclasses.dataclass(frozen=True)
class ToneLUT:
    """256-entry lookup table built from calibration levels.

    Attributes:
        levels: Normalized calibration levels the table was built from.
        table: Read-only ``uint8`` array of 256 output levels.
    """

    levels: Tuple[int, ...]
    table: np.ndarray

    @property
    def breakpoints(self) -> np.ndarray:
        count = len(self.levels)
        return np.arange(count, dtype=np.float64) / (count - 1) * 255.0

    def apply(self, gray: np.ndarray) -> np.ndarray:
        """Remap an 8-bit buffer through the table."""

        source = np.asarray(gray)
        if source.dtype != np.uint8:
            raise ValueError(f"Tone mapping expects uint8 samples, got {source.dtype}")
        return self.table[source]


@functools.lru_cache(maxsize=64)
def _build_cached(levels: Tuple[int, ...]) -> ToneLUT:
    count = len(levels)
    breakpoints = np.arange(count, dtype=np.float64) / (count - 1) * 255.0
    inputs = np.arange(256, dtype=np.float64)
    interpolated = np.interp(inputs, breakpoints, np.asarray(levels, dtype=np.float64))
    table = np.clip(np.floor(interpolated + 0.5), 0, 255).astype(np.uint8)
    table.setflags(write=False)
    LOGGER.debug("Built tone LUT for levels %s", levels)
    return ToneLUT(levels=levels, table=table)


def build_tone_lut(levels: Iterable[int], *, sort_levels: bool = True) -> ToneLUT:
    """Build (or fetch the cached) :class:`ToneLUT` for ``levels``.

    Inputs below the first breakpoint clamp to the first level, inputs above the
    last clamp to the last level.
    """
    return _build_cached(normalise_levels(levels, sort_levels=sort_levels))


def apply_tone_lut(lut: ToneLUT, gray: np.ndarray) -> np.ndarray:
    return lut.apply(gray)


build_tone_lut.cache_clear = _build_cached.cache_clear  # type: ignore[attr-defined]
build_tone_lut.cache_info = _build_cached.cache_info  # type: ignore[attr-defined]


__all__ = ["ToneLUT", "apply_tone_lut", "build_tone_lut", "normalise_levels"]

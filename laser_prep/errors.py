"""Exception types and settings checks shared by the laser preparation toolkit."""
from __future__ import annotations

import math


class ConfigurationError(ValueError):
    """Raised when run settings are rejected before any processing stage runs."""


def _ensure_number(name: str, value: float) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ConfigurationError(f"{name} must be finite, got {value!r}")
    return number


def ensure_range(name: str, value: float, minimum: float, maximum: float) -> None:
    """Reject non-finite values and values outside ``[minimum, maximum]``."""

    if not minimum <= _ensure_number(name, value) <= maximum:
        raise ConfigurationError(f"{name} must be between {minimum} and {maximum}, got {value}")


def ensure_positive(name: str, value: float) -> None:
    if not _ensure_number(name, value) > 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")


def ensure_integer(name: str, value: float, minimum: int, maximum: float = math.inf) -> None:
    if _ensure_number(name, value) != int(value):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    ensure_range(name, value, minimum, maximum)


__all__ = ["ConfigurationError", "ensure_integer", "ensure_positive", "ensure_range"]

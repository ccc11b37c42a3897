"""Power-map generation for variable-depth laser engraving.

The pipeline mirrors the bench workflow used to calibrate a material:

1. sRGB -> linear light -> Rec. 709 luminance
2. optional CLAHE on an 8-bit round trip
3. clamp, gamma and optional inversion
4. optional unsharp mask
5. optional bilinear resize to a physical size at the driver DPI
6. 8-bit quantization and calibration tone LUT

Stages disabled by the settings are skipped entirely.

Example Usage
-------------

    from laser_prep import MATERIAL_PRESETS, PixelBuffer, generate_power_map

    settings = dataclasses.replace(MATERIAL_PRESETS["plywood"], target_height_in=3.0)
    result = generate_power_map(PixelBuffer.from_image(image), settings)
    result.to_image().save("power.png", dpi=(result.dpi, result.dpi))
"""
from __future__ import annotations

import dataclasses
import logging
import math
from typing import Dict, Optional, Tuple

import numpy as np
from PIL import Image

from .buffers import PixelBuffer, quantize_unit
from .clahe import apply_clahe
from .color import linear_luminance
from .errors import ensure_integer, ensure_positive, ensure_range
from .filters import resize_bilinear, unsharp_mask
from .tone import ToneLUT, build_tone_lut

LOGGER = logging.getLogger("laser_prep")

# Lower clamp applied before gamma so zero luminance stays finite.
LUMINANCE_FLOOR = 1e-6

MIN_DPI = 1
MAX_DPI = 2400


@dataclasses.dataclass
class PowerMapSettings:
    """Holds the parameters for a power-map run."""

    gray_levels: Tuple[int, ...] = (104, 187, 188, 216, 255)
    dpi: int = 600
    invert: bool = True
    apply_clahe: bool = True
    clahe_clip: float = 4.0
    clahe_tile: int = 30
    sharpen_amount: float = 3.0
    sharpen_sigma: float = 0.7
    gamma: float = 1.0
    target_width_in: Optional[float] = None
    target_height_in: Optional[float] = 2.0
    sort_levels: bool = True

    def __post_init__(self) -> None:
        self.gray_levels = tuple(self.gray_levels)
        self.validate()

    def validate(self) -> None:
        self.tone_lut()
        ensure_integer("dpi", self.dpi, MIN_DPI, MAX_DPI)
        ensure_range("clahe_clip", self.clahe_clip, 0.0, math.inf)
        ensure_integer("clahe_tile", self.clahe_tile, 1)
        ensure_range("sharpen_amount", self.sharpen_amount, 0.0, 10.0)
        ensure_positive("sharpen_sigma", self.sharpen_sigma)
        ensure_positive("gamma", self.gamma)
        for name in ("target_width_in", "target_height_in"):
            value = getattr(self, name)
            if value is not None:
                ensure_positive(name, value)

    def tone_lut(self) -> ToneLUT:
        return build_tone_lut(self.gray_levels, sort_levels=self.sort_levels)


MATERIAL_PRESETS: Dict[str, PowerMapSettings] = {
    # Plywood at 10 speed / 20 power.
    "plywood": PowerMapSettings(),
    "linear": PowerMapSettings(
        gray_levels=(0, 255),
        invert=False,
        apply_clahe=False,
        sharpen_amount=0.0,
        target_height_in=None,
    ),
}


@dataclasses.dataclass(frozen=True)
class PowerMapResult:
    """Final 8-bit engraving buffer and the DPI it was rendered at."""

    data: np.ndarray
    dpi: int

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.data, dtype=np.uint8))


def inches_to_px(inches: float, dpi: int) -> int:
    return max(1, int(math.floor(inches * dpi + 0.5)))


def target_pixel_size(width: int, height: int, settings: PowerMapSettings) -> Optional[Tuple[int, int]]:
    """Resolve the physical target size to pixels at ``settings.dpi``.

    Returns ``None`` when neither target width nor height is set. When only one
    is set the other follows the source aspect ratio.
    """
    has_width = settings.target_width_in is not None
    has_height = settings.target_height_in is not None
    if not has_width and not has_height:
        return None
    if has_width and has_height:
        return (
            inches_to_px(settings.target_width_in, settings.dpi),
            inches_to_px(settings.target_height_in, settings.dpi),
        )
    if has_width:
        new_width = inches_to_px(settings.target_width_in, settings.dpi)
        new_height = max(1, int(math.floor(height * (new_width / width) + 0.5)))
    else:
        new_height = inches_to_px(settings.target_height_in, settings.dpi)
        new_width = max(1, int(math.floor(width * (new_height / height) + 0.5)))
    return new_width, new_height


def apply_tone_curve(field: np.ndarray, *, invert: bool, gamma: float = 1.0) -> np.ndarray:
    """Clamp, gamma-correct and optionally invert a [0, 1] field.

    With ``invert=False`` and ``gamma == 1`` the field passes through unchanged.
    """
    if not invert and gamma == 1.0:
        return field
    base = np.clip(field, LUMINANCE_FLOOR, 1.0)
    if gamma != 1.0:
        base = np.power(base, gamma)
    if invert:
        base = 1.0 - base
    return np.clip(base, 0.0, 1.0).astype(np.float32)


def generate_power_map(pixels: PixelBuffer, settings: PowerMapSettings) -> PowerMapResult:
    """Run the complete power-map pipeline on ``pixels``.

    Args:
        pixels: Source capture.
        settings: Validated run settings.

    Returns:
        PowerMapResult holding the tone-mapped 8-bit buffer and the DPI.
    """
    settings.validate()
    lut = settings.tone_lut()

    field = linear_luminance(pixels)

    if settings.apply_clahe:
        equalized = apply_clahe(quantize_unit(field), settings.clahe_clip, settings.clahe_tile)
        field = equalized.astype(np.float32) / 255.0

    field = apply_tone_curve(field, invert=settings.invert, gamma=settings.gamma)

    if settings.sharpen_amount > 0:
        field = unsharp_mask(field, settings.sharpen_amount, settings.sharpen_sigma)

    target = target_pixel_size(pixels.width, pixels.height, settings)
    if target is not None:
        field = resize_bilinear(field, *target)

    mapped = lut.apply(quantize_unit(field))
    LOGGER.info(
        "Generated %sx%s power map at %s DPI (levels %s)",
        mapped.shape[1],
        mapped.shape[0],
        settings.dpi,
        list(lut.levels),
    )
    return PowerMapResult(data=mapped, dpi=int(settings.dpi))


__all__ = [
    "LUMINANCE_FLOOR",
    "MATERIAL_PRESETS",
    "PowerMapResult",
    "PowerMapSettings",
    "apply_tone_curve",
    "generate_power_map",
    "inches_to_px",
    "target_pixel_size",
]

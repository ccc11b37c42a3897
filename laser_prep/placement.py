"""Gem/rhinestone placement templates sampled from an image.

A square or hexagonal grid of element-sized cells is laid over the physical
canvas. Each cell is mapped to source pixels and accepted according to the
placement mode:

FillMode
    Every cell that fits on the canvas.

ThresholdMode
    Cells whose area-averaged luminance (0-255) is below the threshold.

EdgeMode
    Cells whose centre falls inside a dilated edge mask.

Accepted cells carry the mean RGBA of the pixels under their footprint so
templates can be previewed in colour.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
import math
from typing import Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from .buffers import PixelBuffer
from .cache import EdgeMagnitudeCache
from .color import linear_luminance
from .edges import build_edge_mask
from .errors import ConfigurationError, ensure_positive, ensure_range

LOGGER = logging.getLogger("laser_prep")

# Footprints whose mean alpha falls below this are treated as transparent.
ALPHA_FLOOR = 10.0

# Largest source edge used when sampling placements.
SAMPLE_MAX_DIM = 2048

GEM_SIZES: Dict[str, float] = {
    "SS6": 2.0,
    "SS10": 2.8,
    "SS16": 4.0,
    "SS20": 5.0,
    "SS30": 6.5,
    "SS40": 8.0,
}

UNIT_TO_MM: Dict[str, float] = {"mm": 1.0, "in": 25.4, "px": 25.4 / 96.0}


def to_mm(value: float, unit: str) -> float:
    """Convert a length in ``unit`` (mm, in or px at 96/in) to millimetres."""

    try:
        return value * UNIT_TO_MM[unit]
    except KeyError:
        raise ConfigurationError(
            f"Unknown unit '{unit}' (choose from {sorted(UNIT_TO_MM)})"
        ) from None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class GridType(enum.Enum):
    SQUARE = "square"
    HEX = "hex"


@dataclasses.dataclass(frozen=True)
class GridSpec:
    """Cell layout over a physical canvas.

    Attributes:
        element_diameter: Element diameter in mm.
        width_mm: Canvas width in mm.
        height_mm: Canvas height in mm.
        gap: Gap between elements as a fraction of the diameter.
        grid_type: Square or hexagonal packing.
    """

    element_diameter: float
    width_mm: float
    height_mm: float
    gap: float = 0.0
    grid_type: GridType = GridType.SQUARE

    @property
    def radius(self) -> float:
        return self.element_diameter / 2.0

    @property
    def pitch(self) -> float:
        return self.element_diameter * (1.0 + self.gap)

    @property
    def row_pitch(self) -> float:
        if self.grid_type is GridType.HEX:
            return self.pitch * math.sqrt(3.0) / 2.0
        return self.pitch

    @property
    def cols(self) -> int:
        return max(1, int(math.floor(self.width_mm / self.pitch)))

    @property
    def rows(self) -> int:
        return max(1, int(math.floor(self.height_mm / self.row_pitch)))

    def row_columns(self, row: int) -> int:
        if self.grid_type is GridType.HEX and row % 2 == 1:
            return self.cols - 1
        return self.cols

    @property
    def total_slots(self) -> int:
        """Closed-form count of candidate cells."""

        if self.grid_type is GridType.HEX:
            full_rows = (self.rows + 1) // 2
            offset_rows = self.rows // 2
            return full_rows * self.cols + offset_rows * max(self.cols - 1, 0)
        return self.cols * self.rows

    def cells(self) -> Iterator[Tuple[int, int, float, float]]:
        """Yield ``(row, col, x_mm, y_mm)`` for every candidate cell, row-major."""

        radius = self.radius
        for row in range(self.rows):
            y_mm = radius + row * self.row_pitch
            offset = self.pitch / 2.0 if self.grid_type is GridType.HEX and row % 2 == 1 else 0.0
            for col in range(self.row_columns(row)):
                yield row, col, radius + offset + col * self.pitch, y_mm

    def fits(self, x_mm: float, y_mm: float) -> bool:
        return x_mm + self.radius <= self.width_mm and y_mm + self.radius <= self.height_mm


@dataclasses.dataclass(frozen=True)
class FillMode:
    """Place an element in every cell that fits."""


@dataclasses.dataclass(frozen=True)
class ThresholdMode:
    """Place where the footprint's mean luminance (0-255) is below ``threshold``."""

    threshold: float


@dataclasses.dataclass(frozen=True)
class EdgeMode:
    """Place where the cell centre lies inside ``mask``."""

    mask: np.ndarray


PlacementMode = Union[FillMode, ThresholdMode, EdgeMode]


@dataclasses.dataclass(frozen=True)
class PlacedElement:
    """One accepted cell: centre in mm plus the sampled colour."""

    x: float
    y: float
    r: int
    g: int
    b: int
    a: int

    @property
    def color(self) -> Tuple[int, int, int, int]:
        return self.r, self.g, self.b, self.a


MODE_NAMES = ("fill", "threshold", "edge")


@dataclasses.dataclass
class PlacementSettings:
    """Parameters for a placement run.

    ``threshold`` is the luminance cutoff (0-256) in threshold mode and the
    edge sensitivity (0-255) in edge mode. ``edge_width_rows`` is the edge
    band width expressed in element rows.
    """

    element_diameter: float = GEM_SIZES["SS16"]
    width_mm: float = 100.0
    height_mm: float = 100.0
    gap: float = 0.0
    grid_type: GridType = GridType.HEX
    mode: str = "edge"
    threshold: float = 128
    edge_width_rows: float = 2.0

    def __post_init__(self) -> None:
        if isinstance(self.grid_type, str):
            try:
                self.grid_type = GridType(self.grid_type)
            except ValueError:
                raise ConfigurationError(
                    f"grid_type must be one of {[g.value for g in GridType]}, got {self.grid_type!r}"
                ) from None
        self.validate()

    def validate(self) -> None:
        ensure_positive("element_diameter", self.element_diameter)
        ensure_positive("width_mm", self.width_mm)
        ensure_positive("height_mm", self.height_mm)
        ensure_range("gap", self.gap, 0.0, 1.0)
        if self.mode not in MODE_NAMES:
            raise ConfigurationError(f"mode must be one of {list(MODE_NAMES)}, got {self.mode!r}")
        if self.mode == "threshold":
            ensure_range("threshold", self.threshold, 0, 256)
        elif self.mode == "edge":
            ensure_range("edge sensitivity", self.threshold, 0, 255)
        ensure_range("edge_width_rows", self.edge_width_rows, 0.0, math.inf)

    def grid(self) -> GridSpec:
        return GridSpec(
            element_diameter=self.element_diameter,
            width_mm=self.width_mm,
            height_mm=self.height_mm,
            gap=self.gap,
            grid_type=self.grid_type,
        )


def footprint_radius_px(pixels: PixelBuffer, grid: GridSpec) -> int:
    """Element radius expressed in source pixels (at least one)."""

    scale = min(pixels.width / grid.width_mm, pixels.height / grid.height_mm)
    return max(1, _round_half_up(grid.radius * scale))


def dilation_radius(pixels: PixelBuffer, settings: PlacementSettings) -> int:
    """Convert the edge band width from element rows to a pixel radius."""

    return _round_half_up(footprint_radius_px(pixels, settings.grid()) * settings.edge_width_rows)


def _disc_offsets(radius: int) -> Tuple[np.ndarray, np.ndarray]:
    step = max(1, radius // 4)
    steps = np.arange(-radius, radius + 1, step)
    dy, dx = np.meshgrid(steps, steps, indexing="ij")
    inside = dx * dx + dy * dy <= radius * radius
    return dy[inside], dx[inside]


class _FootprintSampler:
    """Area sampling of luminance and colour under element footprints."""

    def __init__(self, pixels: PixelBuffer, radius: int, need_luminance: bool) -> None:
        self.pixels = pixels
        self.offsets = _disc_offsets(radius)
        self.luminance = linear_luminance(pixels) * 255.0 if need_luminance else None

    def _coords(self, cx: int, cy: int) -> Tuple[np.ndarray, np.ndarray]:
        dy, dx = self.offsets
        ys = cy + dy
        xs = cx + dx
        valid = (xs >= 0) & (xs < self.pixels.width) & (ys >= 0) & (ys < self.pixels.height)
        return ys[valid], xs[valid]

    def mean_luminance_alpha(self, cx: int, cy: int) -> Optional[Tuple[float, float]]:
        ys, xs = self._coords(cx, cy)
        if ys.size == 0:
            return None
        lum = float(self.luminance[ys, xs].mean())
        alpha = float(self.pixels.alpha[ys, xs].astype(np.float64).mean())
        return lum, alpha

    def mean_color(self, cx: int, cy: int) -> Optional[Tuple[int, int, int, int]]:
        ys, xs = self._coords(cx, cy)
        if ys.size == 0:
            return None
        means = self.pixels.pixels[ys, xs].astype(np.float64).mean(axis=0)
        if means[3] < ALPHA_FLOOR:
            return None
        r, g, b, a = (_round_half_up(float(v)) for v in means)
        return r, g, b, a


def sample_elements(pixels: PixelBuffer, grid: GridSpec, mode: PlacementMode) -> List[PlacedElement]:
    """Decide placement for every grid cell and return the accepted elements.

    Args:
        pixels: Source capture, stretched over the whole canvas.
        grid: Cell layout.
        mode: Placement rule.

    Returns:
        Accepted elements in row-major order (top to bottom, left to right).
    """
    if isinstance(mode, EdgeMode) and mode.mask.shape != (pixels.height, pixels.width):
        raise ValueError(
            f"Edge mask shape {mode.mask.shape} does not match image {(pixels.height, pixels.width)}"
        )

    scale_x = pixels.width / grid.width_mm
    scale_y = pixels.height / grid.height_mm
    radius_px = footprint_radius_px(pixels, grid)
    sampler = _FootprintSampler(pixels, radius_px, need_luminance=isinstance(mode, ThresholdMode))

    placed: List[PlacedElement] = []
    for _, _, x_mm, y_mm in grid.cells():
        if not grid.fits(x_mm, y_mm):
            continue
        # Centres clamp to the image so coarse sources still sample at least one pixel.
        cx = min(_round_half_up(x_mm * scale_x), pixels.width - 1)
        cy = min(_round_half_up(y_mm * scale_y), pixels.height - 1)

        if isinstance(mode, FillMode):
            accept = True
        elif isinstance(mode, ThresholdMode):
            stats = sampler.mean_luminance_alpha(cx, cy)
            if stats is None or stats[1] < ALPHA_FLOOR:
                continue
            accept = stats[0] < mode.threshold
        elif isinstance(mode, EdgeMode):
            accept = bool(mode.mask[cy, cx])
        else:
            raise TypeError(f"Unsupported placement mode: {mode!r}")

        if not accept:
            continue
        color = sampler.mean_color(cx, cy)
        if color is None:
            continue
        placed.append(PlacedElement(x_mm, y_mm, *color))

    LOGGER.debug(
        "Placed %s of %s cells (%s grid, radius %spx)",
        len(placed),
        grid.total_slots,
        grid.grid_type.value,
        radius_px,
    )
    return placed


def resolve_mode(
    pixels: PixelBuffer,
    settings: PlacementSettings,
    cache: Optional[EdgeMagnitudeCache] = None,
) -> PlacementMode:
    """Build the placement rule for ``settings``, computing the edge mask if needed."""

    if settings.mode == "fill":
        return FillMode()
    if settings.mode == "threshold":
        return ThresholdMode(float(settings.threshold))
    cache = cache if cache is not None else EdgeMagnitudeCache()
    magnitude = cache.get_or_compute(pixels)
    mask = build_edge_mask(magnitude, int(settings.threshold), dilation_radius(pixels, settings))
    return EdgeMode(mask)


def place_elements(
    pixels: PixelBuffer,
    settings: PlacementSettings,
    cache: Optional[EdgeMagnitudeCache] = None,
) -> List[PlacedElement]:
    """Run a complete placement pass.

    Args:
        pixels: Source capture.
        settings: Validated placement settings.
        cache: Optional edge cache reused across runs on the same image.

    Returns:
        Ordered list of placed elements in mm coordinates.
    """
    settings.validate()
    grid = settings.grid()
    mode = resolve_mode(pixels, settings, cache)
    placed = sample_elements(pixels, grid, mode)
    LOGGER.info(
        "%s mode placed %s of %s possible elements on %.1f x %.1f mm",
        settings.mode,
        len(placed),
        grid.total_slots,
        grid.width_mm,
        grid.height_mm,
    )
    return placed


__all__ = [
    "ALPHA_FLOOR",
    "EdgeMode",
    "FillMode",
    "GEM_SIZES",
    "GridSpec",
    "GridType",
    "MODE_NAMES",
    "PlacedElement",
    "PlacementMode",
    "PlacementSettings",
    "SAMPLE_MAX_DIM",
    "ThresholdMode",
    "UNIT_TO_MM",
    "dilation_radius",
    "footprint_radius_px",
    "place_elements",
    "resolve_mode",
    "sample_elements",
    "to_mm",
]

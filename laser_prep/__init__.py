"""Image preparation toolkit for laser engraving and gem placement templates.

Two consumers share one image-analysis core: a power-map generator that turns
a photograph into a calibrated grayscale depth map for variable-depth
engraving, and a placement sampler that turns a photograph into a template of
gem/rhinestone positions.

Module Organization
-------------------

buffers
    PixelBuffer capture plus ScalarField/BinaryMask conventions.

color
    sRGB linearization and Rec. 709 luminance.

filters
    Separable Gaussian blur, unsharp mask and bilinear resampling.

edges
    Sobel edge magnitude, thresholding and disc dilation.

clahe
    Contrast-limited adaptive histogram equalization.

tone
    Calibration tone LUTs.

engrave
    Power-map pipeline, settings and material presets.

placement
    Grid geometry, placement modes and the placement sampler.

cache
    Edge magnitude memoization across repeated placement runs.

template
    SVG template rendering.

io_utils
    Image loading and staged output writes.

cli
    ``laser-prep engrave`` and ``laser-prep place`` commands.

Example Usage
-------------

    from laser_prep import (
        MATERIAL_PRESETS,
        PlacementSettings,
        generate_power_map,
        load_pixels,
        place_elements,
    )

    pixels = load_pixels(Path("portrait.jpg"))
    power_map = generate_power_map(pixels, MATERIAL_PRESETS["plywood"])

    elements = place_elements(
        pixels,
        PlacementSettings(element_diameter=4.0, width_mm=120, height_mm=90, mode="threshold"),
    )
"""
from __future__ import annotations

import logging

from .buffers import PixelBuffer, quantize_unit
from .cache import EdgeMagnitudeCache
from .clahe import apply_clahe
from .color import linear_luminance, srgb_to_linear
from .edges import build_edge_mask, dilate_mask, sobel_magnitude, threshold_edges
from .engrave import (
    MATERIAL_PRESETS,
    PowerMapResult,
    PowerMapSettings,
    generate_power_map,
    target_pixel_size,
)
from .errors import ConfigurationError
from .filters import gaussian_blur, gaussian_kernel, resize_bilinear, unsharp_mask
from .io_utils import load_pixels, save_power_map
from .placement import (
    GEM_SIZES,
    EdgeMode,
    FillMode,
    GridSpec,
    GridType,
    PlacedElement,
    PlacementSettings,
    ThresholdMode,
    place_elements,
    sample_elements,
)
from .template import render_placement_svg
from .tone import ToneLUT, build_tone_lut

LOGGER = logging.getLogger("laser_prep")

__all__ = [
    "ConfigurationError",
    "EdgeMagnitudeCache",
    "EdgeMode",
    "FillMode",
    "GEM_SIZES",
    "GridSpec",
    "GridType",
    "MATERIAL_PRESETS",
    "PixelBuffer",
    "PlacedElement",
    "PlacementSettings",
    "PowerMapResult",
    "PowerMapSettings",
    "ThresholdMode",
    "ToneLUT",
    "apply_clahe",
    "build_edge_mask",
    "build_tone_lut",
    "dilate_mask",
    "gaussian_blur",
    "gaussian_kernel",
    "generate_power_map",
    "linear_luminance",
    "load_pixels",
    "place_elements",
    "quantize_unit",
    "render_placement_svg",
    "resize_bilinear",
    "sample_elements",
    "save_power_map",
    "sobel_magnitude",
    "srgb_to_linear",
    "target_pixel_size",
    "threshold_edges",
    "unsharp_mask",
]

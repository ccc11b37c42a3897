"""SVG placement templates for laser cutting."""
from __future__ import annotations

from typing import Sequence

import svg

from .errors import ConfigurationError
from .placement import UNIT_TO_MM, PlacedElement

# 0.1 pt hairline, the cut-line width most laser drivers expect.
EXPORT_STROKE_MM = 0.035


def render_placement_svg(
    elements: Sequence[PlacedElement],
    width_mm: float,
    height_mm: float,
    element_diameter: float,
    *,
    stroke_width: float = EXPORT_STROKE_MM,
    stroke_color: str = "#ff0000",
    colorize: bool = False,
    unit: str = "mm",
) -> str:
    """Render placed elements as unfilled circles.

    Args:
        elements: Placed elements in mm coordinates.
        width_mm: Canvas width in mm.
        height_mm: Canvas height in mm.
        element_diameter: Element diameter in mm.
        stroke_width: Outline width in mm.
        stroke_color: Outline colour when not colorizing.
        colorize: Stroke each circle with its sampled colour.
        unit: Unit used for the document's physical width/height.

    Returns:
        SVG document as a string. The viewBox is always in millimetres.
    """
    if unit not in UNIT_TO_MM:
        raise ConfigurationError(f"Unknown unit '{unit}' (choose from {sorted(UNIT_TO_MM)})")
    scale = UNIT_TO_MM[unit]
    radius = element_diameter / 2.0

    circles: list[svg.Element] = []
    for element in elements:
        color = f"rgb({element.r},{element.g},{element.b})" if colorize else stroke_color
        circles.append(
            svg.Circle(
                cx=round(element.x, 3),
                cy=round(element.y, 3),
                r=round(radius, 3),
                fill="none",
                stroke=color,
                stroke_width=stroke_width,
            )
        )

    document = svg.SVG(
        width=f"{width_mm / scale:.3f}{unit}",
        height=f"{height_mm / scale:.3f}{unit}",
        viewBox=svg.ViewBoxSpec(0, 0, round(width_mm, 3), round(height_mm, 3)),
        elements=[svg.G(elements=circles)],
    )
    return document.as_str()


__all__ = ["EXPORT_STROKE_MM", "render_placement_svg"]

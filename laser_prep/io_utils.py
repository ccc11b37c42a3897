"""Image loading and staged output writes.

Functions
---------

load_pixels
    Decode an image file into a :class:`~laser_prep.buffers.PixelBuffer`,
    optionally capping its long edge.

save_power_map
    Write a power map through Pillow with its DPI recorded by the encoder.

write_text
    Atomically write a text document such as an SVG template.

staged_write
    Context manager behind both writers: stage beside the destination, then
    replace it in one step.
"""
from __future__ import annotations

import contextlib
import logging
import os
import uuid
from pathlib import Path
from typing import Iterator, Optional

from PIL import Image

from .buffers import PixelBuffer
from .engrave import PowerMapResult

LOGGER = logging.getLogger("laser_prep")


@contextlib.contextmanager
def staged_write(destination: Path) -> Iterator[Path]:
    """Yield a hidden sibling path and move it onto ``destination`` on success.

    The staged file is removed if the block raises, so a failed save never
    leaves a truncated output behind.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    staged = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.part")
    try:
        yield staged
        os.replace(staged, destination)
    finally:
        with contextlib.suppress(FileNotFoundError):
            staged.unlink()


def load_pixels(path: Path, max_dim: Optional[int] = None) -> PixelBuffer:
    """Load an image file as RGBA.

    Args:
        path: Source image (any format Pillow can decode).
        max_dim: Optional cap on the long edge; larger images are downscaled
            preserving aspect ratio.

    Raises:
        ValueError: If the file cannot be decoded.
    """
    try:
        with Image.open(path) as image:
            image = image.convert("RGBA")
    except (OSError, ValueError) as exc:
        raise ValueError(f"Failed to load image {path}: {exc}") from exc

    width, height = image.size
    if max_dim is not None and max(width, height) > max_dim:
        scale = max_dim / float(max(width, height))
        new_size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
        LOGGER.debug("Downscaling %s from %sx%s to %sx%s", path, width, height, *new_size)
        image = image.resize(new_size, Image.Resampling.BILINEAR)
    return PixelBuffer.from_image(image)


def _format_for(destination: Path) -> str:
    extension = destination.suffix.lower()
    fmt = Image.registered_extensions().get(extension)
    if fmt is None:
        raise ValueError(f"Unsupported output extension '{extension}' for {destination}")
    return fmt


def save_power_map(destination: Path, result: PowerMapResult) -> Path:
    """Save ``result`` as a grayscale image carrying its DPI."""

    fmt = _format_for(destination)
    image = result.to_image()
    with staged_write(destination) as staged_path:
        image.save(staged_path, format=fmt, dpi=(result.dpi, result.dpi))
    LOGGER.info("Wrote %s (%sx%s @ %s DPI)", destination, result.width, result.height, result.dpi)
    return destination


def write_text(destination: Path, text: str) -> Path:
    with staged_write(destination) as staged_path:
        staged_path.write_text(text, encoding="utf-8")
    LOGGER.info("Wrote %s", destination)
    return destination


__all__ = ["load_pixels", "save_power_map", "staged_write", "write_text"]

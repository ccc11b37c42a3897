"""Buffer containers shared by every processing stage.

Pixel data travels through the toolkit as plain numpy arrays laid out
row-major with shape ``(height, width[, channels])``:

PixelBuffer
    Read-only ``uint8`` RGBA capture of a decoded image in encoded sRGB.

ScalarField
    ``float32`` array of shape ``(height, width)`` used for luminance, blur
    intermediates, edge magnitude and continuous tone output.

BinaryMask
    ``bool`` array with the shape of the field it was derived from.
"""
from __future__ import annotations

import dataclasses
import hashlib

import numpy as np
from PIL import Image

ScalarField = np.ndarray
BinaryMask = np.ndarray


@dataclasses.dataclass(frozen=True)
class PixelBuffer:
    """Immutable RGBA pixel capture.

    Attributes:
        pixels: ``uint8`` array of shape ``(height, width, 4)``.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        arr = self.pixels
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"PixelBuffer requires an (H, W, 4) array, got shape {arr.shape}")
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ValueError("PixelBuffer dimensions must be non-zero")
        if arr.dtype != np.uint8:
            raise ValueError(f"PixelBuffer requires uint8 samples, got {arr.dtype}")
        frozen = np.ascontiguousarray(arr)
        if frozen is arr:
            frozen = arr.copy()
        frozen.setflags(write=False)
        object.__setattr__(self, "pixels", frozen)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]

    def fingerprint(self) -> str:
        """Return a content hash identifying this capture."""

        digest = hashlib.md5(self.pixels.tobytes())
        digest.update(repr(self.pixels.shape).encode("ascii"))
        return digest.hexdigest()

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "PixelBuffer":
        """Build a buffer from a grayscale, RGB or RGBA ``uint8`` array.

        Missing alpha is filled with 255 (fully opaque).
        """
        arr = np.asarray(arr)
        if arr.dtype != np.uint8:
            raise ValueError(f"Expected uint8 samples, got {arr.dtype}")
        if arr.ndim == 2:
            arr = np.repeat(arr[:, :, None], 3, axis=2)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"Unsupported array shape for PixelBuffer: {arr.shape}")
        if arr.shape[2] == 3:
            opaque = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr, opaque], axis=2)
        return cls(np.array(arr, dtype=np.uint8, copy=True))

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        """Capture a PIL image as RGBA."""

        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls(np.array(image, dtype=np.uint8))


def require_field(arr: np.ndarray, name: str = "field") -> np.ndarray:
    """Validate a single-channel buffer and return it as ``float32``."""

    if arr.ndim != 2:
        raise ValueError(f"{name} must be two-dimensional, got shape {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise ValueError(f"{name} dimensions must be non-zero")
    return np.asarray(arr, dtype=np.float32)


def quantize_unit(field: np.ndarray) -> np.ndarray:
    """Scale a [0, 1] field to ``uint8`` with round-half-up."""

    scaled = np.clip(field * 255.0, 0.0, 255.0)
    return np.floor(scaled + 0.5).astype(np.uint8)


__all__ = [
    "BinaryMask",
    "PixelBuffer",
    "ScalarField",
    "quantize_unit",
    "require_field",
]

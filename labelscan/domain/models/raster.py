"""Raster value types passed between the image stages of the pipeline."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

# Clockwise rotations tried by the orientation search, upright first.
ORIENTATION_ANGLES: tuple[int, ...] = (0, 90, 180, 270)

COLOR_CHANNELS = 4
LUMINANCE_CHANNELS = 1


@dataclass(frozen=True)
class RasterImage:
    """An immutable pixel raster.

    Color rasters carry 4 bytes per pixel (R, G, B, A); brightness rasters
    carry 1 byte per pixel. Transforms never mutate a raster, they build a
    new one.
    """

    width: int
    height: int
    pixels: bytes
    channels: int = COLOR_CHANNELS

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Raster dimensions must be positive, got {self.width}x{self.height}"
            )
        if self.channels not in (COLOR_CHANNELS, LUMINANCE_CHANNELS):
            raise ValueError(f"Unsupported channel count: {self.channels}")
        expected = self.width * self.height * self.channels
        if len(self.pixels) != expected:
            raise ValueError(
                f"Pixel buffer has {len(self.pixels)} bytes, expected {expected}"
            )

    @property
    def is_luminance(self) -> bool:
        return self.channels == LUMINANCE_CHANNELS

    def to_array(self) -> np.ndarray:
        """Return a writable ``uint8`` copy shaped (height, width[, channels])."""
        array = np.frombuffer(self.pixels, dtype=np.uint8)
        if self.is_luminance:
            return array.reshape(self.height, self.width).copy()
        return array.reshape(self.height, self.width, self.channels).copy()

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterImage":
        """Build a raster from a 2-D (brightness) or 3-D RGBA ``uint8`` array."""
        if array.ndim == 2:
            height, width = array.shape
            channels = LUMINANCE_CHANNELS
        elif array.ndim == 3:
            height, width, channels = array.shape
        else:
            raise ValueError(f"Expected a 2-D or 3-D array, got {array.ndim} dims")
        data = np.ascontiguousarray(array, dtype=np.uint8).tobytes()
        return cls(width=width, height=height, pixels=data, channels=channels)


@dataclass(frozen=True)
class OrientedRaster:
    """A raster tagged with the clockwise rotation that produced it."""

    raster: RasterImage
    angle: int

    def __post_init__(self) -> None:
        if self.angle not in ORIENTATION_ANGLES:
            raise ValueError(f"Unsupported orientation angle: {self.angle}")

    @property
    def width(self) -> int:
        return self.raster.width

    @property
    def height(self) -> int:
        return self.raster.height

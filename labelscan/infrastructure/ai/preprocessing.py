"""Image preprocessing for barcode recognition.

Three pure stages feed the barcode reader:

1. ``decode_image`` turns compressed photo bytes into an RGBA raster.
2. ``project_luminance`` reduces it to a single brightness channel.
3. ``OrientationSearch`` yields the brightness raster at 0/90/180/270
   degrees clockwise, upright first.
"""

from __future__ import annotations

import io
import warnings
from typing import Iterator

import numpy as np
from PIL import Image, UnidentifiedImageError

from labelscan.domain.models import (
    ORIENTATION_ANGLES,
    ErrorKind,
    Failure,
    OrientedRaster,
    RasterImage,
)
from labelscan.infrastructure.observability import get_logger

logger = get_logger(__name__)

# Declared content types mapped to the Pillow formats allowed to open them.
# A content type missing from this map accepts whatever Pillow can identify.
CONTENT_TYPE_FORMATS: dict[str, tuple[str, ...]] = {
    "image/jpeg": ("JPEG", "MPO"),
    "image/jpg": ("JPEG", "MPO"),
    "image/pjpeg": ("JPEG", "MPO"),
    "image/png": ("PNG",),
    "image/webp": ("WEBP",),
}


def _declared_formats(content_type: str | None) -> tuple[str, ...] | None:
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    return CONTENT_TYPE_FORMATS.get(mime)


def decode_image(
    image_data: bytes, content_type: str | None = None
) -> RasterImage | Failure:
    """Decompress a photo into an RGBA raster.

    Args:
        image_data: Encoded image bytes.
        content_type: Declared MIME type. JPEG, PNG and WebP restrict
            decoding to that format; anything else (including
            ``application/octet-stream``) lets Pillow detect the format.

    Returns:
        The color raster, or an ``UnreadableImage`` failure.
    """
    if not image_data:
        return Failure(ErrorKind.UNREADABLE_IMAGE, "Image payload is empty")

    formats = _declared_formats(content_type)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            with Image.open(io.BytesIO(image_data), formats=formats) as image:
                image.load()
                rgba = image.convert("RGBA")
    except UnidentifiedImageError as exc:
        expected = f" as {'/'.join(formats)}" if formats else ""
        return Failure(
            ErrorKind.UNREADABLE_IMAGE,
            f"Unable to decode image data{expected}",
            cause=exc,
        )
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError,
            Image.DecompressionBombWarning) as exc:
        return Failure(
            ErrorKind.UNREADABLE_IMAGE,
            f"Unable to decode image data: {exc}",
            cause=exc,
        )

    width, height = rgba.size
    if width == 0 or height == 0:
        return Failure(ErrorKind.UNREADABLE_IMAGE, "Image has zero dimensions")

    logger.debug("Decoded %dx%d image", width, height)
    return RasterImage(width=width, height=height, pixels=rgba.tobytes(), channels=4)


def project_luminance(raster: RasterImage) -> RasterImage:
    """Reduce a color raster to brightness with ``(R + 2G + B) >> 2``.

    Green carries most of the perceived luminance, and the integer mix is
    enough for a binarizing barcode reader.
    """
    if raster.is_luminance:
        return raster
    rgba = raster.to_array().astype(np.uint16)
    luminance = (rgba[..., 0] + 2 * rgba[..., 1] + rgba[..., 2]) >> 2
    return RasterImage.from_array(np.clip(luminance, 0, 255).astype(np.uint8))


def rotate_raster(raster: RasterImage, angle: int) -> RasterImage:
    """Rotate a raster clockwise by 0, 90, 180 or 270 degrees."""
    if angle not in ORIENTATION_ANGLES:
        raise ValueError(f"Unsupported rotation angle: {angle}")
    if angle == 0:
        return raster
    # np.rot90 turns counter-clockwise for positive k
    turns = (-angle // 90) % 4
    return RasterImage.from_array(np.rot90(raster.to_array(), k=turns))


class OrientationSearch:
    """Lazy, restartable sequence of a raster's four orientations.

    Each iteration starts again from the source raster and only rotates as
    far as the consumer reads, so an upright label costs one attempt.
    """

    def __init__(
        self,
        raster: RasterImage,
        angles: tuple[int, ...] = ORIENTATION_ANGLES,
    ) -> None:
        for angle in angles:
            if angle not in ORIENTATION_ANGLES:
                raise ValueError(f"Unsupported rotation angle: {angle}")
        self.raster = raster
        self.angles = angles

    def __iter__(self) -> Iterator[OrientedRaster]:
        for angle in self.angles:
            yield OrientedRaster(raster=rotate_raster(self.raster, angle), angle=angle)

    def __len__(self) -> int:
        return len(self.angles)

"""Linear barcode recognition backed by zxing-cpp.

The reader only accepts one-dimensional symbologies; matrix codes (QR,
DataMatrix, ...) are never valid asset labels. Rotation is left to the
orientation search, so the library's own rotation pass is switched off.
"""

from __future__ import annotations

import functools
import operator
from dataclasses import dataclass
from typing import Any, Callable

import zxingcpp

from labelscan.domain.models import (
    ErrorKind,
    Failure,
    OrientedRaster,
    RecognitionResult,
)
from labelscan.infrastructure.observability import get_logger

logger = get_logger(__name__)

# zxing-cpp format names mapped to the canonical names reported to callers.
LINEAR_SYMBOLOGIES: dict[str, str] = {
    "Code128": "CODE_128",
    "Code39": "CODE_39",
    "Code93": "CODE_93",
    "Codabar": "CODABAR",
    "EAN8": "EAN_8",
    "EAN13": "EAN_13",
    "ITF": "ITF",
    "UPCA": "UPC_A",
    "UPCE": "UPC_E",
}

NOT_FOUND_MESSAGE = "No supported linear barcode found in the supplied image"


@dataclass(frozen=True)
class RecognizerConfig:
    """Immutable recognizer settings handed to every SymbolReader.

    Attributes:
        symbologies: zxing-cpp format names the reader may report.
        try_harder: Spend extra effort (downscaled passes) on each attempt.
        binarizer: zxing-cpp binarizer used to derive the bitonal image.
            ``LocalAverage`` is the hybrid local-threshold binarizer.
    """

    symbologies: tuple[str, ...] = tuple(LINEAR_SYMBOLOGIES)
    try_harder: bool = True
    binarizer: str = "LocalAverage"

    def __post_init__(self) -> None:
        unknown = [name for name in self.symbologies if name not in LINEAR_SYMBOLOGIES]
        if unknown:
            raise ValueError(f"Not a supported linear symbology: {', '.join(unknown)}")
        if not self.symbologies:
            raise ValueError("At least one symbology is required")

    def format_mask(self) -> Any:
        """Return the zxing-cpp format set for the allow-list."""
        formats = [getattr(zxingcpp.BarcodeFormat, name) for name in self.symbologies]
        return functools.reduce(operator.or_, formats)

    def binarizer_option(self) -> Any:
        return getattr(zxingcpp.Binarizer, self.binarizer)


class SymbolReader:
    """Reads a single linear barcode from one oriented brightness raster.

    A reader is meant for one attempt: the orchestrator builds a fresh
    instance per orientation so nothing carries over between attempts.
    """

    def __init__(self, config: RecognizerConfig | None = None) -> None:
        self.config = config or RecognizerConfig()

    def read(self, oriented: OrientedRaster) -> RecognitionResult | Failure:
        """Recognize the first allowed barcode in ``oriented``.

        Returns:
            RecognitionResult on success, ``SymbolNotFound`` failure otherwise.
        """
        raster = oriented.raster
        if not raster.is_luminance:
            raise ValueError("SymbolReader expects a brightness raster")

        results = zxingcpp.read_barcodes(
            raster.to_array(),
            formats=self.config.format_mask(),
            try_rotate=False,
            try_downscale=self.config.try_harder,
            binarizer=self.config.binarizer_option(),
        )
        for result in results:
            format_name = _format_name(result.format)
            if format_name not in self.config.symbologies:
                logger.debug(
                    "Ignoring %s symbol outside the allow-list at %d degrees",
                    format_name,
                    oriented.angle,
                )
                continue
            logger.debug("Read %s symbol at %d degrees", format_name, oriented.angle)
            return RecognitionResult(
                raw_text=result.text,
                symbology=LINEAR_SYMBOLOGIES[format_name],
            )

        return Failure(
            ErrorKind.SYMBOL_NOT_FOUND,
            f"{NOT_FOUND_MESSAGE} (rotation {oriented.angle})",
        )


def _format_name(barcode_format: Any) -> str:
    name = getattr(barcode_format, "name", None)
    if name:
        return str(name)
    return str(barcode_format).rsplit(".", 1)[-1]


ReaderFactory = Callable[[RecognizerConfig], SymbolReader]


__all__ = [
    "LINEAR_SYMBOLOGIES",
    "NOT_FOUND_MESSAGE",
    "ReaderFactory",
    "RecognizerConfig",
    "SymbolReader",
]

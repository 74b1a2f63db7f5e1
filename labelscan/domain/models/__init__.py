"""Domain models package.

This package contains the raster and scan value types used by the decode
pipeline.
"""

from .raster import ORIENTATION_ANGLES, OrientedRaster, RasterImage
from .scan import (
    DecodeOutcome,
    ErrorKind,
    Failure,
    FieldDiagnostic,
    FieldStatus,
    OcrExtraction,
    RecognitionResult,
    Strategy,
    StructuredIdentifiers,
    Success,
)

__all__ = [
    "ORIENTATION_ANGLES",
    "DecodeOutcome",
    "ErrorKind",
    "Failure",
    "FieldDiagnostic",
    "FieldStatus",
    "OcrExtraction",
    "OrientedRaster",
    "RasterImage",
    "RecognitionResult",
    "Strategy",
    "StructuredIdentifiers",
    "Success",
]

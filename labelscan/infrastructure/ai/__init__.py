"""Recognition infrastructure: image preprocessing, barcode reading, OCR
fallback and label code validation."""

from .code_validation import (
    CodeType,
    ValidationResult,
    parse_identifiers,
    strip_leading_one,
    validate_asset_tag,
    validate_model_code,
)
from .image_analyzer import OcrCapability, OpenAIAnalyzer, resolve_ocr_capability
from .preprocessing import (
    OrientationSearch,
    decode_image,
    project_luminance,
    rotate_raster,
)
from .symbol_reader import LINEAR_SYMBOLOGIES, RecognizerConfig, SymbolReader

__all__ = [
    # Preprocessing
    "OrientationSearch",
    "decode_image",
    "project_luminance",
    "rotate_raster",
    # Barcode reading
    "LINEAR_SYMBOLOGIES",
    "RecognizerConfig",
    "SymbolReader",
    # OCR fallback
    "OcrCapability",
    "OpenAIAnalyzer",
    "resolve_ocr_capability",
    # Validation
    "CodeType",
    "ValidationResult",
    "parse_identifiers",
    "strip_leading_one",
    "validate_asset_tag",
    "validate_model_code",
]

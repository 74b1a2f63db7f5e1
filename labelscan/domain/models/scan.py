"""Scan result models: recognition output, identifiers and decode outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union


class ErrorKind(str, Enum):
    """Reasons a decode stage can fail."""

    UNREADABLE_IMAGE = "UnreadableImage"
    SYMBOL_NOT_FOUND = "SymbolNotFound"
    OCR_UNAVAILABLE = "OcrUnavailable"
    OCR_REQUEST_FAILED = "OcrRequestFailed"
    MALFORMED_IDENTIFIER = "MalformedIdentifier"
    INVALID_ASSET_TAG = "InvalidAssetTag"
    INVALID_MODEL_CODE = "InvalidModelCode"

    @property
    def is_parse_error(self) -> bool:
        """True for failures raised by the identifier parser."""
        return self in (
            ErrorKind.MALFORMED_IDENTIFIER,
            ErrorKind.INVALID_ASSET_TAG,
            ErrorKind.INVALID_MODEL_CODE,
        )


class Strategy(str, Enum):
    """Recognition strategy that produced a successful decode."""

    SYMBOL = "symbol"
    OCR = "ocr"


class FieldStatus(str, Enum):
    """Per-field status reported by the OCR fallback."""

    OK = "ok"
    MISSING = "missing"
    LOW_CONFIDENCE = "low-confidence"
    INVALID = "invalid"


@dataclass(frozen=True)
class RecognitionResult:
    """Text read from a linear barcode."""

    raw_text: str
    symbology: str


@dataclass(frozen=True)
class FieldDiagnostic:
    """What the OCR fallback saw for a single label field."""

    value: str | None
    status: FieldStatus
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "status": self.status.value,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class OcrExtraction:
    """Structured extraction returned by the OCR fallback."""

    combined_text: str
    field_diagnostics: Mapping[str, FieldDiagnostic] = field(default_factory=dict)

    def diagnostics_dict(self) -> dict[str, dict[str, Any]]:
        return {name: diag.to_dict() for name, diag in self.field_diagnostics.items()}


@dataclass(frozen=True)
class StructuredIdentifiers:
    """A validated model code / asset tag pair.

    ``combined_code`` is derived so it always equals
    ``model_code + " " + asset_tag``.
    """

    raw_code: str
    model_code: str
    asset_tag: str

    @property
    def combined_code(self) -> str:
        return f"{self.model_code} {self.asset_tag}"

    def to_dict(self) -> dict[str, str]:
        return {
            "raw_code": self.raw_code,
            "model_code": self.model_code,
            "asset_tag": self.asset_tag,
            "combined_code": self.combined_code,
        }


@dataclass(frozen=True)
class Failure:
    """A stage failure carried as a value.

    ``cause`` keeps the underlying exception, if any, for diagnostics. It is
    not part of equality.
    """

    kind: ErrorKind
    message: str
    cause: BaseException | None = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, str]:
        return {"error_kind": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class Success:
    """A completed decode."""

    identifiers: StructuredIdentifiers
    strategy: Strategy
    symbology: str | None = None
    ocr_diagnostics: Mapping[str, FieldDiagnostic] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = self.identifiers.to_dict()
        payload["strategy"] = self.strategy.value
        payload["symbology"] = self.symbology
        payload["ocr_diagnostics"] = (
            {name: diag.to_dict() for name, diag in self.ocr_diagnostics.items()}
            if self.ocr_diagnostics is not None
            else None
        )
        return payload


DecodeOutcome = Union[Success, Failure]

"""Validation and normalisation of asset label codes.

A label reads ``<model code> <asset tag>``:

- Asset tag: 3 letters followed by 4-5 digits (e.g. ``HBJ04724``).
- Model code: 4-16 characters of letters, digits and hyphens
  (e.g. ``E3012804``).

The same rules apply whether the text came from a barcode or from the OCR
fallback, so both strategies produce identical identifiers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from labelscan.domain.models import ErrorKind, Failure, StructuredIdentifiers

ASSET_TAG_PATTERN = re.compile(r"^[A-Z]{3}[0-9]{4,5}$")
MODEL_CODE_PATTERN = re.compile(r"^[A-Z0-9-]{4,16}$")

_WHITESPACE = re.compile(r"\s+")


class CodeType(str, Enum):
    """The two halves of an asset label."""

    ASSET_TAG = "asset_tag"
    MODEL_CODE = "model_code"


@dataclass
class ValidationResult:
    """Result of code validation."""

    is_valid: bool
    code_type: CodeType
    normalized_code: str
    original_code: str
    error_message: str | None = None


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim the ends."""
    return _WHITESPACE.sub(" ", text).strip()


def strip_leading_one(candidate: str) -> str:
    """Drop a single stray leading ``1`` from a model-code candidate.

    Some barcode readers prepend a ``1`` to the encoded model code
    (``1E3012804`` for ``E3012804``). The ``1`` is only dropped when the rest
    is still a valid model code, so ``1ABC`` stays ``1ABC``. Only observed on
    one label layout, so it is kept apart from the model-code pattern.
    """
    if candidate.startswith("1") and MODEL_CODE_PATTERN.match(candidate[1:]):
        return candidate[1:]
    return candidate


def validate_asset_tag(code: str) -> ValidationResult:
    """Validate an asset tag: 3 letters + 4-5 digits.

    Args:
        code: Candidate tag, any case.

    Returns:
        ValidationResult with the uppercased tag.
    """
    normalized = code.strip().upper()
    if not ASSET_TAG_PATTERN.match(normalized):
        return ValidationResult(
            is_valid=False,
            code_type=CodeType.ASSET_TAG,
            normalized_code=normalized,
            original_code=code,
            error_message=(
                f'Asset tag "{normalized}" must be 3 letters followed by 4-5 digits'
            ),
        )
    return ValidationResult(
        is_valid=True,
        code_type=CodeType.ASSET_TAG,
        normalized_code=normalized,
        original_code=code,
    )


def validate_model_code(code: str, compensate_leading_one: bool = True) -> ValidationResult:
    """Validate a model code: 4-16 letters, digits or hyphens.

    Args:
        code: Candidate model code, any case.
        compensate_leading_one: Apply ``strip_leading_one`` before matching.

    Returns:
        ValidationResult with the uppercased, compensated code.
    """
    normalized = code.strip().upper()
    if compensate_leading_one:
        normalized = strip_leading_one(normalized)
    if not MODEL_CODE_PATTERN.match(normalized):
        return ValidationResult(
            is_valid=False,
            code_type=CodeType.MODEL_CODE,
            normalized_code=normalized,
            original_code=code,
            error_message=(
                f'Model code "{normalized}" must be 4-16 letters, digits or hyphens'
            ),
        )
    return ValidationResult(
        is_valid=True,
        code_type=CodeType.MODEL_CODE,
        normalized_code=normalized,
        original_code=code,
    )


def parse_identifiers(
    raw_text: str | None,
    compensate_leading_one: bool = True,
) -> StructuredIdentifiers | Failure:
    """Parse decoded label text into a model code / asset tag pair.

    The last whitespace-separated token is the asset tag; every token before
    it, joined without separators, is the model code.

    Args:
        raw_text: Text read from a barcode or returned by the OCR fallback.
        compensate_leading_one: Strip a stray leading ``1`` from the model code.

    Returns:
        StructuredIdentifiers, or a MalformedIdentifier / InvalidAssetTag /
        InvalidModelCode failure.
    """
    text = normalize_whitespace(raw_text or "")
    tokens = text.split(" ") if text else []
    if len(tokens) < 2:
        return Failure(
            ErrorKind.MALFORMED_IDENTIFIER,
            f'Expected "<model code> <asset tag>", got "{text}"',
        )

    asset = validate_asset_tag(tokens[-1])
    if not asset.is_valid:
        return Failure(ErrorKind.INVALID_ASSET_TAG, asset.error_message or "")

    model = validate_model_code(
        "".join(tokens[:-1]), compensate_leading_one=compensate_leading_one
    )
    if not model.is_valid:
        return Failure(ErrorKind.INVALID_MODEL_CODE, model.error_message or "")

    return StructuredIdentifiers(
        raw_code=raw_text or "",
        model_code=model.normalized_code,
        asset_tag=asset.normalized_code,
    )


__all__ = [
    "ASSET_TAG_PATTERN",
    "MODEL_CODE_PATTERN",
    "CodeType",
    "ValidationResult",
    "normalize_whitespace",
    "parse_identifiers",
    "strip_leading_one",
    "validate_asset_tag",
    "validate_model_code",
]

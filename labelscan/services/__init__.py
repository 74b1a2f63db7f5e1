"""Service layer modules for labelscan."""

from .label_decoding import (  # noqa: F401
    DecodeState,
    LabelDecodingService,
    build_decoding_service,
    combine_failures,
)

__all__ = [
    "DecodeState",
    "LabelDecodingService",
    "build_decoding_service",
    "combine_failures",
]

"""CLI interface for labelscan.

This package is the home for all Click commands; run it with
``python -m labelscan.interfaces.cli`` or the ``labelscan`` console script.
"""

from .__main__ import cli
from .decode import decode_label
from .serve import serve

__all__ = ["cli", "decode_label", "serve"]

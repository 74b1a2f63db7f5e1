"""Infrastructure layer for labelscan.

Holds adapters for image processing, barcode recognition, the OCR service
and observability.
"""

from . import ai, observability

__all__ = ["ai", "observability"]

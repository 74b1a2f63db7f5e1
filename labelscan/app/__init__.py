"""Application orchestration layer.

Coordinates configuration and the HTTP adapter around the decoding service.
The FastAPI app lives in ``labelscan.app.api`` and is imported on demand.
"""

from . import config

__all__ = ["config"]

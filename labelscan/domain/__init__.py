"""Domain layer for labelscan.

Pure value types shared by the decode pipeline, free of infrastructure and
interface details.
"""

from . import models

__all__ = ["models"]

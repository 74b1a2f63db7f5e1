"""
labelscan package initializer.

This package decodes photographed hardware-asset labels into a validated
model code / asset tag pair, reading the printed linear barcode first and
falling back to a vision-model OCR service when no barcode can be read.

The package exposes a ``__version__`` attribute indicating the installed
version. The version is read from pyproject.toml via importlib.metadata.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("labelscan")
except PackageNotFoundError:
    # Package is not installed (running from source without pip install -e .)
    __version__ = "0.0.0.dev"

__all__: list[str] = ["__version__"]

"""Raster image diffing with line grouping and remote text recognition."""

from __future__ import annotations

from .compare import DiffResult, compare_images
from .core.types import BoundingBox, DiffRegion, LineGroup, LineResult, Point
from .errors import DimensionMismatchError
from .presets import DiffParams, get_preset, iter_presets
from .utils.image_io import RasterBuffer

__all__ = [
    "compare_images",
    "DiffResult",
    "BoundingBox",
    "DiffRegion",
    "LineGroup",
    "LineResult",
    "Point",
    "DimensionMismatchError",
    "DiffParams",
    "get_preset",
    "iter_presets",
    "RasterBuffer",
]

__version__ = "0.3.0"

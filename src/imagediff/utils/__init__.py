"""Utility functions used across the project."""

from .image_io import RasterBuffer, encode_png_data_url, load_raster, save_raster

__all__ = [
    "RasterBuffer",
    "encode_png_data_url",
    "load_raster",
    "save_raster",
]

"""Conversion between image files, encoded strings and RGBA rasters."""
from __future__ import annotations

import base64
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Union

import numpy as np
from PIL import Image

PathLike = Union[str, Path]

DATA_URL_PREFIX = "data:image/png;base64,"


@dataclass(frozen=True)
class RasterBuffer:
    """Row-major RGBA pixels with a top-left origin, shape ``(H, W, 4)``."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) array, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            pixels = np.clip(pixels, 0, 255).astype(np.uint8)
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple:
        return (self.width, self.height)

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> "RasterBuffer":
        expected = width * height * 4
        if len(data) != expected:
            raise ValueError(f"Expected {expected} bytes for {width}x{height} RGBA, got {len(data)}")
        pixels = np.frombuffer(bytes(data), dtype=np.uint8).reshape(height, width, 4).copy()
        return cls(pixels)

    @classmethod
    def solid(cls, width: int, height: int, color: Sequence[int] = (255, 255, 255, 255)) -> "RasterBuffer":
        rgba = list(color) + [255] * (4 - len(color))
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = np.asarray(rgba[:4], dtype=np.uint8)
        return cls(pixels)

    def to_bytes(self) -> bytes:
        return self.pixels.tobytes()

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))

    @classmethod
    def from_image(cls, image: Image.Image) -> "RasterBuffer":
        return cls(np.array(image.convert("RGBA"), dtype=np.uint8))


def load_raster(source: PathLike) -> RasterBuffer:
    """Load an image file (or a ``data:`` URL) as an RGBA raster."""

    if isinstance(source, str) and source.startswith("data:"):
        return decode_data_url(source)
    with Image.open(str(source)) as image:
        return RasterBuffer.from_image(image)


def save_raster(buffer: RasterBuffer, path: PathLike) -> None:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    buffer.to_image().save(str(out_path), format="PNG")


def encode_png_data_url(buffer: RasterBuffer) -> str:
    handle = io.BytesIO()
    buffer.to_image().save(handle, format="PNG")
    return DATA_URL_PREFIX + base64.b64encode(handle.getvalue()).decode("ascii")


def decode_data_url(value: str) -> RasterBuffer:
    header, sep, payload = value.partition(",")
    if not sep or ";base64" not in header:
        raise ValueError("Only base64 encoded data URLs are supported")
    with Image.open(io.BytesIO(base64.b64decode(payload))) as image:
        return RasterBuffer.from_image(image)

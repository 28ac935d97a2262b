"""Line preview rendering and colour helpers over RGBA rasters."""
from __future__ import annotations

from typing import Tuple

import numpy as np

from ..core.types import BoundingBox
from .image_io import RasterBuffer

RGB = Tuple[int, int, int]

DEFAULT_CONTENT_COLOR: RGB = (128, 128, 128)
QUANT_STEP = 16


def render_line_preview(
    original: RasterBuffer,
    mask: np.ndarray,
    box: BoundingBox,
    padding: int = 5,
) -> Tuple[RasterBuffer, RGB]:
    """Draw only the differing pixels of ``box`` onto a white canvas.

    The canvas is ``box`` plus ``padding`` on every side. Differing pixels
    keep their colour from ``original``. Also returns the dominant colour of
    those pixels, quantised to 16 levels per channel.
    """

    canvas = np.full((box.height + 2 * padding, box.width + 2 * padding, 4), 255, dtype=np.uint8)

    x0 = max(0, box.x)
    y0 = max(0, box.y)
    x1 = min(box.right, original.width, mask.shape[1])
    y1 = min(box.bottom, original.height, mask.shape[0])
    if x0 >= x1 or y0 >= y1:
        return RasterBuffer(canvas), DEFAULT_CONTENT_COLOR

    window = np.asarray(mask)[y0:y1, x0:x1]
    if window.ndim == 3:
        window = window[..., 0]
    selected = window == 255
    source = original.pixels[y0:y1, x0:x1, :3]

    ty = y0 - box.y + padding
    tx = x0 - box.x + padding
    target = canvas[ty : ty + (y1 - y0), tx : tx + (x1 - x0)]
    target[selected, :3] = source[selected]
    target[selected, 3] = 255

    return RasterBuffer(canvas), dominant_color(source[selected])


def dominant_color(colors: np.ndarray) -> RGB:
    """Most frequent quantised colour of an ``(N, 3)`` array."""

    if len(colors) == 0:
        return DEFAULT_CONTENT_COLOR
    quantised = (colors.astype(np.int64) // QUANT_STEP) * QUANT_STEP
    keys = (quantised[:, 0] << 16) | (quantised[:, 1] << 8) | quantised[:, 2]
    values, counts = np.unique(keys, return_counts=True)
    key = int(values[int(np.argmax(counts))])
    return ((key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF)

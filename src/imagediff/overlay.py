"""Draw diff regions and line boxes on top of rasters."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw

from .core.types import BoundingBox, DiffRegion, LineGroup
from .utils.image_io import RasterBuffer

RGB = Tuple[int, int, int]

LINE_COLORS: Tuple[RGB, ...] = (
    (255, 59, 48),
    (52, 199, 89),
    (0, 122, 255),
    (255, 149, 0),
    (175, 82, 222),
    (90, 200, 250),
    (255, 45, 85),
    (88, 86, 214),
)


@dataclass(frozen=True)
class BoxStyle:
    stroke_color: RGB
    stroke_width: int = 3
    fill_color: RGB = (238, 238, 238)
    fill_opacity: float = 0.0


def _clamp(value: float, minimum: float = 0.0, maximum: float = 1.0) -> float:
    return max(minimum, min(value, maximum))


def tint_color(color: RGB, *, blend: float = 0.6) -> RGB:
    """Blend an RGB colour with white to create a softer highlight fill."""

    blend = _clamp(blend)
    channels = [_clamp(channel, 0, 255) for channel in color]
    return tuple(int(round(channel + (255 - channel) * blend)) for channel in channels)  # type: ignore[return-value]


def make_box_style(
    base_color: RGB,
    *,
    stroke_width: int = 3,
    fill_opacity: float = 0.0,
    fill_tint: float = 0.6,
) -> BoxStyle:
    """Create a box style using ``base_color`` for the outline.

    The fill colour is a lightened version of the outline colour so a filled
    box stays readable over the content beneath it.
    """

    return BoxStyle(
        stroke_color=base_color,
        stroke_width=stroke_width,
        fill_color=tint_color(base_color, blend=fill_tint),
        fill_opacity=_clamp(fill_opacity),
    )


def line_color(index: int) -> RGB:
    return LINE_COLORS[index % len(LINE_COLORS)]


def draw_line_boxes(
    buffer: RasterBuffer,
    lines: Sequence[LineGroup],
    *,
    padding: int = 5,
    width: int = 3,
    fill_opacity: float = 0.0,
) -> RasterBuffer:
    """Outline each line in its palette colour and label it with its number."""

    boxes = []
    for index, line in enumerate(lines):
        style = make_box_style(line_color(index), stroke_width=width, fill_opacity=fill_opacity)
        boxes.append((line.bounding_box, style, str(line.line_index + 1)))
    return _draw_boxes(buffer, boxes, padding)


def draw_region_boxes(
    buffer: RasterBuffer,
    regions: Sequence[DiffRegion],
    *,
    color: RGB = (255, 0, 0),
    padding: int = 5,
    width: int = 3,
    fill_opacity: float = 0.0,
) -> RasterBuffer:
    style = make_box_style(color, stroke_width=width, fill_opacity=fill_opacity)
    return _draw_boxes(buffer, [(region.bounding_box, style, str(region.id)) for region in regions], padding)


def _draw_boxes(buffer: RasterBuffer, boxes, padding: int) -> RasterBuffer:
    base = buffer.to_image()
    fill_layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    fill_draw = ImageDraw.Draw(fill_layer)
    outlines = []
    for box, style, label in boxes:
        rect = _padded_rect(box, padding, buffer.width, buffer.height)
        if rect is None:
            continue
        if style.fill_opacity > 0:
            alpha = int(round(255 * style.fill_opacity))
            fill_draw.rectangle(rect, fill=style.fill_color + (alpha,))
        outlines.append((rect, style, label))

    image = Image.alpha_composite(base, fill_layer)
    draw = ImageDraw.Draw(image)
    for rect, style, label in outlines:
        draw.rectangle(rect, outline=style.stroke_color + (255,), width=style.stroke_width)
        text_y = rect[1] - 12 if rect[1] >= 12 else rect[3] + 2
        draw.text((rect[0], text_y), label, fill=style.stroke_color + (255,))
    return RasterBuffer.from_image(image)


def _padded_rect(box: BoundingBox, padding: int, width: int, height: int):
    padded = box.expanded(padding, width, height)
    if padded.width <= 0 or padded.height <= 0:
        return None
    return (padded.x, padded.y, padded.right - 1, padded.bottom - 1)


def compose_mask_overlay(buffer: RasterBuffer, labeled_mask: np.ndarray) -> RasterBuffer:
    """Darken ``buffer`` by half and composite the coloured label mask on top."""

    darkened = buffer.pixels.copy()
    darkened[..., :3] = (darkened[..., :3].astype(np.uint16) // 2).astype(np.uint8)
    darkened[..., 3] = 255
    base = RasterBuffer(darkened).to_image()
    overlay = RasterBuffer(np.asarray(labeled_mask, dtype=np.uint8)).to_image()
    return RasterBuffer.from_image(Image.alpha_composite(base, overlay))

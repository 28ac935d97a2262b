"""Morphological clean-up and connected-component clustering of diff masks."""
from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

import cv2
import numpy as np

from ..presets import BackgroundFilter
from .types import BoundingBox, DiffRegion, Point

logger = logging.getLogger(__name__)

DEFAULT_DILATE_RADIUS = 3
DEFAULT_MIN_AREA_SIZE = 100
LABEL_ALPHA = 180

LABEL_PALETTE: Tuple[Tuple[int, int, int], ...] = (
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 255, 0),
    (255, 0, 255),
    (0, 255, 255),
    (255, 128, 0),
    (128, 0, 255),
)


def cluster(
    mask: np.ndarray,
    dilate_radius: int = DEFAULT_DILATE_RADIUS,
    min_area_size: int = DEFAULT_MIN_AREA_SIZE,
    *,
    erode: bool = True,
    background: Optional[BackgroundFilter] = None,
) -> Tuple[List[DiffRegion], np.ndarray]:
    """Group the white pixels of ``mask`` into regions.

    Components are found on the eroded and dilated mask, but each region's
    bounding box, pixel count and centroid are measured on the original
    differing pixels the component covers. Components holding fewer than
    ``min_area_size`` differing pixels are discarded, and so are regions the
    ``background`` filter classifies as background.

    Returns the surviving regions (ids ``1..N``) and an RGBA visualisation of
    their labels.
    """

    if dilate_radius < 0:
        raise ValueError("dilate_radius must be >= 0")
    background = background if background is not None else BackgroundFilter()

    foreground = binary_mask(mask)
    height, width = foreground.shape

    processed = foreground
    if erode:
        processed = erode_mask(processed, max(1, dilate_radius // 2))
    processed = dilate_mask(processed, dilate_radius)

    labels, label_count = label_components(processed)
    logger.debug("Labelled %d components (dilate radius %d)", label_count, dilate_radius)

    candidates = _measure_components(labels, label_count, foreground, min_area_size)
    logger.info("Found %d candidate regions", len(candidates))

    regions: List[DiffRegion] = []
    kept_labels: List[int] = []
    for label, region in candidates:
        if background.enabled and is_background(region, width, height, background):
            continue
        kept_labels.append(label)
        regions.append(
            DiffRegion(
                id=len(regions) + 1,
                bounding_box=region.bounding_box,
                pixel_count=region.pixel_count,
                center=region.center,
            )
        )
    logger.info(
        "Kept %d regions, dropped %d background regions",
        len(regions),
        len(candidates) - len(regions),
    )

    return regions, render_labels(labels, kept_labels)


def binary_mask(mask: np.ndarray) -> np.ndarray:
    """Reduce an RGBA (or single channel) mask to a boolean array."""

    values = np.asarray(mask)
    if values.ndim == 3:
        values = values[..., 0]
    return values > 0


def erode_mask(mask: np.ndarray, radius: int) -> np.ndarray:
    """Keep a pixel only if its whole square neighbourhood is foreground.

    Neighbourhoods reaching past the image border never survive.
    """

    if radius <= 0 or mask.size == 0:
        return mask.copy()
    eroded = cv2.erode(
        mask.astype(np.uint8),
        _rect_kernel(radius),
        borderType=cv2.BORDER_CONSTANT,
        borderValue=0,
    )
    return eroded > 0


def dilate_mask(mask: np.ndarray, radius: int) -> np.ndarray:
    """Grow every foreground pixel to its square neighbourhood."""

    if radius <= 0 or mask.size == 0:
        return mask.copy()
    dilated = cv2.dilate(
        mask.astype(np.uint8),
        _rect_kernel(radius),
        borderType=cv2.BORDER_CONSTANT,
        borderValue=0,
    )
    return dilated > 0


def _rect_kernel(radius: int) -> np.ndarray:
    size = 2 * radius + 1
    return cv2.getStructuringElement(cv2.MORPH_RECT, (size, size))


def label_components(mask: np.ndarray) -> Tuple[np.ndarray, int]:
    """4-connected component labelling.

    Returns an ``int32`` label image (0 = background) and the number of
    components. Labels follow raster order of each component's first pixel.
    """

    if mask.size == 0:
        return np.zeros(mask.shape, dtype=np.int32), 0
    count, labels = cv2.connectedComponents(mask.astype(np.uint8), connectivity=4, ltype=cv2.CV_32S)
    return labels, count - 1


def _measure_components(
    labels: np.ndarray,
    label_count: int,
    foreground: np.ndarray,
    min_area_size: int,
) -> List[Tuple[int, DiffRegion]]:
    if label_count == 0:
        return []

    ys, xs = np.nonzero(foreground)
    owners = labels[ys, xs]
    covered = owners > 0
    ys, xs, owners = ys[covered], xs[covered], owners[covered]

    size = label_count + 1
    counts = np.bincount(owners, minlength=size)
    sum_x = np.bincount(owners, weights=xs, minlength=size)
    sum_y = np.bincount(owners, weights=ys, minlength=size)
    min_x = np.full(size, np.iinfo(np.int64).max, dtype=np.int64)
    min_y = np.full(size, np.iinfo(np.int64).max, dtype=np.int64)
    max_x = np.full(size, -1, dtype=np.int64)
    max_y = np.full(size, -1, dtype=np.int64)
    np.minimum.at(min_x, owners, xs)
    np.minimum.at(min_y, owners, ys)
    np.maximum.at(max_x, owners, xs)
    np.maximum.at(max_y, owners, ys)

    measured: List[Tuple[int, DiffRegion]] = []
    for label in range(1, size):
        pixel_count = int(counts[label])
        if pixel_count == 0 or pixel_count < min_area_size:
            continue
        box = BoundingBox(
            x=int(min_x[label]),
            y=int(min_y[label]),
            width=int(max_x[label] - min_x[label] + 1),
            height=int(max_y[label] - min_y[label] + 1),
        )
        center = Point(
            x=_round_half_up(sum_x[label] / pixel_count),
            y=_round_half_up(sum_y[label] / pixel_count),
        )
        measured.append((label, DiffRegion(id=label, bounding_box=box, pixel_count=pixel_count, center=center)))
    return measured


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_background(
    region: DiffRegion,
    image_width: int,
    image_height: int,
    background: BackgroundFilter,
) -> bool:
    box = region.bounding_box
    features = background.features(box.width, box.height, region.pixel_count, image_width, image_height)
    fired = [name for name, value in features.items() if value]
    if len(fired) < background.min_features:
        return False
    logger.info(
        "Dropping background region #%d (%dx%d at %d,%d, density %.3f): %s",
        region.id,
        box.width,
        box.height,
        box.x,
        box.y,
        region.density,
        ", ".join(fired),
    )
    return True


def render_labels(labels: np.ndarray, kept_labels: List[int]) -> np.ndarray:
    """Colour each kept label from the palette; everything else transparent."""

    height, width = labels.shape
    rendered = np.zeros((height, width, 4), dtype=np.uint8)
    if not kept_labels:
        return rendered
    lookup = np.zeros((int(labels.max()) + 1, 4), dtype=np.uint8)
    for index, label in enumerate(kept_labels):
        r, g, b = LABEL_PALETTE[index % len(LABEL_PALETTE)]
        lookup[label] = (r, g, b, LABEL_ALPHA)
    return lookup[labels]

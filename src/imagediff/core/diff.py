"""Pixel level comparison of two RGBA rasters."""
from __future__ import annotations

import logging
from typing import Tuple, Union

import cv2
import numpy as np

from ..errors import DimensionMismatchError
from ..utils.image_io import RasterBuffer

logger = logging.getLogger(__name__)

RasterLike = Union[RasterBuffer, np.ndarray]

DEFAULT_THRESHOLD = 30
EDGE_STRENGTH_MIN = 30
HIGH_VARIANCE_RATIO = 0.1
TEXT_THRESHOLD_SCALE = 0.8
SMOOTH_THRESHOLD_SCALE = 2.0
VARIANCE_BLOCK = 7

# Luminance weights scaled by 1000 so sums stay exact in integer arithmetic.
_LUMA_WEIGHTS = np.array([299, 587, 114], dtype=np.int64)
_LUMA_SCALE = 1000


def as_pixels(buffer: RasterLike) -> np.ndarray:
    pixels = buffer.pixels if isinstance(buffer, RasterBuffer) else np.asarray(buffer)
    if pixels.ndim != 3 or pixels.shape[2] < 3:
        raise ValueError(f"Expected an (H, W, 4) RGBA array, got shape {pixels.shape}")
    return pixels


def compute_diff(
    buffer_a: RasterLike,
    buffer_b: RasterLike,
    threshold: float = DEFAULT_THRESHOLD,
    *,
    adaptive: bool = True,
) -> Tuple[np.ndarray, int]:
    """Return ``(mask, diff_pixel_count)`` for two equally sized rasters.

    The mask is an ``(H, W, 4)`` RGBA array where differing pixels are white
    and identical pixels black, both fully opaque. With ``adaptive`` the
    threshold is lowered on edges and textured areas and raised on smooth
    areas so that large, soft colour drifts do not register as changes.
    """

    pixels_a = as_pixels(buffer_a)
    pixels_b = as_pixels(buffer_b)
    if pixels_a.shape[:2] != pixels_b.shape[:2]:
        raise DimensionMismatchError(
            (pixels_a.shape[1], pixels_a.shape[0]),
            (pixels_b.shape[1], pixels_b.shape[0]),
        )
    if threshold < 0:
        raise ValueError("threshold must be >= 0")

    height, width = pixels_a.shape[:2]
    distance = channel_distance(pixels_a, pixels_b)

    if adaptive:
        edges = np.maximum(edge_strength(pixels_a), edge_strength(pixels_b))
        variance = local_variance(pixels_b, VARIANCE_BLOCK)
        max_variance = float(variance.max()) if variance.size else 0.0
        text_like = (edges > EDGE_STRENGTH_MIN) | (variance > max_variance * HIGH_VARIANCE_RATIO)
        limits = np.where(
            text_like,
            threshold * TEXT_THRESHOLD_SCALE,
            threshold * SMOOTH_THRESHOLD_SCALE,
        )
        different = distance > limits
        logger.debug(
            "Adaptive thresholds %.1f/%.1f, max local variance %.2f",
            threshold * TEXT_THRESHOLD_SCALE,
            threshold * SMOOTH_THRESHOLD_SCALE,
            max_variance,
        )
        logger.debug(
            "Text-like differences: %d, smooth differences: %d",
            int(np.count_nonzero(different & text_like)),
            int(np.count_nonzero(different & ~text_like)),
        )
    else:
        different = distance > threshold

    diff_pixel_count = int(np.count_nonzero(different))
    logger.info("Differing pixels: %d / %d", diff_pixel_count, width * height)
    return mask_from_bool(different), diff_pixel_count


def channel_distance(pixels_a: np.ndarray, pixels_b: np.ndarray) -> np.ndarray:
    """Per pixel ``|dR| + |dG| + |dB|``."""

    delta = np.abs(pixels_a[..., :3].astype(np.int16) - pixels_b[..., :3].astype(np.int16))
    return delta.sum(axis=2)


def mask_from_bool(different: np.ndarray) -> np.ndarray:
    height, width = different.shape
    mask = np.zeros((height, width, 4), dtype=np.uint8)
    mask[different, :3] = 255
    mask[..., 3] = 255
    return mask


def _scaled_luminance(pixels: np.ndarray) -> np.ndarray:
    return pixels[..., :3].astype(np.int64) @ _LUMA_WEIGHTS


def luminance(pixels: np.ndarray) -> np.ndarray:
    return _scaled_luminance(pixels) / float(_LUMA_SCALE)


def edge_strength(pixels: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude of the luminance, clipped to 0..255.

    The one pixel border has no full neighbourhood and is left at zero.
    """

    lum = _scaled_luminance(pixels)
    height, width = lum.shape
    edges = np.zeros((height, width), dtype=np.float64)
    if height < 3 or width < 3:
        return edges

    lum = lum.astype(np.float64)
    gx = cv2.Sobel(lum, cv2.CV_64F, 1, 0, ksize=3)[1:-1, 1:-1]
    gy = cv2.Sobel(lum, cv2.CV_64F, 0, 1, ksize=3)[1:-1, 1:-1]
    magnitude = np.sqrt(gx ** 2 + gy ** 2) / _LUMA_SCALE
    edges[1:-1, 1:-1] = np.minimum(255.0, np.floor(magnitude + 0.5))
    return edges


def local_variance(pixels: np.ndarray, block_size: int = VARIANCE_BLOCK) -> np.ndarray:
    """Luminance variance over a ``block_size`` square window.

    Pixels closer than ``block_size // 2`` to the border keep a variance of
    zero. Luminance is scaled to integers, which keeps the window sums exact
    in float64, so flat areas come out at exactly zero.
    """

    lum = _scaled_luminance(pixels).astype(np.float64)
    height, width = lum.shape
    variance = np.zeros((height, width), dtype=np.float64)
    half = block_size // 2
    if height < block_size or width < block_size:
        return variance

    count = block_size * block_size
    sums = _window_sums(lum, block_size)
    sums_sq = _window_sums(lum * lum, block_size)
    numerator = count * sums_sq - sums * sums
    scaled = numerator / float(count * count * _LUMA_SCALE * _LUMA_SCALE)
    variance[half : height - half, half : width - half] = scaled
    return variance


def _window_sums(values: np.ndarray, size: int) -> np.ndarray:
    """Unnormalised box sums for every window lying fully inside ``values``."""

    half = size // 2
    sums = cv2.boxFilter(values, cv2.CV_64F, (size, size), normalize=False)
    return sums[half : values.shape[0] - half, half : values.shape[1] - half]

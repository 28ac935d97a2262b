"""Image comparison pipeline: diff, cluster, group into lines, recognise."""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from .backend.orchestrator import TaskOrchestrator
from .core.cluster import cluster
from .core.diff import compute_diff
from .core.lines import group_by_line
from .core.types import DiffRegion, LineGroup, LineRecognitionRequest, LineResult
from .presets import DiffParams
from .utils.image_io import RasterBuffer, encode_png_data_url, load_raster
from .utils.image_ops import RGB, render_line_preview

logger = logging.getLogger(__name__)

ImageSource = Union[RasterBuffer, str, Path]

_WHITESPACE = re.compile(r"\s+")


@dataclass
class LinePreview:
    line_index: int
    image: RasterBuffer
    content_color: RGB


@dataclass
class DiffResult:
    width: int
    height: int
    diff_pixel_count: int
    regions: List[DiffRegion]
    lines: List[LineGroup]
    params: DiffParams
    line_results: List[LineResult] = field(default_factory=list)
    previews: List[LinePreview] = field(default_factory=list)
    mask: Optional[np.ndarray] = field(default=None, repr=False)
    labeled_mask: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.line_results if result.ok)

    @property
    def failure_count(self) -> int:
        return sum(1 for result in self.line_results if not result.ok)

    @property
    def full_text(self) -> str:
        return "\n".join(line.recognized_text for line in self.lines if line.recognized_text)

    def to_dict(self) -> Dict[str, object]:
        colors = {preview.line_index: list(preview.content_color) for preview in self.previews}
        lines = []
        for line in self.lines:
            data = line.to_dict()
            if line.line_index in colors:
                data["content_color"] = colors[line.line_index]
            lines.append(data)
        return {
            "width": self.width,
            "height": self.height,
            "diff_pixel_count": self.diff_pixel_count,
            "params": self.params.to_dict(),
            "regions": [region.to_dict() for region in self.regions],
            "lines": lines,
            "line_results": [result.to_dict() for result in self.line_results],
            "full_text": self.full_text,
        }


def _as_raster(image: ImageSource) -> RasterBuffer:
    if isinstance(image, RasterBuffer):
        return image
    return load_raster(image)


def compare_images(
    image_a: ImageSource,
    image_b: ImageSource,
    *,
    params: Optional[DiffParams] = None,
    wording: Optional[str] = None,
    recognizer: Optional[TaskOrchestrator] = None,
    conversation_id: Optional[str] = None,
) -> DiffResult:
    """Compare ``image_a`` (before) with ``image_b`` (after).

    When ``wording`` is non-blank and a ``recognizer`` is given, every line is
    sent for recognition and its text (with whitespace removed) is written to
    ``LineGroup.recognized_text``.
    """

    params = (params or DiffParams()).validate()
    started = time.perf_counter()
    raster_a = _as_raster(image_a)
    raster_b = _as_raster(image_b)

    mask, diff_pixel_count = compute_diff(raster_a, raster_b, params.threshold, adaptive=params.adaptive)
    regions, labeled_mask = cluster(
        mask,
        params.dilate_radius,
        params.min_area_size,
        erode=params.erode,
        background=params.background,
    )

    lines: List[LineGroup] = []
    previews: List[LinePreview] = []
    if params.enable_line_grouping and regions:
        lines = group_by_line(
            regions,
            params.overlap_threshold,
            params.max_x_gap,
            merge_lines=params.merge_lines,
            merge_center_y_threshold=params.merge_center_y_threshold,
            merge_overlap_threshold=params.merge_overlap_threshold,
        )
        for line in lines:
            image, color = render_line_preview(raster_b, mask, line.bounding_box, params.preview_padding)
            previews.append(LinePreview(line.line_index, image, color))

    result = DiffResult(
        width=raster_a.width,
        height=raster_a.height,
        diff_pixel_count=diff_pixel_count,
        regions=regions,
        lines=lines,
        params=params,
        previews=previews,
        mask=mask,
        labeled_mask=labeled_mask,
    )

    if wording and wording.strip() and lines:
        if recognizer is None:
            logger.warning("Wording given but no recognizer configured; skipping recognition")
        else:
            result.line_results = recognize(result, wording, recognizer, conversation_id)
            logger.info(
                "Recognition: %d succeeded, %d failed",
                result.success_count,
                result.failure_count,
            )

    logger.info(
        "Compared %dx%d images in %.2fs: %d regions, %d lines",
        result.width,
        result.height,
        time.perf_counter() - started,
        len(regions),
        len(lines),
    )
    return result


def build_recognition_requests(result: DiffResult, wording: str) -> List[LineRecognitionRequest]:
    """Convert line previews into requests for the recognition service."""

    by_index = {line.line_index: line for line in result.lines}
    return [
        LineRecognitionRequest.from_line(
            by_index[preview.line_index],
            wording=wording,
            image_data=encode_png_data_url(preview.image),
        )
        for preview in result.previews
        if preview.line_index in by_index
    ]


def recognize(
    result: DiffResult,
    wording: str,
    recognizer: TaskOrchestrator,
    conversation_id: Optional[str],
) -> List[LineResult]:
    """Recognise every line of ``result`` and fill ``recognized_text``."""

    line_requests = build_recognition_requests(result, wording)
    line_results = recognizer.run(line_requests, conversation_id)
    by_index = {line.line_index: line for line in result.lines}
    for line_result in line_results:
        line = by_index.get(line_result.line_index)
        if line is not None and line_result.ok:
            line.recognized_text = _WHITESPACE.sub("", line_result.text)
    return line_results

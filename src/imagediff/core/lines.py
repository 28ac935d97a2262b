"""Group diff regions into horizontal text lines."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .types import DiffRegion, LineGroup

logger = logging.getLogger(__name__)

DEFAULT_OVERLAP_THRESHOLD = 0.4
DEFAULT_MAX_X_GAP = 55
MIN_CENTER_Y_DIFF = 30.0
CENTER_Y_HEIGHT_RATIO = 0.6
CONTAINED_CENTER_RATIO = 0.8
TIGHT_CENTER_RATIO = 0.5
TIGHT_OVERLAP_FACTOR = 1.5
MERGE_CENTER_Y_THRESHOLD = 30.0
MERGE_OVERLAP_THRESHOLD = 0.3


class UnionFind:
    """Disjoint sets over ``0..size-1`` with path compression."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, item: int) -> int:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: int, b: int) -> None:
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a != root_b:
            self.parent[root_a] = root_b

    def groups(self) -> List[List[int]]:
        grouped: Dict[int, List[int]] = {}
        for item in range(len(self.parent)):
            grouped.setdefault(self.find(item), []).append(item)
        return list(grouped.values())


def dynamic_center_y_threshold(regions: Sequence[DiffRegion]) -> float:
    if not regions:
        return MIN_CENTER_Y_DIFF
    mean_height = sum(r.bounding_box.height for r in regions) / len(regions)
    return max(MIN_CENTER_Y_DIFF, mean_height * CENTER_Y_HEIGHT_RATIO)


def is_same_line(
    a: DiffRegion,
    b: DiffRegion,
    overlap_threshold: float,
    max_center_y_diff: float,
    max_x_gap: float,
) -> bool:
    box_a, box_b = a.bounding_box, b.bounding_box

    # A distant stray region must not bridge two real lines.
    if box_a.x_gap(box_b) > max_x_gap:
        return False

    center_gap = abs(a.center.y - b.center.y)
    if center_gap > max_center_y_diff:
        return False

    min_height = min(box_a.height, box_b.height)
    if box_a.y_contains(box_b) or box_b.y_contains(box_a):
        return center_gap <= min_height * CONTAINED_CENTER_RATIO

    if min_height <= 0:
        return False
    ratio = box_a.y_overlap(box_b) / min_height
    if ratio < overlap_threshold:
        return False
    if center_gap > min_height * TIGHT_CENTER_RATIO:
        return ratio >= overlap_threshold * TIGHT_OVERLAP_FACTOR
    return True


def union_find_groups(
    regions: Sequence[DiffRegion],
    overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD,
    max_x_gap: float = DEFAULT_MAX_X_GAP,
    max_center_y_diff: Optional[float] = None,
) -> List[LineGroup]:
    """Transitive closure of :func:`is_same_line`, ordered top to bottom."""

    if not regions:
        return []
    if max_center_y_diff is None:
        max_center_y_diff = dynamic_center_y_threshold(regions)
    logger.debug("Centre-Y threshold %.1fpx for %d regions", max_center_y_diff, len(regions))

    sets = UnionFind(len(regions))
    for i in range(len(regions)):
        for j in range(i + 1, len(regions)):
            if is_same_line(regions[i], regions[j], overlap_threshold, max_center_y_diff, max_x_gap):
                sets.union(i, j)

    lines = [LineGroup.from_regions(regions[i] for i in members) for members in sets.groups()]
    return reindex(lines)


def reindex(lines: List[LineGroup]) -> List[LineGroup]:
    """Sort lines by mean region centre-Y and renumber them from zero."""

    lines.sort(key=lambda line: (line.mean_center_y, line.bounding_box.x, line.bounding_box.y))
    for index, line in enumerate(lines):
        line.line_index = index
    return lines


def should_merge_lines(
    line_a: LineGroup,
    line_b: LineGroup,
    center_y_threshold: float = MERGE_CENTER_Y_THRESHOLD,
    overlap_threshold: float = MERGE_OVERLAP_THRESHOLD,
    max_x_gap: float = DEFAULT_MAX_X_GAP,
) -> bool:
    box_a, box_b = line_a.bounding_box, line_b.bounding_box
    if box_a.x_gap(box_b) > max_x_gap:
        return False

    center_gap = abs(box_a.center_y - box_b.center_y)
    if center_gap <= center_y_threshold:
        return True

    min_height = min(box_a.height, box_b.height)
    overlap = box_a.y_overlap(box_b)
    if overlap > 0 and min_height > 0 and overlap / min_height >= overlap_threshold:
        return True

    if box_a.y_contains(box_b) or box_b.y_contains(box_a):
        return center_gap <= max(center_y_threshold, min_height * TIGHT_CENTER_RATIO)
    return False


def merge_adjacent_lines(
    lines: List[LineGroup],
    center_y_threshold: float = MERGE_CENTER_Y_THRESHOLD,
    overlap_threshold: float = MERGE_OVERLAP_THRESHOLD,
    max_x_gap: float = DEFAULT_MAX_X_GAP,
) -> List[LineGroup]:
    """Merge vertically adjacent lines that overlap or nearly share a centre."""

    if len(lines) <= 1:
        return lines

    ordered = sorted(lines, key=lambda line: (line.bounding_box.y, line.mean_center_y))
    merged: List[LineGroup] = []
    current = LineGroup.from_regions(ordered[0].regions)
    for following in ordered[1:]:
        if should_merge_lines(current, following, center_y_threshold, overlap_threshold, max_x_gap):
            logger.debug(
                "Merging line spanning y=%d..%d with y=%d..%d",
                current.bounding_box.y,
                current.bounding_box.bottom,
                following.bounding_box.y,
                following.bounding_box.bottom,
            )
            current = LineGroup.from_regions(list(current.regions) + list(following.regions))
        else:
            merged.append(current)
            current = LineGroup.from_regions(following.regions)
    merged.append(current)

    if len(merged) != len(lines):
        logger.info("Line merge: %d -> %d lines", len(lines), len(merged))
    return reindex(merged)


def split_lines_by_x_gap(lines: List[LineGroup], max_x_gap: float = DEFAULT_MAX_X_GAP) -> List[LineGroup]:
    """Split lines wherever consecutive members are more than ``max_x_gap`` apart."""

    result: List[LineGroup] = []
    splits = 0
    for line in lines:
        members = sorted(line.regions, key=lambda r: (r.bounding_box.x, r.id))
        chunk: List[DiffRegion] = []
        reach = 0
        for region in members:
            if chunk and region.bounding_box.x - reach > max_x_gap:
                result.append(LineGroup.from_regions(chunk))
                chunk = []
                splits += 1
            reach = region.bounding_box.right if not chunk else max(reach, region.bounding_box.right)
            chunk.append(region)
        if chunk:
            result.append(LineGroup.from_regions(chunk))

    if splits:
        logger.info("Line split: %d splits, %d lines", splits, len(result))
    return reindex(result)


def group_by_line(
    regions: Sequence[DiffRegion],
    overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD,
    max_x_gap: float = DEFAULT_MAX_X_GAP,
    *,
    merge_lines: bool = True,
    merge_center_y_threshold: float = MERGE_CENTER_Y_THRESHOLD,
    merge_overlap_threshold: float = MERGE_OVERLAP_THRESHOLD,
    max_center_y_diff: Optional[float] = None,
) -> List[LineGroup]:
    """Group regions into lines ordered top to bottom.

    Grouping runs in three passes: union-find over the pairwise same-line
    test, a merge of adjacent lines, and a split at large horizontal gaps so
    a single noisy region cannot stitch two lines together.
    """

    if not regions:
        return []

    lines = union_find_groups(regions, overlap_threshold, max_x_gap, max_center_y_diff)
    logger.info("Grouped %d regions into %d lines", len(regions), len(lines))

    if merge_lines and len(lines) > 1:
        lines = merge_adjacent_lines(lines, merge_center_y_threshold, merge_overlap_threshold, max_x_gap)

    lines = split_lines_by_x_gap(lines, max_x_gap)

    for line in lines:
        logger.debug(
            "Line %d: %d regions, mean centre-Y %.0f, bbox y=%d..%d",
            line.line_index,
            len(line.regions),
            line.mean_center_y,
            line.bounding_box.y,
            line.bounding_box.bottom,
        )
    return lines


def line_partition(lines: Sequence[LineGroup]) -> List[List[tuple]]:
    """Geometry-only view of a grouping, independent of region ids."""

    return [[region.geometry()[:4] for region in line.regions] for line in lines]

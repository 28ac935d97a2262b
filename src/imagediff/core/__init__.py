"""Pure raster algorithms: pixel diff, region clustering and line grouping."""

from .cluster import cluster
from .diff import compute_diff
from .lines import group_by_line

__all__ = ["cluster", "compute_diff", "group_by_line"]

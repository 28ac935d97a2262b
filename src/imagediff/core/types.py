from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

Color = Tuple[int, int, int]


@dataclass(frozen=True)
class Point:
    x: int
    y: int

    def to_dict(self) -> Dict[str, int]:
        return {"x": int(self.x), "y": int(self.y)}


@dataclass(frozen=True)
class BoundingBox:
    """Axis aligned pixel rectangle; ``right``/``bottom`` are exclusive."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2.0

    def union(self, other: "BoundingBox") -> "BoundingBox":
        x0 = min(self.x, other.x)
        y0 = min(self.y, other.y)
        x1 = max(self.right, other.right)
        y1 = max(self.bottom, other.bottom)
        return BoundingBox(x0, y0, x1 - x0, y1 - y0)

    def x_gap(self, other: "BoundingBox") -> int:
        return max(0, max(self.x - other.right, other.x - self.right))

    def y_overlap(self, other: "BoundingBox") -> int:
        return max(0, min(self.bottom, other.bottom) - max(self.y, other.y))

    def y_contains(self, other: "BoundingBox") -> bool:
        return self.y <= other.y and self.bottom >= other.bottom

    def expanded(self, padding: int, width: int, height: int) -> "BoundingBox":
        x0 = max(0, self.x - padding)
        y0 = max(0, self.y - padding)
        x1 = min(width, self.right + padding)
        y1 = min(height, self.bottom + padding)
        return BoundingBox(x0, y0, max(0, x1 - x0), max(0, y1 - y0))

    def to_dict(self) -> Dict[str, int]:
        return {
            "x": int(self.x),
            "y": int(self.y),
            "width": int(self.width),
            "height": int(self.height),
        }

    @classmethod
    def enclosing(cls, boxes: Iterable["BoundingBox"]) -> "BoundingBox":
        result: Optional[BoundingBox] = None
        for box in boxes:
            result = box if result is None else result.union(box)
        if result is None:
            return cls(0, 0, 0, 0)
        return result


@dataclass(frozen=True)
class DiffRegion:
    """Connected group of differing pixels.

    ``pixel_count`` and ``center`` describe the differing pixels themselves,
    not the bounding box.
    """

    id: int
    bounding_box: BoundingBox
    pixel_count: int
    center: Point

    @property
    def density(self) -> float:
        area = self.bounding_box.area
        return self.pixel_count / area if area else 0.0

    def geometry(self) -> Tuple[int, int, int, int, int]:
        box = self.bounding_box
        return (box.x, box.y, box.width, box.height, self.pixel_count)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": int(self.id),
            "bbox": self.bounding_box.to_dict(),
            "pixel_count": int(self.pixel_count),
            "center": self.center.to_dict(),
        }


@dataclass
class LineGroup:
    line_index: int
    regions: List[DiffRegion]
    bounding_box: BoundingBox
    recognized_text: Optional[str] = None

    @classmethod
    def from_regions(cls, regions: Iterable[DiffRegion], line_index: int = 0) -> "LineGroup":
        ordered = sorted(regions, key=lambda r: (r.bounding_box.x, r.id))
        return cls(
            line_index=line_index,
            regions=ordered,
            bounding_box=BoundingBox.enclosing(r.bounding_box for r in ordered),
        )

    @property
    def mean_center_y(self) -> float:
        if not self.regions:
            return float(self.bounding_box.center_y)
        return sum(r.center.y for r in self.regions) / len(self.regions)

    @property
    def region_ids(self) -> List[int]:
        return [region.id for region in self.regions]

    def to_dict(self) -> Dict[str, object]:
        return {
            "line_index": self.line_index,
            "region_ids": self.region_ids,
            "bbox": self.bounding_box.to_dict(),
            "recognized_text": self.recognized_text,
        }


@dataclass(frozen=True)
class LineResult:
    """Outcome of recognising one line; exactly one exists per line index."""

    line_index: int
    text: str = ""
    error: Optional[str] = None
    error_kind: Optional[str] = None
    duration: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, line_index: int, exc: Exception) -> "LineResult":
        return cls(
            line_index=line_index,
            error=str(exc) or exc.__class__.__name__,
            error_kind=getattr(exc, "kind", "recognition_error"),
        )

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"line_index": self.line_index, "text": self.text}
        if self.error is not None:
            data["error"] = self.error
            data["error_kind"] = self.error_kind
        if self.duration is not None:
            data["duration"] = self.duration
        return data


@dataclass(frozen=True)
class LineRecognitionRequest:
    """Everything the recognition service needs for one line."""

    line_index: int
    wording: str
    image_data: str
    image_name: str = field(default="line-preview.png")

    @classmethod
    def from_line(cls, line: LineGroup, *, wording: str, image_data: str) -> "LineRecognitionRequest":
        return cls(
            line_index=line.line_index,
            wording=wording,
            image_data=image_data,
            image_name=f"line-{line.line_index + 1}.png",
        )

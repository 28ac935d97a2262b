"""Comparison parameter presets and color helpers."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Mapping, Optional, Tuple

Color = Tuple[int, int, int]


@dataclass(frozen=True)
class BackgroundFilter:
    """Feature cutoffs used to drop background-like regions.

    A region is treated as background when at least ``min_features`` of the
    four features fire. The cutoffs were tuned on screenshots of rendered
    text and can be adjusted per preset.
    """

    max_area_ratio: float = 0.08
    max_height_ratio: float = 0.15
    min_density: float = 0.20
    square_aspect_min: float = 0.7
    square_aspect_max: float = 1.5
    square_area_ratio: float = 0.05
    min_features: int = 2
    enabled: bool = True

    def features(self, width: int, height: int, pixel_count: int, image_width: int, image_height: int) -> Dict[str, bool]:
        box_area = width * height
        image_area = image_width * image_height
        area_ratio = box_area / image_area if image_area else 0.0
        height_ratio = height / image_height if image_height else 0.0
        density = pixel_count / box_area if box_area else 0.0
        aspect = width / height if height else 0.0
        square_like = self.square_aspect_min <= aspect <= self.square_aspect_max
        return {
            "large_area": area_ratio > self.max_area_ratio,
            "too_tall": height_ratio > self.max_height_ratio,
            "sparse": density < self.min_density,
            "large_square": square_like and area_ratio > self.square_area_ratio,
        }

    def to_dict(self) -> Dict[str, float]:
        return {
            "max_area_ratio": self.max_area_ratio,
            "max_height_ratio": self.max_height_ratio,
            "min_density": self.min_density,
            "square_aspect_min": self.square_aspect_min,
            "square_aspect_max": self.square_aspect_max,
            "square_area_ratio": self.square_area_ratio,
            "min_features": self.min_features,
            "enabled": self.enabled,
        }

    def copy(self, **overrides: float) -> "BackgroundFilter":
        return replace(self, **overrides)


@dataclass(frozen=True)
class DiffParams:
    """Parameters driving the diff, clustering and line grouping stages."""

    threshold: int = 30
    adaptive: bool = True
    dilate_radius: int = 3
    min_area_size: int = 100
    erode: bool = True
    enable_line_grouping: bool = True
    overlap_threshold: float = 0.4
    max_x_gap: int = 55
    merge_lines: bool = True
    merge_center_y_threshold: float = 30.0
    merge_overlap_threshold: float = 0.3
    preview_padding: int = 5
    background: BackgroundFilter = field(default_factory=BackgroundFilter)

    def validate(self) -> "DiffParams":
        if self.threshold < 0:
            raise ValueError("threshold must be >= 0")
        if self.dilate_radius < 0:
            raise ValueError("dilate_radius must be >= 0")
        if self.min_area_size < 1:
            raise ValueError("min_area_size must be >= 1")
        if not 0.0 < self.overlap_threshold <= 1.0:
            raise ValueError("overlap_threshold must be in (0, 1]")
        if self.max_x_gap < 0:
            raise ValueError("max_x_gap must be >= 0")
        if self.preview_padding < 0:
            raise ValueError("preview_padding must be >= 0")
        return self

    def to_dict(self) -> Dict[str, object]:
        return {
            "threshold": self.threshold,
            "adaptive": self.adaptive,
            "dilate_radius": self.dilate_radius,
            "min_area_size": self.min_area_size,
            "erode": self.erode,
            "enable_line_grouping": self.enable_line_grouping,
            "overlap_threshold": self.overlap_threshold,
            "max_x_gap": self.max_x_gap,
            "merge_lines": self.merge_lines,
            "merge_center_y_threshold": self.merge_center_y_threshold,
            "merge_overlap_threshold": self.merge_overlap_threshold,
            "preview_padding": self.preview_padding,
            "background": self.background.to_dict(),
        }

    def copy(self, **overrides: object) -> "DiffParams":
        return replace(self, **overrides)


@dataclass(frozen=True)
class Preset:
    """Bundle of parameters, overlay styling and metadata."""

    name: str
    description: str
    params: DiffParams
    highlight_color: Color = (255, 0, 0)
    box_padding: int = 5
    stroke_width: int = 3
    fill_opacity: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "params": self.params.to_dict(),
            "highlight_color": list(self.highlight_color),
            "box_padding": self.box_padding,
            "stroke_width": self.stroke_width,
            "fill_opacity": self.fill_opacity,
        }


PRESETS: Mapping[str, Preset] = {
    "strict": Preset(
        name="strict",
        description="High confidence changes only; smallest tolerance.",
        params=DiffParams(
            threshold=45,
            dilate_radius=2,
            min_area_size=160,
            overlap_threshold=0.5,
            max_x_gap=40,
        ),
        stroke_width=2,
    ),
    "balanced": Preset(
        name="balanced",
        description="Default mix of sensitivity and noise rejection.",
        params=DiffParams(),
    ),
    "loose": Preset(
        name="loose",
        description="Maximum sensitivity; tolerates small noisy regions.",
        params=DiffParams(
            threshold=20,
            dilate_radius=4,
            min_area_size=50,
            overlap_threshold=0.3,
            max_x_gap=70,
        ),
        box_padding=6,
        fill_opacity=0.15,
    ),
}


def get_preset(name: str) -> Preset:
    key = name.lower()
    if key not in PRESETS:
        raise KeyError(f"Unknown preset '{name}'. Available: {', '.join(sorted(PRESETS))}")
    return PRESETS[key]


def iter_presets() -> Iterable[Preset]:
    return PRESETS.values()


def parse_color(value: Optional[str]) -> Optional[Color]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if value.startswith("#"):
        hex_value = value[1:]
        if len(hex_value) not in (6, 8):
            raise ValueError("Hex colors must be #RRGGBB or #RRGGBBAA")
        return tuple(int(hex_value[i : i + 2], 16) for i in range(0, 6, 2))  # type: ignore[return-value]
    parts = value.replace(";", ",").split(",")
    if len(parts) != 3:
        raise ValueError("RGB colors must provide three comma separated numbers")
    rgb = tuple(float(p.strip()) for p in parts)
    if all(channel <= 1.0 for channel in rgb):
        rgb = tuple(channel * 255.0 for channel in rgb)
    return tuple(max(0, min(255, int(round(channel)))) for channel in rgb)  # type: ignore[return-value]

"""Command line interface for imagediff."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, Optional

from .backend.client import RecognitionClient
from .backend.orchestrator import TaskOrchestrator
from .compare import compare_images
from .config import Settings, load_settings
from .errors import DimensionMismatchError
from .overlay import compose_mask_overlay, draw_line_boxes, draw_region_boxes
from .presets import DiffParams, get_preset, parse_color
from .report import write_json_report, write_text_report
from .utils.image_io import load_raster, save_raster

logger = logging.getLogger("imagediff")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imagediff",
        description="Locate changed text lines between two images of the same size.",
    )
    parser.add_argument("--before", help="Path to the original image")
    parser.add_argument("--after", help="Path to the modified image")
    parser.add_argument("--json", help="Diff report path (JSON)")
    parser.add_argument("--text", help="Recognised text per line (plain text)")
    parser.add_argument("--preset", default="balanced", help="Preset name (strict|balanced|loose)")
    parser.add_argument("--threshold", type=int, help="Channel distance threshold (0-765)")
    parser.add_argument("--baseline", action="store_true", help="Use one fixed threshold for every pixel")
    parser.add_argument("--dilate-radius", type=int, help="Dilation radius (px)")
    parser.add_argument("--min-area", type=int, help="Minimum differing pixels per region")
    parser.add_argument("--no-erode", action="store_true", help="Skip the erosion step")
    parser.add_argument("--overlap-threshold", type=float, help="Y overlap ratio for same-line regions")
    parser.add_argument("--max-x-gap", type=int, help="Largest horizontal gap inside a line (px)")
    parser.add_argument("--no-line-grouping", action="store_true", help="Report regions only")
    parser.add_argument("--overlay", help="Write a PNG with line (or region) boxes")
    parser.add_argument("--mask", help="Write a PNG of the labelled regions over the after image")
    parser.add_argument("--highlight-color", help="Region box colour (#RRGGBB or r,g,b)")
    parser.add_argument("--wording", help="Reference text; enables remote recognition")
    parser.add_argument("--conversation-id", help="Conversation id for recognition tasks")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__

        print(__version__)
        return 0

    if not args.before or not args.after:
        parser.error("--before and --after are required")

    try:
        settings = load_settings()
    except ValueError as exc:
        parser.error(str(exc))
        return 2

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        preset = get_preset(args.preset)
        highlight = parse_color(args.highlight_color) or preset.highlight_color
        params = _override_params(preset.params, args).validate()
    except (KeyError, ValueError) as exc:
        parser.error(str(exc).strip("'\""))
        return 2

    recognizer = None
    conversation_id = args.conversation_id or settings.conversation_id
    if args.wording:
        recognizer = _build_recognizer(settings)

    before = load_raster(args.before)
    after = load_raster(args.after)
    try:
        result = compare_images(
            before,
            after,
            params=params,
            wording=args.wording,
            recognizer=recognizer,
            conversation_id=conversation_id,
        )
    except DimensionMismatchError as exc:
        logger.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.overlay:
        if result.lines:
            boxed = draw_line_boxes(
                after,
                result.lines,
                padding=preset.box_padding,
                width=preset.stroke_width,
                fill_opacity=preset.fill_opacity,
            )
        else:
            boxed = draw_region_boxes(
                after,
                result.regions,
                color=highlight,
                padding=preset.box_padding,
                width=preset.stroke_width,
                fill_opacity=preset.fill_opacity,
            )
        save_raster(boxed, args.overlay)
    if args.mask and result.labeled_mask is not None:
        save_raster(compose_mask_overlay(after, result.labeled_mask), args.mask)
    if args.json:
        write_json_report(result, args.json)
    if args.text:
        write_text_report(result, args.text)

    print(f"{len(result.regions)} regions, {len(result.lines)} lines")
    for line in result.lines:
        if line.recognized_text:
            print(f"{line.line_index + 1}: {line.recognized_text}")
    return 0


def _build_recognizer(settings: Settings) -> Optional[TaskOrchestrator]:
    if not settings.recognition_enabled:
        logger.warning("IMAGEDIFF_SERVICE_URL is not set; recognition disabled")
        return None
    client = RecognitionClient.from_settings(settings)
    return TaskOrchestrator(client, settings.orchestrator, on_progress=_log_progress)


def _log_progress(completed: int, total: int) -> None:
    logger.info("Recognition progress: %d/%d", completed, total)


def _override_params(preset_params: DiffParams, args: argparse.Namespace) -> DiffParams:
    overrides = {}
    for field_name, arg_name in (
        ("threshold", "threshold"),
        ("dilate_radius", "dilate_radius"),
        ("min_area_size", "min_area"),
        ("overlap_threshold", "overlap_threshold"),
        ("max_x_gap", "max_x_gap"),
    ):
        value = getattr(args, arg_name)
        if value is not None:
            overrides[field_name] = value
    if args.baseline:
        overrides["adaptive"] = False
    if args.no_erode:
        overrides["erode"] = False
    if args.no_line_grouping:
        overrides["enable_line_grouping"] = False
    return preset_params.copy(**overrides)


if __name__ == "__main__":
    sys.exit(main())

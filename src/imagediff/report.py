"""JSON and plain text report helpers."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict

from .compare import DiffResult


def build_report(result: DiffResult) -> Dict[str, object]:
    """``DiffResult.to_dict()`` plus a summary block for quick inspection."""

    data = result.to_dict()
    data["summary"] = {
        "regions": len(result.regions),
        "lines": len(result.lines),
        "recognized": result.success_count,
        "failed": result.failure_count,
    }
    return data


def write_json_report(result: DiffResult, path: str | Path) -> None:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", encoding="utf-8") as handle:
        json.dump(build_report(result), handle, ensure_ascii=False, indent=2)


def diff_result_to_json(result: DiffResult) -> str:
    return json.dumps(build_report(result), ensure_ascii=False, indent=2)


def write_text_report(result: DiffResult, path: str | Path) -> None:
    """One line per text line: ``<number>\\t<text>``, or the error for failed lines."""

    errors = {item.line_index: item for item in result.line_results if not item.ok}
    rows = []
    for line in result.lines:
        failed = errors.get(line.line_index)
        if failed is not None:
            rows.append(f"{line.line_index + 1}\t[{failed.error_kind}] {failed.error}")
        else:
            rows.append(f"{line.line_index + 1}\t{line.recognized_text or ''}")
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text("\n".join(rows) + ("\n" if rows else ""), encoding="utf-8")

import json
import os
import subprocess
import sys
from pathlib import Path

from PIL import Image, ImageDraw


def _make_png(path: Path, rectangles, size=(200, 120)) -> None:
    image = Image.new("RGB", size, (255, 255, 255))
    draw = ImageDraw.Draw(image)
    for rect in rectangles:
        draw.rectangle(rect, fill=(0, 0, 0))
    image.save(path)


def run_cli(tmp_path: Path, args):
    cmd = [sys.executable, "-m", "imagediff"] + args
    env = dict(os.environ)
    for name in list(env):
        if name.startswith("IMAGEDIFF_"):
            del env[name]
    existing = env.get("PYTHONPATH", "")
    src_path = str(Path(__file__).resolve().parents[1] / "src")
    env["PYTHONPATH"] = f"{src_path}{os.pathsep}{existing}" if existing else src_path
    return subprocess.run(cmd, cwd=tmp_path, env=env, capture_output=True, text=True)


def test_cli_no_diffs(tmp_path):
    before = tmp_path / "before.png"
    after = tmp_path / "after.png"
    for target in (before, after):
        _make_png(target, [(40, 40, 79, 49)])
    json_path = tmp_path / "diff.json"

    completed = run_cli(
        tmp_path,
        ["--before", str(before), "--after", str(after), "--json", str(json_path), "--preset", "strict"],
    )

    assert completed.returncode == 0, completed.stderr
    data = json.loads(json_path.read_text(encoding="utf-8"))
    assert data["diff_pixel_count"] == 0
    assert data["regions"] == []
    assert data["lines"] == []


def test_cli_detects_difference(tmp_path):
    before = tmp_path / "before.png"
    after = tmp_path / "after.png"
    _make_png(before, [(20, 20, 59, 29)])
    _make_png(after, [(20, 20, 59, 29), (20, 70, 89, 79)])
    json_path = tmp_path / "result.json"
    overlay = tmp_path / "out" / "overlay.png"
    mask = tmp_path / "out" / "mask.png"

    completed = run_cli(
        tmp_path,
        [
            "--before",
            str(before),
            "--after",
            str(after),
            "--json",
            str(json_path),
            "--overlay",
            str(overlay),
            "--mask",
            str(mask),
            "--preset",
            "loose",
            "--threshold",
            "25",
        ],
    )

    assert completed.returncode == 0, completed.stderr
    assert overlay.exists()
    assert mask.exists()
    data = json.loads(json_path.read_text(encoding="utf-8"))
    assert data["params"]["threshold"] == 25
    assert len(data["regions"]) == 1
    assert data["regions"][0]["bbox"] == {"x": 20, "y": 70, "width": 70, "height": 10}
    assert len(data["lines"]) == 1
    assert "1 regions, 1 lines" in completed.stdout


def test_cli_size_mismatch_exit_code(tmp_path):
    before = tmp_path / "before.png"
    after = tmp_path / "after.png"
    _make_png(before, [], size=(50, 50))
    _make_png(after, [], size=(60, 50))

    completed = run_cli(tmp_path, ["--before", str(before), "--after", str(after)])

    assert completed.returncode == 1
    assert "do not match" in completed.stderr


def test_cli_argument_errors(tmp_path):
    assert run_cli(tmp_path, ["--after", "x.png"]).returncode == 2
    assert run_cli(tmp_path, ["--before", "a.png", "--after", "b.png", "--preset", "fuzzy"]).returncode == 2


def test_cli_version(tmp_path):
    completed = run_cli(tmp_path, ["--version"])

    assert completed.returncode == 0
    assert completed.stdout.strip() == "0.3.0"

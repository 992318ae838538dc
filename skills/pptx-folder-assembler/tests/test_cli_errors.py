from __future__ import annotations

import io
import json
import subprocess
import sys
from pathlib import Path

from pptx import Presentation

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "assemble_pptx.py"


def _run(*args: str) -> subprocess.CompletedProcess:
    return subprocess.run([sys.executable, str(SCRIPT), *args], capture_output=True, text=True)


def test_cli_shows_clean_validation_error(tmp_path: Path) -> None:
    bad_session = tmp_path / "bad.json"
    bad_session.write_text('{"folders": "oops"}', encoding="utf-8")

    result = _run("--session", str(bad_session), "--output", str(tmp_path / "out.pptx"))

    assert result.returncode == 1
    assert "Configuration validation failed" in result.stderr
    assert "folders is required and must be a list" in result.stderr
    assert "Traceback" not in result.stderr


def test_cli_requires_an_input_source(tmp_path: Path) -> None:
    result = _run("--output", str(tmp_path / "out.pptx"))
    assert result.returncode == 1
    assert "Pass at least one of --session, --images-dir or --archive" in result.stderr


def test_cli_reports_corrupt_template_without_traceback(tmp_path: Path, png_bytes) -> None:
    (tmp_path / "Trip").mkdir()
    (tmp_path / "Trip" / "a.png").write_bytes(png_bytes())
    template = tmp_path / "broken.pptx"
    template.write_bytes(b"not a presentation")

    result = _run("--images-dir", str(tmp_path), "--template", str(template), "--output", str(tmp_path / "out.pptx"))

    assert result.returncode == 1
    assert "PPTX assembly failed" in result.stderr
    assert "Traceback" not in result.stderr


def test_cli_assembles_session_with_relative_images(tmp_path: Path, make_template, png_bytes) -> None:
    (tmp_path / "images").mkdir()
    (tmp_path / "images" / "a.png").write_bytes(png_bytes())
    (tmp_path / "images" / "b.png").write_bytes(png_bytes(20, 40))
    session = {
        "folders": [
            {
                "id": "folder-trip",
                "name": "Trip",
                "order": 1,
                "images": [
                    {"filename": "a.png", "location": "images/a.png", "order": 1},
                    {"filename": "b.png", "location": "images/b.png", "order": 2},
                    {"filename": "c.png", "location": "images/c.png", "order": 3},
                ],
            }
        ],
        "settings": {"layout": {"rows": 1, "columns": 2}},
    }
    session_path = tmp_path / "session.json"
    session_path.write_text(json.dumps(session), encoding="utf-8")
    template = tmp_path / "template.pptx"
    template.write_bytes(make_template(2))
    output = tmp_path / "out" / "deck.pptx"

    result = _run(
        "--session",
        str(session_path),
        "--template",
        str(template),
        "--output",
        str(output),
        "--columns",
        "3",
        "--check",
        "--write-session",
        str(tmp_path / "merged.json"),
    )

    assert result.returncode == 0, result.stderr
    assert "PPTX saved to" in result.stdout
    assert "Processed 2 of 3 images into 1 slides (1 skipped)" in result.stderr
    assert "Package check passed" in result.stderr

    prs = Presentation(io.BytesIO(output.read_bytes()))
    assert len(prs.slides) == 3
    merged = json.loads((tmp_path / "merged.json").read_text(encoding="utf-8"))
    assert merged["settings"]["layout"]["columns"] == 3


def test_cli_lists_template_layouts() -> None:
    result = _run("--list-layouts")
    assert result.returncode == 0
    assert "ppt/slideLayouts/slideLayout6.xml\tTitle Only" in result.stdout

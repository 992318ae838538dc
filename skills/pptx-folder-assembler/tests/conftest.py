from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from PIL import Image
from pptx import Presentation

SCRIPT_DIR = Path(__file__).resolve().parents[1] / "scripts"
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from pptxassembler import Folder, ImageRef  # noqa: E402


def _png(width: int = 40, height: int = 20, color=(2, 132, 199)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def _template(slide_count: int = 3, *, slide_height: Optional[int] = None) -> bytes:
    prs = Presentation()
    if slide_height is not None:
        prs.slide_height = slide_height
    for idx in range(slide_count):
        slide = prs.slides.add_slide(prs.slide_layouts[5])
        slide.shapes.title.text = f"Template slide {idx + 1}"
    buf = io.BytesIO()
    prs.save(buf)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> Callable[..., bytes]:
    return _png


@pytest.fixture
def make_template() -> Callable[..., bytes]:
    return _template


class MemoryStore:
    """Fetch capability backed by a dict; unknown locations fail like a missing blob."""

    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}
        self.requested: List[str] = []

    def __call__(self, location: str) -> bytes:
        self.requested.append(location)
        if location not in self.blobs:
            raise FileNotFoundError(f"no blob at {location}")
        return self.blobs[location]

    def folder(self, name: str, count: int, *, order: int = 1, ext: str = "png") -> Folder:
        images = []
        for idx in range(1, count + 1):
            location = f"images/{name}/{idx}.{ext}"
            self.blobs[location] = _png(40 + idx, 20)
            images.append(ImageRef(filename=f"{name}-{idx}.{ext}", location=location, order=idx))
        return Folder(id=f"folder-{name.lower()}", name=name, order=order, images=images)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()

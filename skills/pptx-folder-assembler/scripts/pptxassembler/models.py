"""Data records shared by the assembly pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal, Optional, Tuple

Language = Literal["en", "ar"]

_EXTENSION_RE = re.compile(r"^[a-z0-9]+$")

IMAGE_CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
    "tiff": "image/tiff",
    "svg": "image/svg+xml",
}


def media_extension(filename: str) -> str:
    """Lowercased extension of ``filename``; ``jpg`` when it has none or it is not alphanumeric."""
    base = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in base:
        return "jpg"
    ext = base.rsplit(".", 1)[-1].strip().lower()
    # Media part names and Default extensions stay within [a-z0-9].
    return ext if _EXTENSION_RE.match(ext) else "jpg"


def content_type_for_extension(ext: str) -> str:
    return IMAGE_CONTENT_TYPES.get(ext.lower(), "image/jpeg")


@dataclass(frozen=True)
class ImageRef:
    filename: str
    location: str
    order: int = 0


@dataclass
class Folder:
    id: str
    name: str
    order: int = 0
    images: list[ImageRef] = field(default_factory=list)
    notes: str = ""

    def ordered_images(self) -> list[ImageRef]:
        return sorted(self.images, key=lambda image: image.order)


@dataclass(frozen=True)
class LayoutSettings:
    grid: bool = True
    rows: int = 2
    columns: int = 3
    auto_fit: bool = True
    preserve_aspect: bool = True


@dataclass(frozen=True)
class Settings:
    layout: LayoutSettings = field(default_factory=LayoutSettings)
    use_placeholders: bool = True
    insert_folder_name_as_title: bool = True
    language: Language = "en"


@dataclass(frozen=True)
class ImagePlacement:
    embed_rel_id: str
    media_partname: str


@dataclass(frozen=True)
class SlideDescriptor:
    slide_id: int
    rel_id: str
    partname: str
    title: Optional[str] = None
    image_refs: Tuple[ImagePlacement, ...] = ()

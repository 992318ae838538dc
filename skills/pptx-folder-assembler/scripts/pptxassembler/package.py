"""In-memory OOXML package: load a .pptx, read/write parts, serialize it back."""

from __future__ import annotations

import io
import posixpath
import zipfile
from typing import Dict, Iterator, Union

from .errors import CorruptArchive, DanglingReference, PartNotFound, PartWriteConflict

CONTENT_TYPES_PART = "[Content_Types].xml"
PRESENTATION_PART = "ppt/presentation.xml"
PRESENTATION_RELS_PART = "ppt/_rels/presentation.xml.rels"
APP_PROPERTIES_PART = "docProps/app.xml"

PartContent = Union[bytes, str]


def rels_path_for(partname: str) -> str:
    """Return the relationships part path for a source part.

    ``ppt/slides/slide3.xml`` -> ``ppt/slides/_rels/slide3.xml.rels``
    """
    directory, filename = posixpath.split(partname)
    return posixpath.join(directory, "_rels", f"{filename}.rels")


def source_part_for(rels_path: str) -> str:
    """Inverse of :func:`rels_path_for`; the package root rels map to ``""``."""
    directory, filename = posixpath.split(rels_path)
    base = posixpath.dirname(directory)
    source = filename[: -len(".rels")] if filename.endswith(".rels") else filename
    return posixpath.join(base, source) if base else source


def resolve_target(source_part: str, target: str) -> str:
    """Resolve a relationship ``Target`` relative to the part that owns it."""
    if target.startswith("/"):
        return posixpath.normpath(target).lstrip("/")
    base = posixpath.dirname(source_part)
    return posixpath.normpath(posixpath.join(base, target)).lstrip("/")


class OpcPackage:
    """A .pptx held as an ordered mapping of part path -> bytes.

    Parts are only ever added or overwritten; original parts are never dropped.
    One instance belongs to one assembly run and is not shared between threads.
    """

    def __init__(self, parts: Dict[str, bytes]):
        self._parts: Dict[str, bytes] = dict(parts)
        self._original = frozenset(self._parts)

    @classmethod
    def from_bytes(cls, data: bytes) -> "OpcPackage":
        if not data:
            raise CorruptArchive("Template is empty")
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                parts = {
                    info.filename: zf.read(info.filename)
                    for info in zf.infolist()
                    if not info.is_dir()
                }
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, OSError) as exc:
            raise CorruptArchive(f"Template is not a readable ZIP archive: {exc}") from exc

        if PRESENTATION_PART not in parts:
            raise CorruptArchive(f"Archive has no {PRESENTATION_PART}; not a PowerPoint package")
        return cls(parts)

    def __contains__(self, path: object) -> bool:
        return path in self._parts

    def __iter__(self) -> Iterator[str]:
        return iter(self._parts)

    def __len__(self) -> int:
        return len(self._parts)

    @property
    def partnames(self) -> list[str]:
        return list(self._parts)

    def is_original(self, path: str) -> bool:
        return path in self._original

    def read_bytes(self, path: str) -> bytes:
        try:
            return self._parts[path]
        except KeyError:
            raise PartNotFound(path) from None

    def read_text(self, path: str) -> str:
        return self.read_bytes(path).decode("utf-8")

    def write_part(self, path: str, content: PartContent) -> None:
        """Insert or overwrite a part."""
        self._parts[path] = content.encode("utf-8") if isinstance(content, str) else bytes(content)

    def add_part(self, path: str, content: PartContent) -> None:
        """Insert a new part; refuse to touch a path that already exists."""
        if path in self._parts:
            raise PartWriteConflict(f"Part already exists: {path}")
        self.write_part(path, content)

    def to_bytes(self, *, check: bool = True) -> bytes:
        if check:
            from .integrity import find_dangling_references

            problems = find_dangling_references(self)
            if problems:
                raise DanglingReference(problems)

        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            # Content types first; some consumers sniff the leading entry.
            if CONTENT_TYPES_PART in self._parts:
                zf.writestr(CONTENT_TYPES_PART, self._parts[CONTENT_TYPES_PART])
            for name, content in self._parts.items():
                if name == CONTENT_TYPES_PART:
                    continue
                zf.writestr(name, content)
        return buf.getvalue()

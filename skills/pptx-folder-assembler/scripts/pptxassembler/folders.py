"""Group images into folders from an uploaded archive or a directory tree."""

from __future__ import annotations

import hashlib
import io
import zipfile
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Tuple

from .errors import ConfigValidationError, CorruptArchive
from .fetchers import ArchiveFetcher
from .models import Folder, ImageRef

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tiff", ".svg"}
ROOT_FOLDER_NAME = "Root"


def is_image_file(filename: str) -> bool:
    return PurePosixPath(filename.lower()).suffix in IMAGE_EXTENSIONS


def folder_id(name: str) -> str:
    """Stable id derived from the folder name, so re-uploads of a folder merge."""
    return "folder-" + hashlib.md5(name.encode("utf-8")).hexdigest()[:8]


def _is_hidden(parts: Iterable[str]) -> bool:
    return any(part.startswith(".") or part == "__MACOSX" for part in parts)


class _FolderCollector:
    def __init__(self) -> None:
        self.folders: List[Folder] = []
        self._by_id: Dict[str, Folder] = {}

    def add(self, folder_name: str, filename: str, location: str) -> None:
        fid = folder_id(folder_name)
        folder = self._by_id.get(fid)
        if folder is None:
            folder = Folder(id=fid, name=folder_name, order=len(self.folders) + 1)
            self._by_id[fid] = folder
            self.folders.append(folder)
        folder.images.append(ImageRef(filename=filename, location=location, order=len(folder.images) + 1))


def folders_from_archive(data: bytes) -> Tuple[List[Folder], ArchiveFetcher]:
    """Turn a ZIP of images into folders; each directory path becomes one folder.

    Top-level images land in ``Root``. Folders and images are numbered in
    order of first appearance. Returns the folders plus a fetcher that serves
    their ``zip:`` locations.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = [info.filename for info in zf.infolist() if not info.is_dir()]
        fetcher = ArchiveFetcher(data)
    except (zipfile.BadZipFile, EOFError, OSError) as exc:
        raise CorruptArchive(f"Invalid or corrupted ZIP file: {exc}") from exc

    collector = _FolderCollector()
    for name in names:
        parts = [part for part in name.split("/") if part]
        if not parts or _is_hidden(parts) or not is_image_file(parts[-1]):
            continue
        folder_name = "/".join(parts[:-1]) or ROOT_FOLDER_NAME
        collector.add(folder_name, parts[-1], ArchiveFetcher.location_for(name))

    if not collector.folders:
        raise ConfigValidationError(["No images found in archive"])
    return collector.folders, fetcher


def folders_from_directory(directory: Path) -> List[Folder]:
    """Each subdirectory (relative path) becomes a folder; top-level images go to ``Root``."""
    directory = Path(directory).resolve()
    if not directory.is_dir():
        raise ConfigValidationError([f"Images directory not found: {directory}"])

    collector = _FolderCollector()
    for path in sorted(directory.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(directory)
        if _is_hidden(rel.parts) or not is_image_file(path.name):
            continue
        folder_name = rel.parent.as_posix() if rel.parent != Path(".") else ROOT_FOLDER_NAME
        collector.add(folder_name, path.name, str(path))

    if not collector.folders:
        raise ConfigValidationError([f"No images found in {directory}"])
    return collector.folders


def merge_folders(existing: List[Folder], new: List[Folder]) -> List[Folder]:
    """Append folders whose id is not already present; the first upload of an id wins."""
    seen = {folder.id for folder in existing}
    merged = list(existing)
    for folder in new:
        if folder.id in seen:
            continue
        seen.add(folder.id)
        merged.append(folder)
    return merged


def sort_folders(folders: Iterable[Folder]) -> List[Folder]:
    return sorted(folders, key=lambda folder: folder.order)

"""Session file validation: folders plus layout settings."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigValidationError
from .models import Folder, ImageRef, LayoutSettings, Settings

_LANGUAGES = {"en", "ar"}

# Session files written by the web editor use camelCase keys.
_LAYOUT_KEYS = {
    "grid": "grid",
    "rows": "rows",
    "columns": "columns",
    "autoFit": "auto_fit",
    "auto_fit": "auto_fit",
    "preserveAspect": "preserve_aspect",
    "preserve_aspect": "preserve_aspect",
}
_SETTINGS_KEYS = {
    "usePlaceholders": "use_placeholders",
    "use_placeholders": "use_placeholders",
    "insertFolderNameAsTitle": "insert_folder_name_as_title",
    "insert_folder_name_as_title": "insert_folder_name_as_title",
    "language": "language",
}


def _is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_layout(layout: Dict[str, Any], issues: list[str], prefix: str) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, value in layout.items():
        field_name = _LAYOUT_KEYS.get(key)
        if field_name is None:
            continue
        if field_name in {"rows", "columns"}:
            if not _is_int(value) or value < 1:
                issues.append(f"{prefix}.{key} must be an integer >= 1")
                continue
        elif not isinstance(value, bool):
            issues.append(f"{prefix}.{key} must be a boolean")
            continue
        values[field_name] = value
    return values


def settings_from_dict(raw: Optional[Dict[str, Any]], *, prefix: str = "settings") -> Settings:
    """Build Settings from a (possibly partial) dict, filling the defaults."""
    if raw is None:
        return Settings()
    if not isinstance(raw, dict):
        raise ConfigValidationError([f"{prefix} must be an object"])

    issues: list[str] = []
    layout_values: Dict[str, Any] = {}
    layout = raw.get("layout")
    if layout is not None:
        if isinstance(layout, dict):
            layout_values = _check_layout(layout, issues, f"{prefix}.layout")
        else:
            issues.append(f"{prefix}.layout must be an object when provided")

    values: Dict[str, Any] = {}
    for key, value in raw.items():
        field_name = _SETTINGS_KEYS.get(key)
        if field_name is None:
            continue
        if field_name == "language":
            if value not in _LANGUAGES:
                allowed = ", ".join(sorted(_LANGUAGES))
                issues.append(f"{prefix}.language '{value}' is unsupported (supported: {allowed})")
                continue
        elif not isinstance(value, bool):
            issues.append(f"{prefix}.{key} must be a boolean")
            continue
        values[field_name] = value

    if issues:
        raise ConfigValidationError(issues)
    return Settings(layout=LayoutSettings(**layout_values), **values)


def settings_to_dict(settings: Settings) -> Dict[str, Any]:
    layout = settings.layout
    return {
        "layout": {
            "grid": layout.grid,
            "rows": layout.rows,
            "columns": layout.columns,
            "autoFit": layout.auto_fit,
            "preserveAspect": layout.preserve_aspect,
        },
        "usePlaceholders": settings.use_placeholders,
        "insertFolderNameAsTitle": settings.insert_folder_name_as_title,
        "language": settings.language,
    }


def _check_image(image: Any, prefix: str, issues: list[str]) -> Optional[ImageRef]:
    if not isinstance(image, dict):
        issues.append(f"{prefix} must be an object")
        return None
    filename = image.get("filename")
    # Older sessions store the public URL under "url".
    location = image.get("location", image.get("url"))
    order = image.get("order", 0)
    ok = True
    if not _is_non_empty_str(filename):
        issues.append(f"{prefix}.filename is required and must be a non-empty string")
        ok = False
    if not _is_non_empty_str(location):
        issues.append(f"{prefix}.location (or url) is required and must be a non-empty string")
        ok = False
    if not _is_int(order):
        issues.append(f"{prefix}.order must be an integer when provided")
        ok = False
    return ImageRef(filename=filename, location=location, order=order) if ok else None


def _check_folder(folder: Any, idx: int, issues: list[str]) -> Optional[Folder]:
    prefix = f"folders[{idx}]"
    if not isinstance(folder, dict):
        issues.append(f"{prefix} must be an object")
        return None

    start = len(issues)
    if not _is_non_empty_str(folder.get("id")):
        issues.append(f"{prefix}.id is required and must be a non-empty string")
    if not isinstance(folder.get("name"), str):
        issues.append(f"{prefix}.name is required and must be a string")
    order = folder.get("order", idx + 1)
    if not _is_int(order):
        issues.append(f"{prefix}.order must be an integer when provided")
    notes = folder.get("notes")
    if notes is not None and not isinstance(notes, str):
        issues.append(f"{prefix}.notes must be a string when provided")

    images_raw = folder.get("images", [])
    images: List[ImageRef] = []
    if not isinstance(images_raw, list):
        issues.append(f"{prefix}.images must be a list")
    else:
        for i_idx, image in enumerate(images_raw):
            ref = _check_image(image, f"{prefix}.images[{i_idx}]", issues)
            if ref is not None:
                images.append(ref)

    if len(issues) > start:
        return None
    return Folder(id=folder["id"], name=folder["name"], order=order, images=images, notes=notes or "")


def validate_session(config: Dict[str, Any]) -> Tuple[List[Folder], Settings]:
    """Validate a session dict and return (folders, settings)."""
    if not isinstance(config, dict):
        raise ConfigValidationError(["Root JSON value must be an object"])

    issues: list[str] = []
    folders_raw = config.get("folders")
    folders: List[Folder] = []
    if not isinstance(folders_raw, list):
        issues.append("folders is required and must be a list")
    else:
        seen: set[str] = set()
        for idx, folder_raw in enumerate(folders_raw):
            folder = _check_folder(folder_raw, idx, issues)
            if folder is None:
                continue
            if folder.id in seen:
                issues.append(f"folders[{idx}].id '{folder.id}' is duplicated")
                continue
            seen.add(folder.id)
            folders.append(folder)

    settings = Settings()
    try:
        settings = settings_from_dict(config.get("settings"))
    except ConfigValidationError as exc:
        issues.extend(exc.issues)

    if issues:
        raise ConfigValidationError(issues)
    return folders, settings


def validate_session_file(session_path: Path) -> Tuple[List[Folder], Settings]:
    """Load and validate a JSON session file."""
    try:
        raw = session_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigValidationError([f"Session file not found: {session_path}"]) from exc

    try:
        data: Dict[str, Any] = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigValidationError([f"Invalid JSON at line {exc.lineno}, column {exc.colno}: {exc.msg}"]) from exc

    return validate_session(data)


def session_to_dict(folders: List[Folder], settings: Settings) -> Dict[str, Any]:
    return {"folders": [asdict(folder) for folder in folders], "settings": settings_to_dict(settings)}

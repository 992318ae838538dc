from __future__ import annotations

import json
from pathlib import Path

import pytest

from pptxassembler import ConfigValidationError, LayoutSettings, Settings, settings_from_dict, validate_session
from pptxassembler.validation import session_to_dict, validate_session_file

SAMPLE_SESSION = Path(__file__).resolve().parents[1] / "assets" / "sample_session.json"


def test_validate_session_accepts_sample_session() -> None:
    folders, settings = validate_session_file(SAMPLE_SESSION)
    assert [f.name for f in folders] == ["Trip", "Work"]
    assert folders[0].images[2].location == "https://example.com/uploads/trip/sunset.jpg"
    assert folders[1].notes == "Quarterly offsite"
    assert settings == Settings()


def test_missing_settings_fall_back_to_defaults() -> None:
    folders, settings = validate_session({"folders": []})
    assert folders == []
    assert settings.layout == LayoutSettings(grid=True, rows=2, columns=3, auto_fit=True, preserve_aspect=True)
    assert settings.use_placeholders and settings.insert_folder_name_as_title
    assert settings.language == "en"


def test_settings_accept_camel_and_snake_case() -> None:
    settings = settings_from_dict(
        {"layout": {"rows": 1, "auto_fit": False, "preserveAspect": False}, "insertFolderNameAsTitle": False}
    )
    assert settings.layout.rows == 1
    assert settings.layout.columns == 3
    assert settings.layout.auto_fit is False
    assert settings.layout.preserve_aspect is False
    assert settings.insert_folder_name_as_title is False


def test_settings_reject_bad_values() -> None:
    with pytest.raises(ConfigValidationError) as exc:
        settings_from_dict({"layout": {"rows": 0, "grid": "yes"}, "language": "fr"})
    message = str(exc.value)
    assert message.startswith("Configuration validation failed:")
    assert "settings.layout.rows must be an integer >= 1" in message
    assert "settings.layout.grid must be a boolean" in message
    assert "settings.language 'fr' is unsupported" in message


def test_folder_issues_are_collected_together() -> None:
    bad = {
        "folders": [
            {"id": "", "name": "Trip", "images": [{"filename": "a.jpg"}]},
            {"id": "folder-b", "name": "B", "images": "nope"},
        ]
    }
    with pytest.raises(ConfigValidationError) as exc:
        validate_session(bad)
    issues = exc.value.issues
    assert "folders[0].id is required and must be a non-empty string" in issues
    assert "folders[0].images[0].location (or url) is required and must be a non-empty string" in issues
    assert "folders[1].images must be a list" in issues


def test_duplicate_folder_ids_are_rejected() -> None:
    folder = {"id": "folder-trip", "name": "Trip", "images": []}
    with pytest.raises(ConfigValidationError) as exc:
        validate_session({"folders": [folder, dict(folder, name="Trip again")]})
    assert "folders[1].id 'folder-trip' is duplicated" in str(exc.value)


def test_session_file_errors_are_config_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigValidationError) as exc:
        validate_session_file(tmp_path / "missing.json")
    assert "Session file not found" in str(exc.value)

    broken = tmp_path / "broken.json"
    broken.write_text("{ not json", encoding="utf-8")
    with pytest.raises(ConfigValidationError) as exc:
        validate_session_file(broken)
    assert "Invalid JSON at line 1" in str(exc.value)


def test_session_dict_validates_back_to_the_same_folders() -> None:
    folders, settings = validate_session_file(SAMPLE_SESSION)
    payload = json.loads(json.dumps(session_to_dict(folders, settings)))
    assert validate_session(payload) == (folders, settings)

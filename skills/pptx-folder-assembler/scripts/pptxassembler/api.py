"""Public API helpers for programmatic assembly."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import List, Optional

from pptx import Presentation

from .fetchers import DispatchingFetcher, Fetcher
from .models import Folder, Settings
from .orchestrator import AssemblyOptions, AssemblyResult, PresentationAssembler
from .validation import session_to_dict


def default_template_bytes() -> bytes:
    """python-pptx's built-in blank presentation, used when no template is given."""
    buf = io.BytesIO()
    Presentation().save(buf)
    return buf.getvalue()


def assemble_to_file(
    *,
    folders: List[Folder],
    settings: Settings,
    output_path: Path,
    template_path: Optional[Path] = None,
    fetch: Optional[Fetcher] = None,
    options: Optional[AssemblyOptions] = None,
) -> AssemblyResult:
    """Assemble ``folders`` onto the template and write the result to ``output_path``."""
    template = Path(template_path).read_bytes() if template_path else default_template_bytes()
    assembler = PresentationAssembler(fetch or DispatchingFetcher(), options)
    result = assembler.assemble(template, folders, settings)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.data)
    return result


def write_session(folders: List[Folder], settings: Settings, path: Path) -> Path:
    """Write folders + settings as a session JSON file and return the path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = session_to_dict(folders, settings)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return path

"""CLI orchestration for the folder-to-slides assembler."""

from __future__ import annotations

import argparse
import dataclasses
import sys
import traceback
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .api import assemble_to_file, default_template_bytes, write_session
from .errors import ConfigValidationError
from .fetchers import DispatchingFetcher, FileFetcher, Fetcher
from .folders import folders_from_archive, folders_from_directory, merge_folders, sort_folders
from .integrity import check_package
from .models import Folder, Settings
from .orchestrator import AssemblyOptions
from .package import OpcPackage
from .registries import list_slide_layouts
from .validation import validate_session_file


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Append one slide per image folder to a PPTX template")
    parser.add_argument("--output", default=None, help="Output PPTX file path")
    parser.add_argument("--template", default=None, help="Path to a .pptx template (default: blank presentation)")
    parser.add_argument("--session", default=None, help="Session JSON with folders and settings")
    parser.add_argument("--images-dir", default=None, help="Directory whose subdirectories become slides")
    parser.add_argument("--archive", default=None, help="ZIP archive whose folders become slides")
    parser.add_argument(
        "--list-layouts",
        action="store_true",
        help="Print slide layout part names/names for the chosen template and exit",
    )
    parser.add_argument("--rows", type=int, default=None, help="Grid rows per slide (overrides session)")
    parser.add_argument("--columns", type=int, default=None, help="Grid columns per slide (overrides session)")
    parser.add_argument("--no-grid", action="store_true", help="Size the grid to each folder instead of rows x columns")
    parser.add_argument("--no-title", action="store_true", help="Do not insert the folder name as slide title")
    parser.add_argument("--no-placeholders", action="store_true", help="Draw titles as plain text boxes")
    parser.add_argument("--no-autofit", action="store_true", help="Do not shrink title text on overflow")
    parser.add_argument("--no-preserve-aspect", action="store_true", help="Stretch images to their grid cell")
    parser.add_argument("--language", default=None, choices=["en", "ar"], help="Title language/direction")
    parser.add_argument("--fetch-workers", type=int, default=4, help="Parallel image fetches (default: 4)")
    parser.add_argument(
        "--fallback-to-template",
        action="store_true",
        help="On a template error write the unmodified template instead of failing",
    )
    parser.add_argument("--write-session", default=None, help="Also write the merged session JSON to this path")
    parser.add_argument("--check", action="store_true", help="Verify cross-part references of the output")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show full traceback for unexpected errors",
    )
    return parser


def _load_inputs(args: argparse.Namespace) -> Tuple[List[Folder], Settings, Fetcher]:
    folders: List[Folder] = []
    settings = Settings()
    files = FileFetcher()
    archive = None

    # Session folders come first so they win id collisions with new uploads.
    if args.session:
        session_path = Path(args.session).resolve()
        folders, settings = validate_session_file(session_path)
        files = FileFetcher(session_path.parent)
    if args.images_dir:
        folders = merge_folders(folders, folders_from_directory(Path(args.images_dir)))
    if args.archive:
        archive_folders, archive = folders_from_archive(Path(args.archive).read_bytes())
        folders = merge_folders(folders, archive_folders)

    return sort_folders(folders), settings, DispatchingFetcher(files=files, archive=archive)


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    issues = []
    for name in ("rows", "columns"):
        value = getattr(args, name)
        if value is not None and value < 1:
            issues.append(f"--{name} must be >= 1")
    if issues:
        raise ConfigValidationError(issues)

    layout = settings.layout
    layout = dataclasses.replace(
        layout,
        rows=args.rows if args.rows is not None else layout.rows,
        columns=args.columns if args.columns is not None else layout.columns,
        grid=layout.grid and not args.no_grid,
        auto_fit=layout.auto_fit and not args.no_autofit,
        preserve_aspect=layout.preserve_aspect and not args.no_preserve_aspect,
    )
    return dataclasses.replace(
        settings,
        layout=layout,
        use_placeholders=settings.use_placeholders and not args.no_placeholders,
        insert_folder_name_as_title=settings.insert_folder_name_as_title and not args.no_title,
        language=args.language or settings.language,
    )


def run_cli(argv: Optional[Sequence[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        template_path = Path(args.template).resolve() if args.template else None

        if args.list_layouts:
            template = template_path.read_bytes() if template_path else default_template_bytes()
            for partname, name in list_slide_layouts(OpcPackage.from_bytes(template)):
                print(f"{partname}\t{name}")
            return

        if not args.output:
            raise ConfigValidationError(["--output is required"])
        if not (args.session or args.images_dir or args.archive):
            raise ConfigValidationError(["Pass at least one of --session, --images-dir or --archive"])

        folders, settings, fetch = _load_inputs(args)
        settings = _apply_overrides(settings, args)
        options = AssemblyOptions(
            fetch_workers=max(1, args.fetch_workers),
            on_failure="fallback" if args.fallback_to_template else "raise",
        )

        output_path = Path(args.output).resolve()
        result = assemble_to_file(
            folders=folders,
            settings=settings,
            output_path=output_path,
            template_path=template_path,
            fetch=fetch,
            options=options,
        )
        if result.fell_back:
            print(f"⚠️  Wrote the unmodified template to {output_path}", file=sys.stderr)
        else:
            print(f"✅ PPTX saved to {output_path}")
        print(result.report.summary(), file=sys.stderr)

        if args.write_session:
            write_session(folders, settings, Path(args.write_session).resolve())

        if args.check:
            issues = check_package(OpcPackage.from_bytes(result.data))
            for issue in issues:
                print(f"- {issue}", file=sys.stderr)
            if issues:
                raise SystemExit(f"Package check found {len(issues)} issue(s)")
            print("Package check passed", file=sys.stderr)
    except ConfigValidationError as e:
        raise SystemExit(str(e)) from e
    except Exception as e:
        if args.debug:
            traceback.print_exc()
        raise SystemExit(f"PPTX assembly failed: {e}") from e

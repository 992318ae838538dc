"""PPTX Folder Assembler - appends one slide per image folder to a template.

Each folder of images (from a session JSON, a directory tree or a ZIP archive)
becomes a slide with the folder name as title and its images in a grid. The
template's own slides, layouts and theme are kept untouched.
"""

from __future__ import annotations

from pptxassembler import run_cli


def main() -> None:
    run_cli()


if __name__ == "__main__":
    main()

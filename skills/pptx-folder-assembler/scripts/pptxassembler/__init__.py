"""Internal helpers for the PPTX folder assembler skill."""

from .api import assemble_to_file, default_template_bytes, write_session
from .cli import run_cli
from .errors import (
    AssemblyError,
    ConfigValidationError,
    CorruptArchive,
    DanglingReference,
    ImageFetchFailed,
    MalformedTemplate,
    PartNotFound,
    PartWriteConflict,
)
from .fetchers import ArchiveFetcher, DispatchingFetcher, FileFetcher, HttpFetcher
from .folders import folders_from_archive, folders_from_directory, merge_folders, sort_folders
from .integrity import check_package
from .models import Folder, ImageRef, LayoutSettings, Settings, SlideDescriptor
from .orchestrator import AssemblyOptions, AssemblyReport, AssemblyResult, IdAllocator, PresentationAssembler
from .package import OpcPackage
from .synthesizer import FetchedImage, synthesize_slide
from .validation import settings_from_dict, validate_session, validate_session_file

__all__ = [
    "ArchiveFetcher",
    "AssemblyError",
    "AssemblyOptions",
    "AssemblyReport",
    "AssemblyResult",
    "ConfigValidationError",
    "CorruptArchive",
    "DanglingReference",
    "DispatchingFetcher",
    "FetchedImage",
    "FileFetcher",
    "Folder",
    "HttpFetcher",
    "IdAllocator",
    "ImageFetchFailed",
    "ImageRef",
    "LayoutSettings",
    "MalformedTemplate",
    "OpcPackage",
    "PartNotFound",
    "PartWriteConflict",
    "PresentationAssembler",
    "Settings",
    "SlideDescriptor",
    "assemble_to_file",
    "check_package",
    "default_template_bytes",
    "folders_from_archive",
    "folders_from_directory",
    "merge_folders",
    "run_cli",
    "settings_from_dict",
    "sort_folders",
    "synthesize_slide",
    "validate_session",
    "validate_session_file",
    "write_session",
]

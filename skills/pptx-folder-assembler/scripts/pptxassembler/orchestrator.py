"""Append one generated slide per folder to a template presentation.

One pass over one package: Init -> PerFolder -> RegistryUpdate -> Serialize.
Image fetches for a folder run on a bounded thread pool and fully join before
that folder's parts are written; everything else runs on the calling thread.
"""

from __future__ import annotations

import posixpath
import re
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Optional, Sequence, Tuple

from .errors import AssemblyError, CorruptArchive, ImageFetchFailed
from .fetchers import Fetcher
from .models import Folder, Settings, SlideDescriptor
from .package import OpcPackage, rels_path_for
from .registries import (
    append_content_type_overrides,
    append_presentation_relationships,
    append_slide_id_list,
    ensure_default_content_types,
    list_slide_layouts,
    max_relationship_index,
    max_slide_id,
    max_slide_part_number,
    read_slide_id_list,
    read_slide_size,
    update_app_slide_count,
)
from .synthesizer import FetchedImage, grid_shape, synthesize_slide

# Headroom left above the highest scanned rIdN of the presentation rels.
RELATIONSHIP_ID_GAP = 10
# p:sldId values below 256 are invalid.
MIN_SLIDE_ID = 256

FailurePolicy = Literal["raise", "fallback"]


@dataclass(frozen=True)
class AssemblyOptions:
    fetch_workers: int = 4
    on_failure: FailurePolicy = "raise"
    relationship_id_gap: int = RELATIONSHIP_ID_GAP


@dataclass(frozen=True)
class SlideAllocation:
    slide_id: int
    rel_id: str
    number: int

    @property
    def partname(self) -> str:
        return f"ppt/slides/slide{self.number}.xml"


class IdAllocator:
    """Monotonic slide-id / relationship-id / part-number counters for one run."""

    def __init__(self, *, next_slide_id: int, next_rel_index: int, next_slide_number: int):
        self.next_slide_id = next_slide_id
        self.next_rel_index = next_rel_index
        self.next_slide_number = next_slide_number

    @classmethod
    def for_package(cls, pkg: OpcPackage, *, gap: int = RELATIONSHIP_ID_GAP) -> "IdAllocator":
        return cls(
            next_slide_id=max(max_slide_id(read_slide_id_list(pkg)) + 1, MIN_SLIDE_ID),
            next_rel_index=max_relationship_index(pkg) + gap + 1,
            next_slide_number=max_slide_part_number(pkg) + 1,
        )

    def allocate(self) -> SlideAllocation:
        allocation = SlideAllocation(
            slide_id=self.next_slide_id,
            rel_id=f"rId{self.next_rel_index}",
            number=self.next_slide_number,
        )
        self.next_slide_id += 1
        self.next_rel_index += 1
        self.next_slide_number += 1
        return allocation


@dataclass(frozen=True)
class ImageOutcome:
    folder_id: str
    filename: str
    location: str
    ok: bool
    media_partname: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AssemblyReport:
    slides_added: int = 0
    images_total: int = 0
    images_truncated: int = 0
    outcomes: List[ImageOutcome] = field(default_factory=list)
    descriptors: List[SlideDescriptor] = field(default_factory=list)

    @property
    def images_placed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failures(self) -> List[ImageOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    def summary(self) -> str:
        text = f"Processed {self.images_placed} of {self.images_total} images into {self.slides_added} slides"
        extras = []
        if self.failures:
            extras.append(f"{len(self.failures)} skipped")
        if self.images_truncated:
            extras.append(f"{self.images_truncated} over grid capacity")
        return f"{text} ({', '.join(extras)})" if extras else text


@dataclass
class AssemblyResult:
    data: bytes
    report: AssemblyReport
    fell_back: bool = False
    error: Optional[AssemblyError] = None


def find_layout(layouts: Sequence[Tuple[str, str]], name_candidates: Iterable[str]) -> Optional[str]:
    """Best matching layout partname for the given names (exact, word, then substring match)."""
    candidates = [c.strip().lower() for c in name_candidates if c.strip()]
    if not candidates:
        return None

    def normalize(name: str) -> str:
        return re.sub(r"[^a-z0-9]+", " ", (name or "").strip().lower()).strip()

    best_partname = None
    best_score = 0
    for partname, name in layouts:
        normalized = normalize(name)
        score = 0
        for candidate in candidates:
            c = normalize(candidate)
            if not c:
                continue
            if normalized == c:
                score = max(score, 200 + len(c))
            elif re.search(rf"\b{re.escape(c)}\b", normalized):
                score = max(score, 120 + len(c))
            elif c in normalized:
                score = max(score, 80 + len(c))
        if score > best_score:
            best_partname = partname
            best_score = score
    return best_partname


def pick_slide_layout(pkg: OpcPackage, settings: Settings) -> Optional[str]:
    """Relationship target (relative to ppt/slides/) of the layout new slides use."""
    layouts = list_slide_layouts(pkg)
    if not layouts:
        return None
    if settings.insert_folder_name_as_title and settings.use_placeholders:
        partname = find_layout(layouts, ["title only"]) or find_layout(layouts, ["blank"])
    else:
        partname = find_layout(layouts, ["blank"])
    partname = partname or layouts[0][0]
    return "../slideLayouts/" + posixpath.basename(partname)


class PresentationAssembler:
    """Append one slide per folder to a template, fetching images via ``fetch``."""

    def __init__(self, fetch: Fetcher, options: Optional[AssemblyOptions] = None):
        self.fetch = fetch
        self.options = options or AssemblyOptions()

    def assemble(self, template: bytes, folders: Sequence[Folder], settings: Settings) -> AssemblyResult:
        """Return the assembled package, or the untouched template under the fallback policy.

        ``folders`` are processed in the given order. ``CorruptArchive`` always
        propagates: there is no template to fall back to.
        """
        report = AssemblyReport()
        pkg = OpcPackage.from_bytes(template)
        try:
            data = self._run(pkg, folders, settings, report)
        except CorruptArchive:
            raise
        except AssemblyError as exc:
            if self.options.on_failure != "fallback":
                raise
            print(f"⚠️  Assembly failed, returning the original template: {exc}", file=sys.stderr)
            return AssemblyResult(data=template, report=report, fell_back=True, error=exc)
        return AssemblyResult(data=data, report=report)

    def _run(self, pkg: OpcPackage, folders: Sequence[Folder], settings: Settings, report: AssemblyReport) -> bytes:
        # Init
        original_count = len(read_slide_id_list(pkg))
        allocator = IdAllocator.for_package(pkg, gap=self.options.relationship_id_gap)
        canvas = read_slide_size(pkg)
        layout_target = pick_slide_layout(pkg, settings)

        # PerFolder
        media_types: dict[str, str] = {}
        with ThreadPoolExecutor(max_workers=max(1, self.options.fetch_workers)) as pool:
            for folder in folders:
                allocation = allocator.allocate()
                images = self._fetch_folder(folder, settings, pool, report)
                slide = synthesize_slide(
                    folder,
                    images,
                    settings,
                    slide_index=allocation.number,
                    canvas=canvas,
                    layout_target=layout_target,
                )
                pkg.add_part(allocation.partname, slide.slide_xml)
                pkg.add_part(rels_path_for(allocation.partname), slide.rels_xml)
                for media in slide.media:
                    pkg.add_part(media.partname, media.data)
                    media_types.setdefault(media.extension, media.content_type)
                for image, placement in zip(images, slide.placements):
                    report.outcomes.append(
                        ImageOutcome(
                            folder.id,
                            image.ref.filename,
                            image.ref.location,
                            ok=True,
                            media_partname=placement.media_partname,
                        )
                    )
                report.descriptors.append(
                    SlideDescriptor(
                        slide_id=allocation.slide_id,
                        rel_id=allocation.rel_id,
                        partname=allocation.partname,
                        title=slide.title,
                        image_refs=tuple(slide.placements),
                    )
                )
                report.slides_added += 1

        # RegistryUpdate, batched over every new slide.
        if report.descriptors:
            append_content_type_overrides(pkg, [d.partname for d in report.descriptors])
            ensure_default_content_types(pkg, media_types)
            append_presentation_relationships(pkg, report.descriptors)
            append_slide_id_list(pkg, report.descriptors)
            update_app_slide_count(pkg, original_count + len(report.descriptors))

        # Serialize
        return pkg.to_bytes()

    def _fetch_folder(
        self,
        folder: Folder,
        settings: Settings,
        pool: ThreadPoolExecutor,
        report: AssemblyReport,
    ) -> List[FetchedImage]:
        ordered = folder.ordered_images()
        rows, columns = grid_shape(settings, len(ordered))
        capacity = rows * columns
        wanted = ordered[:capacity]
        report.images_total += len(wanted)
        report.images_truncated += len(ordered) - len(wanted)

        futures = [
            (position, ref, pool.submit(self.fetch, ref.location))
            for position, ref in enumerate(wanted, start=1)
        ]
        fetched: List[FetchedImage] = []
        for position, ref, future in futures:
            try:
                data = future.result()
                if not data:
                    raise ImageFetchFailed(ref.location, "empty image data")
            except Exception as exc:
                # A failed image is recorded and skipped.
                error = exc if isinstance(exc, ImageFetchFailed) else ImageFetchFailed(ref.location, str(exc))
                print(f"⚠️  Skipping image {ref.filename} in folder '{folder.name}': {error.reason}", file=sys.stderr)
                report.outcomes.append(ImageOutcome(folder.id, ref.filename, ref.location, ok=False, error=error.reason))
                continue
            fetched.append(FetchedImage(ref=ref, position=position, data=data))
        return fetched

"""Typed views over the three registries that keep a .pptx consistent.

``[Content_Types].xml`` (content-type defaults/overrides),
``ppt/_rels/presentation.xml.rels`` (relationship id -> target) and the
``p:sldIdLst`` of ``ppt/presentation.xml`` (ordered slide ids). Each registry
has an explicit parse and serialize step; the presentation part itself is
only touched at the slide-id list.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from lxml import etree

from .errors import MalformedTemplate, PartNotFound, PartWriteConflict
from .package import (
    APP_PROPERTIES_PART,
    CONTENT_TYPES_PART,
    PRESENTATION_PART,
    PRESENTATION_RELS_PART,
    OpcPackage,
)

CT_NS = "http://schemas.openxmlformats.org/package/2006/content-types"
PKG_RELS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
P_NS = "http://schemas.openxmlformats.org/presentationml/2006/main"
A_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
EP_NS = "http://schemas.openxmlformats.org/officeDocument/2006/extended-properties"

RT_SLIDE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/slide"
RT_SLIDE_LAYOUT = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/slideLayout"
RT_IMAGE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"

CT_SLIDE = "application/vnd.openxmlformats-officedocument.presentationml.slide+xml"

# 10in x 7.5in, the PowerPoint 4:3 default.
DEFAULT_SLIDE_SIZE = (9144000, 6858000)

_RID_RE = re.compile(r"^rId(\d+)$")
_SLIDE_PART_RE = re.compile(r"^ppt/slides/slide(\d+)\.xml$")
_LAYOUT_PART_RE = re.compile(r"^ppt/slideLayouts/slideLayout(\d+)\.xml$")

# Children of p:presentation that must follow p:sldIdLst (ECMA-376 schema order).
_AFTER_SLDIDLST = (
    "sldSz",
    "notesSz",
    "smartTags",
    "embeddedFontLst",
    "custShowLst",
    "photoAlbum",
    "custDataLst",
    "kinsoku",
    "defaultTextStyle",
    "modifyVerifier",
    "extLst",
)

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


class _SlideRef(Protocol):
    slide_id: int
    rel_id: str
    partname: str


def _parse_xml(data: bytes, partname: str) -> etree._Element:
    try:
        return etree.fromstring(data, _PARSER)
    except etree.XMLSyntaxError as exc:
        raise MalformedTemplate(f"{partname} is not well-formed XML: {exc}") from exc


def _serialize(root: etree._Element) -> bytes:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


def _read_required(pkg: OpcPackage, partname: str) -> bytes:
    try:
        return pkg.read_bytes(partname)
    except PartNotFound as exc:
        raise MalformedTemplate(f"Template is missing required part {partname}") from exc


# ---------------------------------------------------------------------------
# [Content_Types].xml
# ---------------------------------------------------------------------------


@dataclass
class ContentTypes:
    defaults: Dict[str, str] = field(default_factory=dict)
    overrides: List[Tuple[str, str]] = field(default_factory=list)

    def content_type_for(self, partname: str) -> Optional[str]:
        key = "/" + partname.lstrip("/")
        for name, content_type in self.overrides:
            if name.lower() == key.lower():
                return content_type
        ext = partname.rsplit(".", 1)[-1].lower() if "." in partname.rsplit("/", 1)[-1] else ""
        for default_ext, content_type in self.defaults.items():
            if default_ext.lower() == ext:
                return content_type
        return None

    def has_default(self, ext: str) -> bool:
        return any(existing.lower() == ext.lower() for existing in self.defaults)

    def to_xml(self) -> bytes:
        root = etree.Element(f"{{{CT_NS}}}Types", nsmap={None: CT_NS})
        for ext, content_type in self.defaults.items():
            etree.SubElement(root, f"{{{CT_NS}}}Default", Extension=ext, ContentType=content_type)
        for partname, content_type in self.overrides:
            etree.SubElement(root, f"{{{CT_NS}}}Override", PartName=partname, ContentType=content_type)
        return _serialize(root)


def parse_content_types(data: bytes) -> ContentTypes:
    root = _parse_xml(data, CONTENT_TYPES_PART)
    if root.tag != f"{{{CT_NS}}}Types":
        raise MalformedTemplate(f"{CONTENT_TYPES_PART} root element is not Types")
    registry = ContentTypes()
    for child in root:
        if child.tag == f"{{{CT_NS}}}Default":
            ext = child.get("Extension")
            content_type = child.get("ContentType")
            if ext and content_type:
                registry.defaults[ext] = content_type
        elif child.tag == f"{{{CT_NS}}}Override":
            partname = child.get("PartName")
            content_type = child.get("ContentType")
            if partname and content_type:
                registry.overrides.append((partname, content_type))
    return registry


def load_content_types(pkg: OpcPackage) -> ContentTypes:
    return parse_content_types(_read_required(pkg, CONTENT_TYPES_PART))


def append_content_type_overrides(pkg: OpcPackage, slide_partnames: Iterable[str]) -> None:
    """Register one slide Override per new slide part.

    No dedup: call once per assembly run.
    """
    registry = load_content_types(pkg)
    for partname in slide_partnames:
        registry.overrides.append(("/" + partname.lstrip("/"), CT_SLIDE))
    pkg.write_part(CONTENT_TYPES_PART, registry.to_xml())


def ensure_default_content_types(pkg: OpcPackage, by_extension: Mapping[str, str]) -> list[str]:
    """Add a Default entry for each media extension not yet covered. Returns the added extensions."""
    registry = load_content_types(pkg)
    added: list[str] = []
    for ext, content_type in by_extension.items():
        if registry.has_default(ext):
            continue
        registry.defaults[ext] = content_type
        added.append(ext)
    if added:
        pkg.write_part(CONTENT_TYPES_PART, registry.to_xml())
    return added


# ---------------------------------------------------------------------------
# Relationship parts (*.rels)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Relationship:
    rel_id: str
    reltype: str
    target: str
    target_mode: Optional[str] = None

    @property
    def is_external(self) -> bool:
        return (self.target_mode or "").lower() == "external"


@dataclass
class RelationshipTable:
    relationships: List[Relationship] = field(default_factory=list)

    def ids(self) -> set[str]:
        return {rel.rel_id for rel in self.relationships}

    def get(self, rel_id: str) -> Optional[Relationship]:
        for rel in self.relationships:
            if rel.rel_id == rel_id:
                return rel
        return None

    def max_index(self) -> int:
        best = 0
        for rel in self.relationships:
            match = _RID_RE.match(rel.rel_id)
            if match:
                best = max(best, int(match.group(1)))
        return best

    def add(self, rel_id: str, reltype: str, target: str) -> Relationship:
        if rel_id in self.ids():
            raise PartWriteConflict(f"Relationship id {rel_id} is already in use")
        rel = Relationship(rel_id, reltype, target)
        self.relationships.append(rel)
        return rel

    def to_xml(self) -> bytes:
        root = etree.Element(f"{{{PKG_RELS_NS}}}Relationships", nsmap={None: PKG_RELS_NS})
        for rel in self.relationships:
            el = etree.SubElement(root, f"{{{PKG_RELS_NS}}}Relationship", Id=rel.rel_id, Type=rel.reltype, Target=rel.target)
            if rel.target_mode:
                el.set("TargetMode", rel.target_mode)
        return _serialize(root)


def parse_relationships(data: bytes, partname: str = "relationships part") -> RelationshipTable:
    root = _parse_xml(data, partname)
    if root.tag != f"{{{PKG_RELS_NS}}}Relationships":
        raise MalformedTemplate(f"{partname} root element is not Relationships")
    table = RelationshipTable()
    for child in root:
        if child.tag != f"{{{PKG_RELS_NS}}}Relationship":
            continue
        table.relationships.append(
            Relationship(
                rel_id=child.get("Id", ""),
                reltype=child.get("Type", ""),
                target=child.get("Target", ""),
                target_mode=child.get("TargetMode"),
            )
        )
    return table


def load_presentation_rels(pkg: OpcPackage) -> RelationshipTable:
    return parse_relationships(_read_required(pkg, PRESENTATION_RELS_PART), PRESENTATION_RELS_PART)


def max_relationship_index(pkg: OpcPackage) -> int:
    """Highest N among the ``rIdN`` ids of the presentation relationships part."""
    return load_presentation_rels(pkg).max_index()


def append_presentation_relationships(pkg: OpcPackage, slides: Iterable[_SlideRef]) -> None:
    table = load_presentation_rels(pkg)
    for slide in slides:
        target = slide.partname[len("ppt/"):] if slide.partname.startswith("ppt/") else slide.partname
        table.add(slide.rel_id, RT_SLIDE, target)
    pkg.write_part(PRESENTATION_RELS_PART, table.to_xml())


# ---------------------------------------------------------------------------
# ppt/presentation.xml slide-id list
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SlideIdEntry:
    id: int
    rel_id: str


def _presentation_root(pkg: OpcPackage) -> etree._Element:
    root = _parse_xml(_read_required(pkg, PRESENTATION_PART), PRESENTATION_PART)
    if root.tag != f"{{{P_NS}}}presentation":
        raise MalformedTemplate(f"{PRESENTATION_PART} root element is not p:presentation")
    if root.find(f"{{{P_NS}}}sldMasterIdLst") is None:
        raise MalformedTemplate(f"{PRESENTATION_PART} has no slide master list")
    return root


def _slide_id_list(root: etree._Element, pkg: OpcPackage, *, create: bool) -> Optional[etree._Element]:
    lst = root.find(f"{{{P_NS}}}sldIdLst")
    if lst is not None:
        return lst

    if any(rel.reltype == RT_SLIDE for rel in load_presentation_rels(pkg).relationships):
        raise MalformedTemplate(f"{PRESENTATION_PART} relates to slides but has no slide id list")
    if not create:
        return None

    lst = etree.Element(f"{{{P_NS}}}sldIdLst")
    followers = {f"{{{P_NS}}}{name}" for name in _AFTER_SLDIDLST}
    for index, child in enumerate(root):
        if child.tag in followers:
            root.insert(index, lst)
            break
    else:
        root.append(lst)
    return lst


def read_slide_id_list(pkg: OpcPackage) -> list[SlideIdEntry]:
    root = _presentation_root(pkg)
    lst = _slide_id_list(root, pkg, create=False)
    if lst is None:
        return []

    entries: list[SlideIdEntry] = []
    for el in lst.findall(f"{{{P_NS}}}sldId"):
        raw_id = el.get("id")
        rel_id = el.get(f"{{{R_NS}}}id")
        try:
            slide_id = int(raw_id or "")
        except ValueError:
            raise MalformedTemplate(f"Slide id {raw_id!r} in {PRESENTATION_PART} is not an integer") from None
        if not rel_id:
            raise MalformedTemplate(f"Slide id {slide_id} in {PRESENTATION_PART} has no relationship id")
        entries.append(SlideIdEntry(slide_id, rel_id))
    return entries


def max_slide_id(entries: Iterable[SlideIdEntry]) -> int:
    return max((entry.id for entry in entries), default=0)


def append_slide_id_list(pkg: OpcPackage, slides: Iterable[_SlideRef]) -> None:
    """Append new ``p:sldId`` entries after every existing one."""
    root = _presentation_root(pkg)
    lst = _slide_id_list(root, pkg, create=True)
    for slide in slides:
        el = etree.SubElement(lst, f"{{{P_NS}}}sldId")
        el.set("id", str(slide.slide_id))
        el.set(f"{{{R_NS}}}id", slide.rel_id)
    pkg.write_part(PRESENTATION_PART, _serialize(root))


def read_slide_size(pkg: OpcPackage) -> tuple[int, int]:
    root = _presentation_root(pkg)
    size = root.find(f"{{{P_NS}}}sldSz")
    if size is None:
        return DEFAULT_SLIDE_SIZE
    try:
        return int(size.get("cx", "")), int(size.get("cy", ""))
    except ValueError:
        return DEFAULT_SLIDE_SIZE


# ---------------------------------------------------------------------------
# Part inventory helpers
# ---------------------------------------------------------------------------


def max_slide_part_number(pkg: OpcPackage) -> int:
    best = 0
    for name in pkg:
        match = _SLIDE_PART_RE.match(name)
        if match:
            best = max(best, int(match.group(1)))
    return best


def list_slide_layouts(pkg: OpcPackage) -> list[tuple[str, str]]:
    """Return ``(partname, layout name)`` for every slide layout, in part-number order."""
    found: list[tuple[int, str, str]] = []
    for name in pkg:
        match = _LAYOUT_PART_RE.match(name)
        if not match:
            continue
        layout_name = ""
        try:
            root = etree.fromstring(pkg.read_bytes(name), _PARSER)
            csld = root.find(f"{{{P_NS}}}cSld")
            if csld is not None:
                layout_name = csld.get("name", "")
        except etree.XMLSyntaxError:
            layout_name = ""
        found.append((int(match.group(1)), name, layout_name))
    return [(name, layout_name) for _, name, layout_name in sorted(found)]


def update_app_slide_count(pkg: OpcPackage, count: int) -> bool:
    """Keep ``docProps/app.xml`` <Slides> in step with the slide list, when present."""
    if APP_PROPERTIES_PART not in pkg:
        return False
    try:
        root = etree.fromstring(pkg.read_bytes(APP_PROPERTIES_PART), _PARSER)
    except etree.XMLSyntaxError:
        return False
    slides = root.find(f"{{{EP_NS}}}Slides")
    if slides is None:
        return False
    slides.text = str(count)
    pkg.write_part(APP_PROPERTIES_PART, _serialize(root))
    return True

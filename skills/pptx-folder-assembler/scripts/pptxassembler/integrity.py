"""Cross-part consistency checks for an OOXML package."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List

from lxml import etree

from .errors import MalformedTemplate
from .package import (
    CONTENT_TYPES_PART,
    PRESENTATION_PART,
    OpcPackage,
    rels_path_for,
    resolve_target,
    source_part_for,
)
from .registries import P_NS, R_NS, RelationshipTable, parse_content_types, parse_relationships

_SLIDE_PART_RE = re.compile(r"^ppt/slides/slide\d+\.xml$")

BROKEN_REF = "BROKEN_REF"
DANGLING_OVERRIDE = "DANGLING_OVERRIDE"
UNRESOLVED_RID = "UNRESOLVED_RID"
DUPLICATE_RID = "DUPLICATE_RID"
DUPLICATE_SLIDE_ID = "DUPLICATE_SLIDE_ID"
MISSING_CONTENT_TYPE = "MISSING_CONTENT_TYPE"
INVALID_XML = "INVALID_XML"

# Issue kinds that make a package unsafe to emit.
DANGLING_KINDS = frozenset({BROKEN_REF, DANGLING_OVERRIDE, UNRESOLVED_RID, INVALID_XML})


@dataclass(frozen=True)
class PackageIssue:
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


def _relationship_tables(pkg: OpcPackage, issues: List[PackageIssue]) -> Dict[str, RelationshipTable]:
    tables: Dict[str, RelationshipTable] = {}
    for name in pkg:
        if not name.endswith(".rels"):
            continue
        try:
            tables[source_part_for(name)] = parse_relationships(pkg.read_bytes(name), name)
        except MalformedTemplate as exc:
            issues.append(PackageIssue(INVALID_XML, str(exc)))
    return tables


def _check_relationships(pkg: OpcPackage, tables: Dict[str, RelationshipTable], issues: List[PackageIssue]) -> None:
    for source, table in tables.items():
        counts = Counter(rel.rel_id for rel in table.relationships)
        for rel_id, count in counts.items():
            if count > 1:
                issues.append(PackageIssue(DUPLICATE_RID, f"{rel_id} appears {count} times in {rels_path_for(source) if source else '_rels/.rels'}"))
        for rel in table.relationships:
            if rel.is_external:
                continue
            target = resolve_target(source, rel.target)
            if target not in pkg:
                issues.append(PackageIssue(BROKEN_REF, f"{source or '<package>'} -> {target} ({rel.rel_id})"))


def _check_content_types(pkg: OpcPackage, issues: List[PackageIssue]) -> None:
    if CONTENT_TYPES_PART not in pkg:
        issues.append(PackageIssue(DANGLING_OVERRIDE, f"Missing {CONTENT_TYPES_PART}"))
        return
    try:
        registry = parse_content_types(pkg.read_bytes(CONTENT_TYPES_PART))
    except MalformedTemplate as exc:
        issues.append(PackageIssue(INVALID_XML, str(exc)))
        return

    for partname, _ in registry.overrides:
        if partname.lstrip("/") not in pkg:
            issues.append(PackageIssue(DANGLING_OVERRIDE, f"Override for missing part {partname}"))

    for name in pkg:
        if name == CONTENT_TYPES_PART:
            continue
        if registry.content_type_for(name) is None:
            issues.append(PackageIssue(MISSING_CONTENT_TYPE, f"No content type for {name}"))


def _check_r_attributes(pkg: OpcPackage, tables: Dict[str, RelationshipTable], issues: List[PackageIssue]) -> None:
    """Every r:id / r:embed in the presentation and slide parts must name a relationship of that part."""
    parts = [name for name in pkg if name == PRESENTATION_PART or _SLIDE_PART_RE.match(name)]
    for name in parts:
        try:
            root = etree.fromstring(pkg.read_bytes(name))
        except etree.XMLSyntaxError as exc:
            issues.append(PackageIssue(INVALID_XML, f"{name}: {exc}"))
            continue
        known = tables.get(name, RelationshipTable()).ids()
        for el in root.iter():
            for attr, value in el.attrib.items():
                if not attr.startswith(f"{{{R_NS}}}") or not value:
                    continue
                if value not in known:
                    local = attr.split("}", 1)[1]
                    issues.append(PackageIssue(UNRESOLVED_RID, f"{name}: r:{local}={value} has no relationship"))

        if name == PRESENTATION_PART:
            ids = [el.get("id") for el in root.iter(f"{{{P_NS}}}sldId")]
            for slide_id, count in Counter(ids).items():
                if count > 1:
                    issues.append(PackageIssue(DUPLICATE_SLIDE_ID, f"Slide id {slide_id} appears {count} times"))


def check_package(pkg: OpcPackage) -> list[PackageIssue]:
    """Collect every consistency issue found in ``pkg``."""
    issues: list[PackageIssue] = []
    tables = _relationship_tables(pkg, issues)
    _check_relationships(pkg, tables, issues)
    _check_content_types(pkg, issues)
    _check_r_attributes(pkg, tables, issues)
    return issues


def find_dangling_references(pkg: OpcPackage) -> list[str]:
    return [str(issue) for issue in check_package(pkg) if issue.kind in DANGLING_KINDS]

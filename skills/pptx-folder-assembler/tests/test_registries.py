from __future__ import annotations

import pytest
from lxml import etree

from pptxassembler import IdAllocator, MalformedTemplate, OpcPackage, PartWriteConflict, SlideDescriptor
from pptxassembler.registries import (
    CT_SLIDE,
    P_NS,
    R_NS,
    RT_SLIDE,
    append_content_type_overrides,
    append_presentation_relationships,
    append_slide_id_list,
    ensure_default_content_types,
    load_content_types,
    load_presentation_rels,
    max_relationship_index,
    max_slide_id,
    read_slide_id_list,
    read_slide_size,
    update_app_slide_count,
)

NS_DECL = (
    'xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main" '
    'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships"'
)
RELS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
RT_BASE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"


def _presentation(slide_list: str | None) -> str:
    slides = "" if slide_list is None else f"<p:sldIdLst>{slide_list}</p:sldIdLst>"
    return (
        f"<p:presentation {NS_DECL}>"
        '<p:sldMasterIdLst><p:sldMasterId id="2147483648" r:id="rId1"/></p:sldMasterIdLst>'
        f"{slides}"
        '<p:sldSz cx="12192000" cy="6858000"/><p:notesSz cx="6858000" cy="9144000"/>'
        "</p:presentation>"
    )


def _rels(entries: list[tuple[str, str, str]]) -> str:
    body = "".join(f'<Relationship Id="{i}" Type="{RT_BASE}/{t}" Target="{target}"/>' for i, t, target in entries)
    return f'<Relationships xmlns="{RELS_NS}">{body}</Relationships>'


def _content_types() -> str:
    return (
        '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
        '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
        '<Default Extension="xml" ContentType="application/xml"/>'
        "</Types>"
    )


def _package(*, slide_count: int = 3, with_list: bool = True, extra_rels=()) -> OpcPackage:
    entries = [("rId1", "slideMaster", "slideMasters/slideMaster1.xml")]
    slide_ids = []
    for n in range(1, slide_count + 1):
        entries.append((f"rId{n + 1}", "slide", f"slides/slide{n}.xml"))
        slide_ids.append(f'<p:sldId id="{255 + n}" r:id="rId{n + 1}"/>')
    entries.extend(extra_rels)
    parts = {
        "[Content_Types].xml": _content_types(),
        "ppt/presentation.xml": _presentation("".join(slide_ids) if with_list else None),
        "ppt/_rels/presentation.xml.rels": _rels(entries),
        "ppt/slideMasters/slideMaster1.xml": "<p:sldMaster/>",
        "docProps/app.xml": (
            '<Properties xmlns="http://schemas.openxmlformats.org/officeDocument/2006/extended-properties">'
            f"<Slides>{slide_count}</Slides></Properties>"
        ),
    }
    for n in range(1, slide_count + 1):
        parts[f"ppt/slides/slide{n}.xml"] = "<p:sld/>"
    return OpcPackage({name: data.encode("utf-8") for name, data in parts.items()})


def test_read_slide_id_list_keeps_template_order() -> None:
    entries = read_slide_id_list(_package())
    assert [(e.id, e.rel_id) for e in entries] == [(256, "rId2"), (257, "rId3"), (258, "rId4")]
    assert max_slide_id(entries) == 258
    assert max_slide_id([]) == 0


def test_allocator_reserves_gap_above_highest_relationship_id() -> None:
    pkg = _package(extra_rels=[("rId12", "theme", "theme/theme1.xml")])
    assert max_relationship_index(pkg) == 12

    allocator = IdAllocator.for_package(pkg)
    first = allocator.allocate()
    second = allocator.allocate()
    assert first.rel_id == "rId23"
    assert second.rel_id == "rId24"
    assert (first.slide_id, second.slide_id) == (259, 260)
    assert (first.partname, second.partname) == ("ppt/slides/slide4.xml", "ppt/slides/slide5.xml")


def test_allocator_ignores_non_numeric_relationship_ids() -> None:
    pkg = _package(slide_count=1, extra_rels=[("rIdCustom99", "theme", "theme/theme1.xml")])
    assert max_relationship_index(pkg) == 2


def test_zero_slide_template_starts_at_first_valid_slide_id() -> None:
    pkg = _package(slide_count=0, with_list=False)
    assert read_slide_id_list(pkg) == []
    allocation = IdAllocator.for_package(pkg).allocate()
    assert allocation.slide_id == 256
    assert allocation.partname == "ppt/slides/slide1.xml"


def test_append_routines_update_all_three_registries() -> None:
    pkg = _package()
    new = [
        SlideDescriptor(slide_id=259, rel_id="rId15", partname="ppt/slides/slide4.xml"),
        SlideDescriptor(slide_id=260, rel_id="rId16", partname="ppt/slides/slide5.xml"),
    ]

    append_content_type_overrides(pkg, [d.partname for d in new])
    append_presentation_relationships(pkg, new)
    append_slide_id_list(pkg, new)

    overrides = load_content_types(pkg).overrides
    assert ("/ppt/slides/slide4.xml", CT_SLIDE) in overrides
    assert ("/ppt/slides/slide5.xml", CT_SLIDE) in overrides

    rels = load_presentation_rels(pkg)
    rel = rels.get("rId16")
    assert rel is not None
    assert rel.reltype == RT_SLIDE
    assert rel.target == "slides/slide5.xml"
    assert rels.get("rId1").target == "slideMasters/slideMaster1.xml"

    entries = read_slide_id_list(pkg)
    assert [e.id for e in entries] == [256, 257, 258, 259, 260]
    assert entries[-1].rel_id == "rId16"


def test_append_relationship_with_taken_id_is_a_conflict() -> None:
    pkg = _package()
    with pytest.raises(PartWriteConflict):
        append_presentation_relationships(
            pkg, [SlideDescriptor(slide_id=300, rel_id="rId2", partname="ppt/slides/slide9.xml")]
        )


def test_slide_list_created_in_schema_position_for_empty_template() -> None:
    pkg = _package(slide_count=0, with_list=False)
    append_slide_id_list(pkg, [SlideDescriptor(slide_id=256, rel_id="rId12", partname="ppt/slides/slide1.xml")])

    root = etree.fromstring(pkg.read_bytes("ppt/presentation.xml"))
    children = [etree.QName(child).localname for child in root]
    assert children == ["sldMasterIdLst", "sldIdLst", "sldSz", "notesSz"]
    sld_id = root.find(f"{{{P_NS}}}sldIdLst/{{{P_NS}}}sldId")
    assert sld_id.get(f"{{{R_NS}}}id") == "rId12"


def test_missing_slide_list_with_slide_relationships_is_malformed() -> None:
    pkg = _package(slide_count=2, with_list=False)
    with pytest.raises(MalformedTemplate):
        read_slide_id_list(pkg)


def test_presentation_without_master_list_is_malformed() -> None:
    pkg = _package()
    pkg.write_part("ppt/presentation.xml", f"<p:presentation {NS_DECL}><p:sldIdLst/></p:presentation>")
    with pytest.raises(MalformedTemplate):
        read_slide_id_list(pkg)


def test_unparseable_presentation_is_malformed() -> None:
    pkg = _package()
    pkg.write_part("ppt/presentation.xml", "<p:presentation")
    with pytest.raises(MalformedTemplate):
        read_slide_id_list(pkg)


def test_missing_presentation_rels_is_malformed() -> None:
    parts = {name: _package().read_bytes(name) for name in _package() if name != "ppt/_rels/presentation.xml.rels"}
    with pytest.raises(MalformedTemplate):
        max_relationship_index(OpcPackage(parts))


def test_default_content_type_added_once_per_new_extension() -> None:
    pkg = _package()
    assert ensure_default_content_types(pkg, {"png": "image/png", "xml": "application/xml"}) == ["png"]
    assert ensure_default_content_types(pkg, {"png": "image/png"}) == []
    assert load_content_types(pkg).content_type_for("ppt/media/image4_1.png") == "image/png"


def test_slide_size_and_app_properties() -> None:
    pkg = _package()
    assert read_slide_size(pkg) == (12192000, 6858000)
    assert update_app_slide_count(pkg, 5) is True
    assert b"<Slides>5</Slides>" in pkg.read_bytes("docProps/app.xml")

"""Build one slide (XML, relationships, media) from a folder of images.

Pure: image bytes are fetched by the caller. Geometry is in EMU.
"""

from __future__ import annotations

import io
import math
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from lxml import etree
from PIL import Image

from .models import (
    Folder,
    ImagePlacement,
    ImageRef,
    Settings,
    content_type_for_extension,
    media_extension,
)
from .registries import A_NS, P_NS, R_NS, RT_IMAGE, RT_SLIDE_LAYOUT, RelationshipTable

EMU_PER_INCH = 914400
SLIDE_MARGIN = EMU_PER_INCH // 2
TITLE_BAND = EMU_PER_INCH
CELL_FILL = 0.9

_NSMAP = {"a": A_NS, "r": R_NS, "p": P_NS}


# Characters outside the XML 1.0 Char production.
_XML_ILLEGAL_RE = re.compile("[^\t\n\r\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def _xml_safe(text: str) -> str:
    """Drop control characters lxml refuses in text and attribute values."""
    return _XML_ILLEGAL_RE.sub("", text or "")


def _p(tag: str) -> str:
    return f"{{{P_NS}}}{tag}"


def _a(tag: str) -> str:
    return f"{{{A_NS}}}{tag}"


@dataclass(frozen=True)
class FetchedImage:
    ref: ImageRef
    position: int  # 1-based position in the folder's ordered image list
    data: bytes


@dataclass(frozen=True)
class MediaPart:
    partname: str
    data: bytes
    content_type: str

    @property
    def extension(self) -> str:
        return self.partname.rsplit(".", 1)[-1]


@dataclass(frozen=True)
class Box:
    x: int
    y: int
    cx: int
    cy: int


@dataclass
class SynthesizedSlide:
    slide_xml: str
    rels_xml: str
    media: list[MediaPart] = field(default_factory=list)
    placements: list[ImagePlacement] = field(default_factory=list)
    boxes: list[Box] = field(default_factory=list)
    title: Optional[str] = None
    truncated: int = 0


def grid_shape(settings: Settings, image_count: int) -> Tuple[int, int]:
    """Rows and columns used for a folder with ``image_count`` images."""
    layout = settings.layout
    if layout.grid:
        return max(1, layout.rows), max(1, layout.columns)
    # Free layout: near-square grid sized to the folder.
    count = max(1, image_count)
    columns = math.ceil(math.sqrt(count))
    rows = math.ceil(count / columns)
    return rows, columns


def content_region(canvas: Tuple[int, int], *, with_title: bool) -> Box:
    width, height = canvas
    band = TITLE_BAND if with_title else 0
    return Box(
        x=SLIDE_MARGIN,
        y=SLIDE_MARGIN + band,
        cx=max(1, width - 2 * SLIDE_MARGIN),
        cy=max(1, height - 2 * SLIDE_MARGIN - band),
    )


def cell_boxes(region: Box, rows: int, columns: int, count: int) -> list[Box]:
    """Drawn boxes for the first ``count`` cells, row-major, anchored top-left."""
    cell_w = max(1, region.cx // columns)
    cell_h = max(1, region.cy // rows)
    boxes: list[Box] = []
    for i in range(min(count, rows * columns)):
        row, column = divmod(i, columns)
        boxes.append(
            Box(
                x=region.x + column * cell_w,
                y=region.y + row * cell_h,
                cx=max(1, int(cell_w * CELL_FILL)),
                cy=max(1, int(cell_h * CELL_FILL)),
            )
        )
    return boxes


def _image_size(data: bytes) -> Optional[Tuple[int, int]]:
    try:
        with Image.open(io.BytesIO(data)) as im:
            width, height = im.size
    except (OSError, ValueError, Image.DecompressionBombError):
        return None
    if width <= 0 or height <= 0:
        return None
    return width, height


def fit_aspect(box: Box, size: Optional[Tuple[int, int]]) -> Box:
    """Shrink ``box`` to the image aspect ratio, keeping its top-left corner."""
    if not size or box.cx <= 0 or box.cy <= 0:
        return box
    iw, ih = size
    ratio = iw / ih
    if ratio >= box.cx / box.cy:
        return Box(box.x, box.y, box.cx, max(1, int(box.cx / ratio)))
    return Box(box.x, box.y, max(1, int(box.cy * ratio)), box.cy)


def _xfrm(parent: etree._Element, box: Box) -> None:
    xfrm = etree.SubElement(parent, _a("xfrm"))
    etree.SubElement(xfrm, _a("off"), x=str(box.x), y=str(box.y))
    etree.SubElement(xfrm, _a("ext"), cx=str(box.cx), cy=str(box.cy))


def _add_title(sp_tree: etree._Element, text: str, box: Box, settings: Settings, shape_id: int) -> None:
    sp = etree.SubElement(sp_tree, _p("sp"))
    nv = etree.SubElement(sp, _p("nvSpPr"))
    etree.SubElement(nv, _p("cNvPr"), id=str(shape_id), name=f"Title {shape_id - 1}")
    c_nv_sp = etree.SubElement(nv, _p("cNvSpPr"))
    nv_pr = etree.SubElement(nv, _p("nvPr"))
    if settings.use_placeholders:
        etree.SubElement(c_nv_sp, _a("spLocks"), noGrp="1")
        etree.SubElement(nv_pr, _p("ph"), type="title")
    else:
        c_nv_sp.set("txBox", "1")

    sp_pr = etree.SubElement(sp, _p("spPr"))
    _xfrm(sp_pr, box)
    if not settings.use_placeholders:
        geom = etree.SubElement(sp_pr, _a("prstGeom"), prst="rect")
        etree.SubElement(geom, _a("avLst"))
        etree.SubElement(sp_pr, _a("noFill"))

    tx_body = etree.SubElement(sp, _p("txBody"))
    body_pr = etree.SubElement(tx_body, _a("bodyPr"))
    if not settings.use_placeholders:
        body_pr.set("wrap", "square")
        body_pr.set("anchor", "ctr")
    if settings.layout.auto_fit:
        etree.SubElement(body_pr, _a("normAutofit"))
    etree.SubElement(tx_body, _a("lstStyle"))

    para = etree.SubElement(tx_body, _a("p"))
    if settings.language == "ar":
        etree.SubElement(para, _a("pPr"), algn="r", rtl="1")
    run = etree.SubElement(para, _a("r"))
    etree.SubElement(run, _a("rPr"), lang="ar-SA" if settings.language == "ar" else "en-US", dirty="0")
    # lxml escapes &, < and > in text nodes.
    etree.SubElement(run, _a("t")).text = text


def _add_picture(
    sp_tree: etree._Element,
    *,
    shape_id: int,
    embed_rel_id: str,
    descr: str,
    box: Box,
    lock_aspect: bool,
) -> None:
    pic = etree.SubElement(sp_tree, _p("pic"))
    nv = etree.SubElement(pic, _p("nvPicPr"))
    etree.SubElement(nv, _p("cNvPr"), id=str(shape_id), name=f"Picture {shape_id - 1}", descr=descr)
    c_nv_pic = etree.SubElement(nv, _p("cNvPicPr"))
    if lock_aspect:
        etree.SubElement(c_nv_pic, _a("picLocks"), noChangeAspect="1")
    etree.SubElement(nv, _p("nvPr"))

    blip_fill = etree.SubElement(pic, _p("blipFill"))
    blip = etree.SubElement(blip_fill, _a("blip"))
    blip.set(f"{{{R_NS}}}embed", embed_rel_id)
    stretch = etree.SubElement(blip_fill, _a("stretch"))
    etree.SubElement(stretch, _a("fillRect"))

    sp_pr = etree.SubElement(pic, _p("spPr"))
    _xfrm(sp_pr, box)
    geom = etree.SubElement(sp_pr, _a("prstGeom"), prst="rect")
    etree.SubElement(geom, _a("avLst"))


def _empty_slide(name: str) -> Tuple[etree._Element, etree._Element]:
    sld = etree.Element(_p("sld"), nsmap=_NSMAP)
    c_sld = etree.SubElement(sld, _p("cSld"))
    if name:
        c_sld.set("name", name)
    sp_tree = etree.SubElement(c_sld, _p("spTree"))
    nv_grp = etree.SubElement(sp_tree, _p("nvGrpSpPr"))
    etree.SubElement(nv_grp, _p("cNvPr"), id="1", name="")
    etree.SubElement(nv_grp, _p("cNvGrpSpPr"))
    etree.SubElement(nv_grp, _p("nvPr"))
    grp_sp_pr = etree.SubElement(sp_tree, _p("grpSpPr"))
    xfrm = etree.SubElement(grp_sp_pr, _a("xfrm"))
    etree.SubElement(xfrm, _a("off"), x="0", y="0")
    etree.SubElement(xfrm, _a("ext"), cx="0", cy="0")
    etree.SubElement(xfrm, _a("chOff"), x="0", y="0")
    etree.SubElement(xfrm, _a("chExt"), cx="0", cy="0")
    clr_map = etree.SubElement(sld, _p("clrMapOvr"))
    etree.SubElement(clr_map, _a("masterClrMapping"))
    return sld, sp_tree


def synthesize_slide(
    folder: Folder,
    images: Sequence[FetchedImage],
    settings: Settings,
    *,
    slide_index: int,
    canvas: Tuple[int, int],
    layout_target: Optional[str] = None,
) -> SynthesizedSlide:
    """Compose the slide for ``folder``.

    ``images`` are the successfully fetched images in placement order;
    ``slide_index`` is the slide part number and keys the media names.
    """
    with_title = settings.insert_folder_name_as_title
    rows, columns = grid_shape(settings, len(images))
    placed = list(images)[: rows * columns]
    truncated = len(images) - len(placed)

    name = _xml_safe(folder.name)
    sld, sp_tree = _empty_slide(name)
    next_shape_id = 2
    title = None
    if with_title:
        width, _ = canvas
        title = name
        title_box = Box(SLIDE_MARGIN, SLIDE_MARGIN, max(1, width - 2 * SLIDE_MARGIN), TITLE_BAND)
        _add_title(sp_tree, title, title_box, settings, next_shape_id)
        next_shape_id += 1

    rels = RelationshipTable()
    media: list[MediaPart] = []
    placements: list[ImagePlacement] = []
    boxes: list[Box] = []
    region = content_region(canvas, with_title=with_title)
    for i, (image, cell) in enumerate(zip(placed, cell_boxes(region, rows, columns, len(placed))), start=1):
        ext = media_extension(image.ref.filename)
        media_partname = f"ppt/media/image{slide_index}_{image.position}.{ext}"
        embed_rel_id = f"rId{i}"
        rels.add(embed_rel_id, RT_IMAGE, "../media/" + media_partname.rsplit("/", 1)[-1])

        box = fit_aspect(cell, _image_size(image.data)) if settings.layout.preserve_aspect else cell
        _add_picture(
            sp_tree,
            shape_id=next_shape_id,
            embed_rel_id=embed_rel_id,
            descr=_xml_safe(image.ref.filename),
            box=box,
            lock_aspect=settings.layout.preserve_aspect,
        )
        next_shape_id += 1

        media.append(MediaPart(media_partname, image.data, content_type_for_extension(ext)))
        placements.append(ImagePlacement(embed_rel_id, media_partname))
        boxes.append(box)

    if layout_target:
        rels.add(f"rId{len(placed) + 1}", RT_SLIDE_LAYOUT, layout_target)

    slide_xml = etree.tostring(sld, xml_declaration=True, encoding="UTF-8", standalone=True)
    return SynthesizedSlide(
        slide_xml=slide_xml.decode("utf-8"),
        rels_xml=rels.to_xml().decode("utf-8"),
        media=media,
        placements=placements,
        boxes=boxes,
        title=title,
        truncated=truncated,
    )

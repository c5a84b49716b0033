# label_designer/core/render.py
"""
Scene renderer: Template + record -> ordered draw instructions.

Instructions are plain dataclasses in device pixels at the template DPI.
Nothing here knows how they get painted; see ``label_designer.surfaces``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from PIL import Image

from .barcodes import generate_barcode, generate_qr
from .errors import BarcodeValidationError, InvalidUnit, RenderFailure, UnresolvedBinding
from .models import (
    ELEMENT_TYPES,
    BarcodeElement,
    Element,
    ImageElement,
    QRElement,
    ShapeElement,
    TableElement,
    Template,
    TextElement,
)
from .template_ops import sorted_by_z
from .units import MM, convert, points_to_pixels, to_device_pixels
from .utils import load_image_source
from .variables import lookup_path, resolve_binding, resolve_element_value, resolve_text, stringify

log = logging.getLogger(__name__)

PLACEHOLDER_COLOR = "#cc0000"


# ---------- Instructions ----------

@dataclass
class DrawInstruction:
    element_id: str
    x: float
    y: float
    w: float
    h: float
    rotation: float = 0.0
    opacity: float = 1.0


@dataclass
class DrawText(DrawInstruction):
    text: str = ""
    font_family: str = "Arial"
    font_px: float = 12.0
    bold: bool = False
    italic: bool = False
    color: str = "#000000"
    align: str = "left"
    valign: str = "top"
    rtl: bool = False


@dataclass
class DrawImage(DrawInstruction):
    """``image`` is already scaled; it is pasted at (x + dx, y + dy)."""
    image: Optional[Image.Image] = None
    dx: float = 0.0
    dy: float = 0.0


@dataclass
class DrawRect(DrawInstruction):
    fill: Optional[str] = None
    stroke: Optional[str] = "#000000"
    stroke_px: float = 1.0
    radius_px: float = 0.0


@dataclass
class DrawEllipse(DrawInstruction):
    fill: Optional[str] = None
    stroke: Optional[str] = "#000000"
    stroke_px: float = 1.0


@dataclass
class DrawLine(DrawInstruction):
    stroke: Optional[str] = "#000000"
    stroke_px: float = 1.0

    @property
    def end_points(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.w, self.y + self.h


@dataclass
class DrawTable(DrawInstruction):
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)
    column_px: List[float] = field(default_factory=list)
    row_px: float = 12.0
    font_px: float = 10.0
    show_header: bool = True
    stroke: str = "#000000"


# element id -> resolved value (str for text / codes / image src, rows for tables)
Resolved = Dict[str, Union[str, List[List[str]]]]


# ---------- Resolution ----------

def _table_rows(element: TableElement, record: Optional[Mapping[str, Any]]) -> List[List[str]]:
    try:
        source = lookup_path(record, element.data_source)
    except UnresolvedBinding:
        return []
    if isinstance(source, Mapping) or not isinstance(source, (list, tuple)):
        source = [source]

    rows: List[List[str]] = []
    for item in source:
        row = []
        for col in element.columns:
            if isinstance(item, Mapping):
                try:
                    row.append(stringify(lookup_path(item, col.field)))
                except UnresolvedBinding:
                    row.append("")
            else:
                row.append(stringify(item))
        rows.append(row)
    return rows


def resolve_elements(template: Template, record: Optional[Mapping[str, Any]] = None) -> Resolved:
    """Resolve every element's display value against *record*."""
    out: Resolved = {}
    for e in template.elements:
        if isinstance(e, TableElement):
            out[e.id] = _table_rows(e, record)
        elif isinstance(e, ImageElement):
            if e.data_binding is not None:
                out[e.id] = resolve_binding(e.data_binding, template.variables, record)
            else:
                out[e.id] = resolve_text(e.src, template.variables, record)
        elif isinstance(e, ShapeElement):
            continue
        else:
            out[e.id] = resolve_element_value(e, template.variables, record)
    return out


# ---------- Per-kind renderers ----------

class _Ctx:
    """Geometry helpers for one element."""

    def __init__(self, template: Template, element: Element):
        self.element = element
        self.unit = template.element_unit(element)
        self.dpi = template.dpi

    def px(self, value: float) -> float:
        return to_device_pixels(value, self.unit, self.dpi)

    def mm(self, value: float) -> float:
        return convert(value, self.unit, MM, self.dpi)

    def box(self) -> Dict[str, Any]:
        e = self.element
        return dict(
            element_id=e.id,
            x=self.px(e.x),
            y=self.px(e.y),
            w=self.px(e.w),
            h=self.px(e.h),
            rotation=e.rotation,
            opacity=e.opacity,
        )


def _placeholder(ctx: _Ctx, message: str) -> DrawText:
    return DrawText(
        **ctx.box(),
        text=message,
        font_px=max(8.0, min(ctx.px(ctx.element.h) * 0.3, 36.0)),
        color=PLACEHOLDER_COLOR,
        align="center",
        valign="middle",
    )


def _render_text(ctx: _Ctx, value: Any) -> List[DrawInstruction]:
    e: TextElement = ctx.element
    return [DrawText(
        **ctx.box(),
        text=str(value or ""),
        font_family=e.font_family,
        font_px=points_to_pixels(e.font_size, ctx.dpi),
        bold=e.font_weight == "bold",
        italic=e.font_style == "italic",
        color=e.color,
        align=e.align,
        valign=e.valign,
        rtl=e.direction == "rtl",
    )]


def _render_barcode(ctx: _Ctx, value: Any) -> List[DrawInstruction]:
    e: BarcodeElement = ctx.element
    raster = generate_barcode(
        e.symbology,
        str(value or ""),
        width_mm=ctx.mm(e.w),
        height_mm=ctx.mm(e.h),
        quiet_zone_mm=ctx.mm(e.quiet_zone),
        display_value=e.display_value,
        dpi=ctx.dpi,
    )
    return [DrawImage(**ctx.box(), image=raster.image)]


def _render_qr(ctx: _Ctx, value: Any) -> List[DrawInstruction]:
    e: QRElement = ctx.element
    side = min(e.w, e.h)
    raster = generate_qr(
        str(value or ""),
        size_mm=ctx.mm(side),
        margin_mm=ctx.mm(e.margin),
        ecc=e.ecc,
        dpi=ctx.dpi,
    )
    box = ctx.box()
    return [DrawImage(
        **box,
        image=raster.image,
        dx=(box["w"] - raster.width_px) / 2.0,
        dy=(box["h"] - raster.height_px) / 2.0,
    )]


def fit_image(img: Image.Image, w: int, h: int, fit: str) -> Tuple[Image.Image, int, int]:
    """Scale *img* into a w x h box. Returns (scaled, dx, dy)."""
    w, h = max(1, w), max(1, h)
    if fit == "fill":
        return img.resize((w, h), Image.Resampling.LANCZOS), 0, 0

    sx, sy = w / img.width, h / img.height
    scale = min(sx, sy) if fit == "contain" else max(sx, sy)
    nw, nh = max(1, round(img.width * scale)), max(1, round(img.height * scale))
    scaled = img.resize((nw, nh), Image.Resampling.LANCZOS)
    if fit == "contain":
        return scaled, (w - nw) // 2, (h - nh) // 2

    left, top = (nw - w) // 2, (nh - h) // 2
    return scaled.crop((left, top, left + w, top + h)), 0, 0


def _render_image(ctx: _Ctx, value: Any) -> List[DrawInstruction]:
    e: ImageElement = ctx.element
    src = str(value or "").strip()
    if not src:
        log.debug("Image %s has no source; skipped", e.id)
        return []
    from ..config import current_settings

    try:
        img = load_image_source(src, current_settings().asset_dir or None)
    except RenderFailure as err:
        raise RenderFailure(str(err), element_id=e.id) from err.__cause__

    box = ctx.box()
    scaled, dx, dy = fit_image(img, round(box["w"]), round(box["h"]), e.fit)
    return [DrawImage(**box, image=scaled, dx=dx, dy=dy)]


def _render_shape(ctx: _Ctx, value: Any) -> List[DrawInstruction]:
    e: ShapeElement = ctx.element
    stroke_px = ctx.px(e.stroke_width) if e.stroke else 0.0
    if e.shape == "line":
        return [DrawLine(**ctx.box(), stroke=e.stroke, stroke_px=stroke_px)]
    if e.shape == "circle":
        return [DrawEllipse(**ctx.box(), fill=e.fill, stroke=e.stroke, stroke_px=stroke_px)]
    return [DrawRect(
        **ctx.box(),
        fill=e.fill,
        stroke=e.stroke,
        stroke_px=stroke_px,
        radius_px=ctx.px(e.corner_radius),
    )]


def _render_table(ctx: _Ctx, value: Any) -> List[DrawInstruction]:
    e: TableElement = ctx.element
    return [DrawTable(
        **ctx.box(),
        headers=[c.header for c in e.columns],
        rows=list(value or []),
        column_px=[ctx.px(c.width) for c in e.columns],
        row_px=ctx.px(e.row_height),
        font_px=points_to_pixels(e.font_size, ctx.dpi),
        show_header=e.show_header,
    )]


_RENDERERS: Dict[str, Callable[[_Ctx, Any], List[DrawInstruction]]] = {
    "text": _render_text,
    "barcode": _render_barcode,
    "qr": _render_qr,
    "image": _render_image,
    "shape": _render_shape,
    "table": _render_table,
}

_missing = set(ELEMENT_TYPES) - set(_RENDERERS)
if _missing:
    raise RuntimeError(f"No renderer registered for element kind(s): {sorted(_missing)}")


# ---------- Entry points ----------

def render_scene(template: Template, resolved: Optional[Resolved] = None, strict: bool = True) -> List[DrawInstruction]:
    """
    Turn *template* into draw instructions, back to front.

    Invisible elements are skipped. With ``strict`` a code generation or
    image load problem raises RenderFailure; otherwise the element is drawn
    as a red placeholder message. Without *resolved*, bindings are resolved
    with no record (sample values and fallbacks).
    """
    if resolved is None:
        resolved = resolve_elements(template)
    out: List[DrawInstruction] = []
    for e in sorted_by_z(template.elements):
        if not e.visible:
            continue
        ctx = _Ctx(template, e)
        renderer = _RENDERERS[e.kind]
        try:
            out.extend(renderer(ctx, resolved.get(e.id)))
        except (BarcodeValidationError, InvalidUnit, RenderFailure) as err:
            if strict:
                if isinstance(err, RenderFailure):
                    raise
                raise RenderFailure(str(err), element_id=e.id) from err
            log.debug("Preview placeholder for %s: %s", e.id, err)
            out.append(_placeholder(ctx, f"[{e.kind}] {err}"))
    return out


def build_scene(template: Template, record: Optional[Mapping[str, Any]] = None, strict: bool = True) -> List[DrawInstruction]:
    return render_scene(template, resolve_elements(template, record), strict=strict)

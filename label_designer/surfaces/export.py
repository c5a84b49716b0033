# label_designer/surfaces/export.py
"""
Template -> PDF / PNG / preview QImage.

All three go through ``build_scene`` so they share one instruction list and
one geometry; only the painting backend differs.
"""
from __future__ import annotations

import logging
import math
from typing import Any, List, Mapping, Optional

from PySide6 import QtCore, QtGui

from ..config import current_settings
from ..core.models import Template
from ..core.render import DrawInstruction, build_scene
from ..core.units import MM, convert
from .base import paint
from .pil_surface import PillowSurface
from .qt_surface import QtPainterSurface

log = logging.getLogger(__name__)


def _page_size_mm(template: Template) -> QtCore.QSizeF:
    size = template.size
    return QtCore.QSizeF(
        convert(size.width, size.unit, MM, size.dpi),
        convert(size.height, size.unit, MM, size.dpi),
    )


def instructions_to_pdf(
    instructions: List[DrawInstruction],
    template: Template,
    title: Optional[str] = None,
) -> bytes:
    """Paint *instructions* onto a single PDF page sized like the label."""
    buffer = QtCore.QBuffer()
    buffer.open(QtCore.QIODevice.WriteOnly)

    writer = QtGui.QPdfWriter(buffer)
    writer.setResolution(template.dpi)
    writer.setPageSize(QtGui.QPageSize(_page_size_mm(template), QtGui.QPageSize.Unit.Millimeter))
    writer.setPageMargins(QtCore.QMarginsF(0, 0, 0, 0))
    writer.setTitle(title or template.name or current_settings().pdf_title)
    writer.setCreator("Label Designer")

    painter = QtGui.QPainter(writer)
    try:
        paint(QtPainterSurface(painter), instructions)
    finally:
        painter.end()

    data = buffer.data().data()
    buffer.close()
    log.debug("PDF for %s: %d bytes", template.id, len(data))
    return data


def instructions_to_png(instructions: List[DrawInstruction], template: Template) -> bytes:
    surface = PillowSurface(int(math.ceil(template.width_px)), int(math.ceil(template.height_px)))
    paint(surface, instructions)
    return surface.to_png_bytes(template.dpi)


def instructions_to_qimage(
    instructions: List[DrawInstruction],
    template: Template,
    scale: float = 1.0,
) -> QtGui.QImage:
    img = QtGui.QImage(
        int(math.ceil(template.width_px * scale)),
        int(math.ceil(template.height_px * scale)),
        QtGui.QImage.Format_ARGB32_Premultiplied,
    )
    img.fill(QtCore.Qt.white)
    painter = QtGui.QPainter(img)
    try:
        painter.scale(scale, scale)
        paint(QtPainterSurface(painter), instructions)
    finally:
        painter.end()
    return img


# ---------- Template entry points ----------

def render_template_to_pdf(
    template: Template,
    record: Optional[Mapping[str, Any]] = None,
    title: Optional[str] = None,
) -> bytes:
    """Print-quality PDF; code generation errors raise RenderFailure."""
    return instructions_to_pdf(build_scene(template, record, strict=True), template, title)


def render_template_to_png(
    template: Template,
    record: Optional[Mapping[str, Any]] = None,
) -> bytes:
    return instructions_to_png(build_scene(template, record, strict=True), template)


def render_template_to_qimage(
    template: Template,
    record: Optional[Mapping[str, Any]] = None,
    scale: float = 1.0,
) -> QtGui.QImage:
    """Editor preview: broken codes show as placeholders instead of raising."""
    return instructions_to_qimage(build_scene(template, record, strict=False), template, scale)

from __future__ import annotations

import io
import logging
import math
from functools import lru_cache
from typing import Tuple

from PIL import Image, ImageDraw, ImageFont

from ..core.render import (
    DrawEllipse,
    DrawImage,
    DrawInstruction,
    DrawLine,
    DrawRect,
    DrawTable,
    DrawText,
)
from .base import wrap_lines

log = logging.getLogger(__name__)


@lru_cache(maxsize=64)
def load_font(family: str, px: int, bold: bool = False, italic: bool = False):
    """
    Best-effort TrueType lookup by family name; Pillow's bundled font when
    nothing on the system matches.
    """
    style = ("-Bold" if bold else "") + ("Oblique" if italic and not bold else "")
    if bold and italic:
        style = "-BoldOblique"
    candidates = [
        f"{family}.ttf",
        f"{family.lower()}.ttf",
        f"{family.replace(' ', '')}.ttf",
        f"DejaVuSans{style}.ttf",
        "DejaVuSans.ttf",
    ]
    for name in candidates:
        try:
            return ImageFont.truetype(name, px)
        except OSError:
            continue
    log.debug("No TrueType font for %r; using Pillow default", family)
    return ImageFont.load_default(size=px)


class PillowSurface:
    """
    Paints draw instructions onto a Pillow RGBA image of the template's
    pixel size.

    Each instruction is drawn on its own transparent layer so rotation and
    opacity behave like the QPainter surface.
    """

    def __init__(self, width_px: int, height_px: int, background: str = "white"):
        self.image = Image.new("RGBA", (max(1, width_px), max(1, height_px)), background)

    # ---------- helpers ----------

    def _layer(self, ins: DrawInstruction, pad: int = 0) -> Tuple[Image.Image, ImageDraw.ImageDraw]:
        w = max(1, int(math.ceil(ins.w)) + 2 * pad)
        h = max(1, int(math.ceil(ins.h)) + 2 * pad)
        layer = Image.new("RGBA", (w, h), (0, 0, 0, 0))
        return layer, ImageDraw.Draw(layer)

    def _commit(self, ins: DrawInstruction, layer: Image.Image, pad: int = 0) -> None:
        if ins.opacity < 1.0:
            alpha = layer.getchannel("A").point(lambda a: int(a * ins.opacity))
            layer.putalpha(alpha)

        left, top = ins.x - pad, ins.y - pad
        if ins.rotation:
            cx, cy = ins.x + ins.w / 2.0, ins.y + ins.h / 2.0
            # Pillow turns counter-clockwise; QPainter.rotate turns clockwise.
            layer = layer.rotate(-ins.rotation, resample=Image.Resampling.BICUBIC, expand=True)
            left, top = cx - layer.width / 2.0, cy - layer.height / 2.0

        self._composite(layer, int(round(left)), int(round(top)))

    def _composite(self, layer: Image.Image, left: int, top: int) -> None:
        # alpha_composite refuses negative offsets; crop the layer instead.
        src_x, src_y = max(0, -left), max(0, -top)
        dest = (max(0, left), max(0, top))
        if src_x >= layer.width or src_y >= layer.height:
            return
        if dest[0] >= self.image.width or dest[1] >= self.image.height:
            return
        self.image.alpha_composite(layer, dest=dest, source=(src_x, src_y))

    @staticmethod
    def _stroke(color, width: float) -> Tuple[object, int]:
        if not color or width <= 0:
            return None, 0
        return color, max(1, int(round(width)))

    # ---------- draw_* ----------

    def draw_text(self, ins: DrawText) -> None:
        layer, draw = self._layer(ins)
        px = max(1, int(round(ins.font_px)))
        font = load_font(ins.font_family, px, ins.bold, ins.italic)

        lines = wrap_lines(ins.text, layer.width, lambda s: draw.textlength(s, font=font))
        ascent, descent = font.getmetrics()
        line_h = ascent + descent
        block_h = line_h * len(lines)

        if ins.valign == "middle":
            y = (layer.height - block_h) / 2.0
        elif ins.valign == "bottom":
            y = layer.height - block_h
        else:
            y = 0.0

        align = ins.align
        if ins.rtl and align in ("left", "right"):
            align = "right" if align == "left" else "left"

        for line in lines:
            width = draw.textlength(line, font=font)
            if align == "center":
                x = (layer.width - width) / 2.0
            elif align == "right":
                x = layer.width - width
            else:
                x = 0.0
            draw.text((x, y), line, font=font, fill=ins.color)
            y += line_h
        self._commit(ins, layer)

    def draw_image(self, ins: DrawImage) -> None:
        if ins.image is None:
            return
        layer, _ = self._layer(ins)
        src = ins.image.convert("RGBA")
        layer.alpha_composite(src, dest=(max(0, int(round(ins.dx))), max(0, int(round(ins.dy)))))
        self._commit(ins, layer)

    def draw_rect(self, ins: DrawRect) -> None:
        layer, draw = self._layer(ins)
        outline, width = self._stroke(ins.stroke, ins.stroke_px)
        box = (0, 0, layer.width - 1, layer.height - 1)
        if ins.radius_px > 0:
            draw.rounded_rectangle(box, radius=ins.radius_px, fill=ins.fill, outline=outline, width=width)
        else:
            draw.rectangle(box, fill=ins.fill, outline=outline, width=width)
        self._commit(ins, layer)

    def draw_ellipse(self, ins: DrawEllipse) -> None:
        layer, draw = self._layer(ins)
        outline, width = self._stroke(ins.stroke, ins.stroke_px)
        draw.ellipse((0, 0, layer.width - 1, layer.height - 1), fill=ins.fill, outline=outline, width=width)
        self._commit(ins, layer)

    def draw_line(self, ins: DrawLine) -> None:
        color, width = self._stroke(ins.stroke, ins.stroke_px)
        if color is None:
            return
        pad = width
        layer, draw = self._layer(ins, pad=pad)
        draw.line((pad, pad, pad + ins.w, pad + ins.h), fill=color, width=width)
        self._commit(ins, layer, pad=pad)

    def draw_table(self, ins: DrawTable) -> None:
        layer, draw = self._layer(ins)
        px = max(1, int(round(ins.font_px)))
        rows = ([ins.headers] if ins.show_header else []) + ins.rows

        y = 0.0
        for index, row in enumerate(rows):
            is_header = ins.show_header and index == 0
            font = load_font("Arial", px, bold=is_header)
            ascent, descent = font.getmetrics()
            x = 0.0
            for col, width in enumerate(ins.column_px):
                draw.rectangle((x, y, x + width, y + ins.row_px), outline=ins.stroke, width=1)
                text = row[col] if col < len(row) else ""
                draw.text((x + 2, y + (ins.row_px - ascent - descent) / 2.0), text, font=font, fill="#000000")
                x += width
            y += ins.row_px
            if y >= layer.height:
                break
        self._commit(ins, layer)

    # ---------- output ----------

    def to_png_bytes(self, dpi: int) -> bytes:
        buffer = io.BytesIO()
        self.image.convert("RGB").save(buffer, format="PNG", dpi=(dpi, dpi))
        return buffer.getvalue()

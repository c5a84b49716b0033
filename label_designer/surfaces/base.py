# label_designer/surfaces/base.py
"""
The drawing contract shared by every output surface.

A surface gets the same instruction list whatever it targets (preview
QImage, PDF page, PNG); ``paint`` walks the list and calls the matching
``draw_*`` method.
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable, Protocol, Type

from ..core.render import (
    DrawEllipse,
    DrawImage,
    DrawInstruction,
    DrawLine,
    DrawRect,
    DrawTable,
    DrawText,
)


class Surface(Protocol):
    def draw_text(self, ins: DrawText) -> None: ...
    def draw_image(self, ins: DrawImage) -> None: ...
    def draw_rect(self, ins: DrawRect) -> None: ...
    def draw_ellipse(self, ins: DrawEllipse) -> None: ...
    def draw_line(self, ins: DrawLine) -> None: ...
    def draw_table(self, ins: DrawTable) -> None: ...


_METHODS: Dict[Type[DrawInstruction], str] = {
    DrawText: "draw_text",
    DrawImage: "draw_image",
    DrawRect: "draw_rect",
    DrawEllipse: "draw_ellipse",
    DrawLine: "draw_line",
    DrawTable: "draw_table",
}


def paint(surface: Surface, instructions: Iterable[DrawInstruction]) -> None:
    """Draw *instructions* in order (back to front) onto *surface*."""
    for ins in instructions:
        name = _METHODS.get(type(ins))
        if name is None:
            raise TypeError(f"No surface method for {type(ins).__name__}")
        draw: Callable[[DrawInstruction], None] = getattr(surface, name)
        draw(ins)


def wrap_lines(text: str, max_width: float, measure: Callable[[str], float]) -> list[str]:
    """
    Greedy word wrap. Hard line breaks are kept; a single word wider than
    *max_width* stays on its own line.
    """
    out: list[str] = []
    for paragraph in (text or "").split("\n"):
        words = paragraph.split(" ")
        line = ""
        for word in words:
            candidate = f"{line} {word}" if line else word
            if line and measure(candidate) > max_width:
                out.append(line)
                line = word
            else:
                line = candidate
        out.append(line)
    return out

# label_designer/core/guides.py
"""
Rulers, guides and snapping.

Guide positions and snap thresholds are in the template unit; ruler tick
positions are in screen pixels at the given zoom.
"""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple

from .models import Template
from .selection import Bounds
from .template_ops import update_element
from .units import convert, normalize_unit, to_device_pixels

AXES = ("x", "y")
CENTER_GUIDE_COLOR = "#ff6b6b"
GUIDE_COLOR = "#4ecdc4"
MAJOR_EVERY = 5

_NICE = (1.0, 2.0, 5.0)


# ---------- Rulers ----------

@dataclass(frozen=True)
class Tick:
    position_px: float         # along the ruler, zoomed screen pixels
    value: float               # in the ruler unit
    major: bool
    label: Optional[str] = None


def _nice_step(min_value: float) -> float:
    """Smallest 1/2/5 x 10^k that is >= *min_value*."""
    if min_value <= 0:
        return 1.0
    exponent = math.floor(math.log10(min_value))
    for base in (1, 10):
        for nice in _NICE:
            step = nice * base * 10 ** exponent
            if step >= min_value - 1e-12:
                return step
    return 10 ** (exponent + 1)


def _label(value: float) -> str:
    return f"{round(value, 6):g}"


def ruler_ticks(
    length: float,
    unit: str,
    dpi: float,
    zoom: float = 1.0,
    min_spacing_px: Optional[float] = None,
) -> List[Tick]:
    """
    Ticks for a ruler *length* long (in *unit*), at least *min_spacing_px*
    screen pixels apart. Every fifth tick is major and carries a label.
    """
    if min_spacing_px is None:
        from ..config import current_settings
        min_spacing_px = current_settings().ruler_min_tick_px
    if zoom <= 0:
        raise ValueError(f"Zoom must be positive, got {zoom!r}")

    px_per_unit = to_device_pixels(1.0, unit, dpi) * zoom
    step = _nice_step(min_spacing_px / px_per_unit)

    ticks: List[Tick] = []
    count = int(math.floor(length / step + 1e-9))
    for i in range(count + 1):
        value = i * step
        major = i % MAJOR_EVERY == 0
        ticks.append(Tick(
            position_px=value * px_per_unit,
            value=value,
            major=major,
            label=_label(value) if major else None,
        ))
    return ticks


# ---------- Guides ----------

@dataclass(frozen=True)
class Guide:
    id: str
    axis: str                  # "x" = vertical line at position, "y" = horizontal
    position: float
    color: str = GUIDE_COLOR


class GuideSet:
    """Guides for one template, clamped to the label area."""

    def __init__(self, width: float, height: float, with_center: bool = True):
        self.width = float(width)
        self.height = float(height)
        self._guides: List[Guide] = []
        if with_center:
            self._guides = [
                Guide("center-x", "x", self.width / 2.0, CENTER_GUIDE_COLOR),
                Guide("center-y", "y", self.height / 2.0, CENTER_GUIDE_COLOR),
            ]

    @classmethod
    def for_template(cls, template: Template, with_center: bool = True) -> "GuideSet":
        return cls(template.size.width, template.size.height, with_center)

    def __iter__(self):
        return iter(self._guides)

    def __len__(self) -> int:
        return len(self._guides)

    def _clamp(self, axis: str, position: float) -> float:
        limit = self.width if axis == "x" else self.height
        return min(max(float(position), 0.0), limit)

    def add(self, axis: str, position: float, color: str = GUIDE_COLOR) -> Guide:
        if axis not in AXES:
            raise ValueError(f"Guide axis must be 'x' or 'y', got {axis!r}")
        guide = Guide(f"guide_{uuid.uuid4().hex[:8]}", axis, self._clamp(axis, position), color)
        self._guides.append(guide)
        return guide

    def get(self, guide_id: str) -> Optional[Guide]:
        return next((g for g in self._guides if g.id == guide_id), None)

    def move(self, guide_id: str, position: float) -> Optional[Guide]:
        guide = self.get(guide_id)
        if guide is None:
            return None
        moved = replace(guide, position=self._clamp(guide.axis, position))
        self._guides[self._guides.index(guide)] = moved
        return moved

    def remove(self, guide_id: str) -> bool:
        guide = self.get(guide_id)
        if guide is None:
            return False
        self._guides.remove(guide)
        return True

    def clear(self) -> None:
        self._guides.clear()

    def positions(self, axis: str) -> List[float]:
        return [g.position for g in self._guides if g.axis == axis]


# ---------- Snapping ----------

def snap_value(value: float, targets: Iterable[float], threshold: float) -> Tuple[float, bool]:
    """Nearest target within *threshold* -> (target, True); otherwise (value, False)."""
    best = None
    best_dist = threshold
    for t in targets:
        d = abs(value - t)
        if d <= best_dist:
            best, best_dist = t, d
    if best is None:
        return value, False
    return best, True


def _snap_axis(start: float, size: float, targets: List[float], threshold: float) -> float:
    """Snap the start, centre or end of a span; the closest hit wins."""
    best_delta = None
    for anchor in (start, start + size / 2.0, start + size):
        snapped, hit = snap_value(anchor, targets, threshold)
        if hit and (best_delta is None or abs(snapped - anchor) < abs(best_delta)):
            best_delta = snapped - anchor
    return start + (best_delta or 0.0)


def snap_element(
    template: Template,
    element_id: str,
    guides: Optional[GuideSet] = None,
    threshold: Optional[float] = None,
) -> Template:
    """
    Move one element so an edge or its centre sits on a nearby guide or page
    edge. Locked elements stay put. Returns a new template.
    """
    if threshold is None:
        from ..config import current_settings
        threshold = current_settings().snap_threshold

    element = template.find_element(element_id)
    if element is None:
        from .errors import ElementNotFound
        raise ElementNotFound(element_id)
    if element.locked:
        return template

    w, h = template.size.width, template.size.height
    xs = [0.0, w / 2.0, w]
    ys = [0.0, h / 2.0, h]
    if guides is not None:
        xs += guides.positions("x")
        ys += guides.positions("y")

    unit = template.element_unit(element)
    to_t = lambda v: convert(v, unit, template.unit, template.dpi)
    from_t = lambda v: convert(v, template.unit, unit, template.dpi)

    x = _snap_axis(to_t(element.x), to_t(element.w), xs, threshold)
    y = _snap_axis(to_t(element.y), to_t(element.h), ys, threshold)
    new_x, new_y = from_t(x), from_t(y)
    if math.isclose(new_x, element.x) and math.isclose(new_y, element.y):
        return template
    return update_element(template, element_id, {"x": new_x, "y": new_y})


# ---------- Print areas ----------

def _margin(template: Template, attr: str) -> Optional[float]:
    m = template.margins
    if m is None or getattr(m, attr) is None:
        return None
    return convert(getattr(m, attr), normalize_unit(m.unit), template.unit, template.dpi)


def safe_area(template: Template) -> Optional[Bounds]:
    """Label area inset by the safe margin, or None when no safe margin is set."""
    inset = _margin(template, "safe")
    if inset is None:
        return None
    w, h = template.size.width, template.size.height
    inset = min(inset, w / 2.0, h / 2.0)
    return Bounds(inset, inset, w - inset, h - inset)


def bleed_area(template: Template) -> Optional[Bounds]:
    """Label area grown by the bleed margin, or None when no bleed is set."""
    bleed = _margin(template, "bleed")
    if bleed is None:
        return None
    w, h = template.size.width, template.size.height
    return Bounds(-bleed, -bleed, w + bleed, h + bleed)

# label_designer/core/layout_ops.py
"""
Layout operations on a Template: align, distribute, nudge.

Pure functions; each returns a new Template. Locked elements never move.
Elements with their own unit are compared in the template unit and written
back in their own unit.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from .errors import ElementNotFound, InvalidElement
from .guides import safe_area
from .models import Element, Template
from .selection import Bounds
from .template_ops import update_element
from .units import convert

ALIGN_MODES = ("left", "right", "top", "bottom", "hcenter", "vcenter")
ALIGN_TARGETS = ("selection", "page", "safe")
DISTRIBUTE_AXES = ("horizontal", "vertical")


def _elements(template: Template, ids: Iterable[str]) -> List[Element]:
    out = []
    for element_id in ids:
        e = template.find_element(element_id)
        if e is None:
            raise ElementNotFound(element_id)
        out.append(e)
    return out


def _box(template: Template, e: Element) -> Tuple[float, float, float, float]:
    """(x, y, w, h) in the template unit."""
    unit = template.element_unit(e)
    c = lambda v: convert(v, unit, template.unit, template.dpi)
    return c(e.x), c(e.y), c(e.w), c(e.h)


def _move(template: Template, e: Element, dx: float, dy: float) -> Template:
    """Shift *e* by (dx, dy) given in the template unit."""
    if dx == 0.0 and dy == 0.0:
        return template
    unit = template.element_unit(e)
    c = lambda v: convert(v, template.unit, unit, template.dpi)
    return update_element(template, e.id, {"x": e.x + c(dx), "y": e.y + c(dy)})


def _area(template: Template, elements: List[Element], to: str) -> Bounds:
    page = Bounds(0.0, 0.0, template.size.width, template.size.height)
    if to == "page":
        return page
    if to == "safe":
        return safe_area(template) or page
    boxes = [_box(template, e) for e in elements]
    return Bounds(
        left=min(b[0] for b in boxes),
        top=min(b[1] for b in boxes),
        right=max(b[0] + b[2] for b in boxes),
        bottom=max(b[1] + b[3] for b in boxes),
    )


def align_elements(template: Template, ids: Iterable[str], mode: str, to: str = "selection") -> Template:
    """
    Line elements up on one edge or centre of the selection box, the page,
    or the safe area (the page when no safe margin is set).
    """
    if mode not in ALIGN_MODES:
        raise InvalidElement(f"Unknown align mode {mode!r}; expected one of {ALIGN_MODES}")
    if to not in ALIGN_TARGETS:
        raise InvalidElement(f"Unknown align target {to!r}; expected one of {ALIGN_TARGETS}")

    elements = _elements(template, ids)
    if not elements:
        return template
    area = _area(template, elements, to)
    hcenter, vcenter = area.center

    result = template
    for e in elements:
        if e.locked:
            continue
        x, y, w, h = _box(template, e)
        dx = dy = 0.0
        if mode == "left":
            dx = area.left - x
        elif mode == "right":
            dx = area.right - (x + w)
        elif mode == "hcenter":
            dx = hcenter - (x + w / 2.0)
        elif mode == "top":
            dy = area.top - y
        elif mode == "bottom":
            dy = area.bottom - (y + h)
        elif mode == "vcenter":
            dy = vcenter - (y + h / 2.0)
        result = _move(result, e, dx, dy)
    return result


def distribute_elements(template: Template, ids: Iterable[str], axis: str) -> Template:
    """
    Space element centres evenly between the outermost two along *axis*.
    Needs three or more elements; the outermost pair stays where it is.
    """
    if axis not in DISTRIBUTE_AXES:
        raise InvalidElement(f"Unknown distribute axis {axis!r}; expected one of {DISTRIBUTE_AXES}")

    elements = _elements(template, ids)
    if len(elements) < 3:
        return template

    horizontal = axis == "horizontal"
    data = []
    for e in elements:
        x, y, w, h = _box(template, e)
        center = x + w / 2.0 if horizontal else y + h / 2.0
        data.append((center, e))
    data.sort(key=lambda d: d[0])

    first_c, last_c = data[0][0], data[-1][0]
    if last_c == first_c:
        return template
    step = (last_c - first_c) / (len(data) - 1)

    result = template
    for i, (center, e) in enumerate(data):
        if i == 0 or i == len(data) - 1 or e.locked:
            continue
        delta = first_c + step * i - center
        result = _move(result, e, delta if horizontal else 0.0, 0.0 if horizontal else delta)
    return result


def nudge_elements(template: Template, ids: Iterable[str], dx: float, dy: float) -> Template:
    """Move unlocked elements by (dx, dy) in the template unit."""
    result = template
    for e in _elements(template, ids):
        if not e.locked:
            result = _move(result, e, dx, dy)
    return result

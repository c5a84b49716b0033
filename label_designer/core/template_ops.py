# label_designer/core/template_ops.py
"""
Pure template mutators.

Every function here takes a Template and returns a *new* Template; the
input is never modified. Untouched elements are shared between the old
and new value, which is what keeps snapshot-based undo cheap.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from .errors import ElementNotFound, InvalidElement, InvalidTemplate
from .models import (
    ELEMENT_TYPES,
    BarcodeElement,
    Element,
    LabelSize,
    QRElement,
    ShapeElement,
    TableElement,
    Template,
    VarDef,
)
from .units import MM, convert, normalize_unit

log = logging.getLogger(__name__)

REORDER_DIRECTIONS = ("forward", "backward", "front", "back")

# Default geometry per kind, in millimetres: (w, h)
_DEFAULT_SIZE_MM = {
    "text": (30.0, 6.0),
    "barcode": (40.0, 12.0),
    "qr": (15.0, 15.0),
    "image": (20.0, 20.0),
    "shape": (20.0, 10.0),
    "table": (40.0, 16.0),
}
_DEFAULT_INSET_MM = 2.0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

class IdAllocator:
    """
    Hands out element ids that never repeat within a session.

    Every id it issues (or is told about via ``reserve``) is remembered,
    so ids stay unique even after the element that carried them is gone.
    """

    def __init__(self):
        self._issued: Set[str] = set()

    def reserve(self, ids: Iterable[str]) -> None:
        self._issued.update(i for i in ids if i)

    def is_issued(self, element_id: str) -> bool:
        return element_id in self._issued

    def new_id(self, kind: str = "el", taken: Iterable[str] = ()) -> str:
        taken = set(taken)
        while True:
            candidate = f"{kind}_{uuid.uuid4().hex[:10]}"
            if candidate not in self._issued and candidate not in taken:
                self._issued.add(candidate)
                return candidate

    def __len__(self) -> int:
        return len(self._issued)


SESSION_IDS = IdAllocator()


# ---------------------------------------------------------------------------
# Z-order helpers
# ---------------------------------------------------------------------------

def sorted_by_z(elements: List[Element]) -> List[Element]:
    """
    Back-to-front paint order.

    Explicit ``z_index`` wins; elements without one use their list position.
    Ties keep list order.
    """
    indexed = list(enumerate(elements))
    indexed.sort(key=lambda pair: (
        pair[1].z_index if pair[1].z_index is not None else pair[0],
        pair[0],
    ))
    return [e for _, e in indexed]


def _next_z(elements: List[Element]) -> Optional[int]:
    explicit = [e.z_index for e in elements if e.z_index is not None]
    if not explicit:
        return None
    return max(max(explicit), len(elements) - 1) + 1


# ---------------------------------------------------------------------------
# Template level
# ---------------------------------------------------------------------------

def create_template(name: str, settings=None, template_id: Optional[str] = None) -> Template:
    """
    A blank template at the configured default size and DPI (50x30 mm @ 300 DPI
    unless the settings say otherwise).
    """
    if settings is None:
        from ..config import current_settings
        settings = current_settings()

    now = _now_iso()
    t = Template(
        id=template_id or f"tpl_{uuid.uuid4().hex[:12]}",
        name=name or "Untitled",
        size=LabelSize(
            width=settings.default_width,
            height=settings.default_height,
            unit=settings.default_unit,
            dpi=settings.default_dpi,
        ),
        created_at=now,
        updated_at=now,
    )
    log.debug("Created template %s (%s)", t.id, t.name)
    return t


def resize_template(
    template: Template,
    width: Optional[float] = None,
    height: Optional[float] = None,
    unit: Optional[str] = None,
    dpi: Optional[int] = None,
) -> Template:
    """
    Change the label size, unit or DPI.

    When the unit changes, element geometry without its own unit override is
    converted so the physical layout stays where it was.
    """
    old = template.size
    new_unit = normalize_unit(unit) if unit else old.unit
    new_dpi = dpi if dpi is not None else old.dpi

    if width is None:
        width = convert(old.width, old.unit, new_unit, old.dpi)
    if height is None:
        height = convert(old.height, old.unit, new_unit, old.dpi)
    size = LabelSize(width=width, height=height, unit=new_unit, dpi=new_dpi)

    elements = template.elements
    if new_unit != old.unit:
        elements = [
            e if e.unit else convert_element_lengths(e, old.unit, new_unit, old.dpi)
            for e in template.elements
        ]
    return dataclasses.replace(
        template, size=size, elements=list(elements), updated_at=_now_iso()
    )


def length_fields(element: Element) -> List[str]:
    """Names of the fields on *element* that carry a length in its unit."""
    names = ["x", "y", "w", "h"]
    if isinstance(element, BarcodeElement):
        names.append("quiet_zone")
    elif isinstance(element, QRElement):
        names.append("margin")
    elif isinstance(element, ShapeElement):
        names += ["stroke_width", "corner_radius"]
    elif isinstance(element, TableElement):
        names.append("row_height")
    return names


def convert_element_lengths(element: Element, from_unit: str, to_unit: str, dpi: float) -> Element:
    patch: Dict[str, Any] = {
        name: convert(getattr(element, name), from_unit, to_unit, dpi)
        for name in length_fields(element)
    }
    if isinstance(element, TableElement):
        patch["columns"] = [
            dataclasses.replace(c, width=convert(c.width, from_unit, to_unit, dpi))
            for c in element.columns
        ]
    return dataclasses.replace(element, **patch)


# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------

def add_element(
    template: Template,
    kind: str,
    allocator: Optional[IdAllocator] = None,
    **overrides: Any,
) -> Template:
    """
    Return a new template with one more element of *kind* on top.

    The id is fresh and collision free; geometry defaults are scaled into
    the template unit.
    """
    cls = ELEMENT_TYPES.get(kind)
    if cls is None:
        raise InvalidElement(f"Unknown element type: {kind!r}")

    allocator = allocator or SESSION_IDS
    allocator.reserve(template.element_ids())

    unit = template.unit
    dpi = template.dpi
    w_mm, h_mm = _DEFAULT_SIZE_MM[kind]
    defaults: Dict[str, Any] = {
        "x": convert(_DEFAULT_INSET_MM, MM, unit, dpi),
        "y": convert(_DEFAULT_INSET_MM, MM, unit, dpi),
        "w": convert(w_mm, MM, unit, dpi),
        "h": convert(h_mm, MM, unit, dpi),
        "name": f"New {kind}",
    }
    # Remaining length defaults are declared in mm on the dataclasses.
    blank = cls()
    for name in length_fields(blank):
        if name not in defaults:
            defaults[name] = convert(getattr(blank, name), MM, unit, dpi)

    element_id = overrides.pop("id", None)
    if element_id:
        if template.find_element(element_id) is not None:
            raise InvalidElement(f"Element id {element_id!r} already exists")
        allocator.reserve([element_id])
    else:
        element_id = allocator.new_id(kind, taken=template.element_ids())

    defaults.update(overrides)
    defaults["id"] = element_id
    if "z_index" not in overrides:
        defaults["z_index"] = _next_z(template.elements)

    element = cls(**defaults)
    _check_geometry(element)
    log.debug("Added %s element %s to template %s", kind, element_id, template.id)
    return dataclasses.replace(
        template, elements=template.elements + [element], updated_at=_now_iso()
    )


def insert_elements(template: Template, elements: List[Element]) -> Template:
    """Append already built elements (e.g. pasted ones); ids must not collide."""
    existing = set(template.element_ids())
    for e in elements:
        if e.id in existing:
            raise InvalidElement(f"Element id {e.id!r} already exists")
        existing.add(e.id)
    return dataclasses.replace(
        template, elements=template.elements + list(elements), updated_at=_now_iso()
    )


def _index_of(template: Template, element_id: str) -> int:
    for i, e in enumerate(template.elements):
        if e.id == element_id:
            return i
    raise ElementNotFound(element_id)


def _check_geometry(element: Element) -> None:
    is_line = isinstance(element, ShapeElement) and element.shape == "line"
    if element.w < 0 or element.h < 0 or (not is_line and (element.w == 0 or element.h == 0)):
        raise InvalidElement(
            f"Element {element.id} must have a positive size, got {element.w}x{element.h}"
        )


def update_element(template: Template, element_id: str, patch: Dict[str, Any]) -> Template:
    """Apply *patch* (field name -> value) to one element."""
    index = _index_of(template, element_id)
    current = template.elements[index]

    if "id" in patch and patch["id"] != element_id:
        raise InvalidElement("Element ids cannot be changed")
    names = {f.name for f in dataclasses.fields(current)}
    unknown = sorted(set(patch) - names - {"id"})
    if unknown:
        raise InvalidElement(
            f"Unknown field(s) for {current.kind} element: {', '.join(unknown)}"
        )

    try:
        updated = dataclasses.replace(current, **patch)
    except TypeError as e:
        raise InvalidElement(str(e)) from e
    _check_geometry(updated)

    elements = list(template.elements)
    elements[index] = updated
    return dataclasses.replace(template, elements=elements, updated_at=_now_iso())


def remove_element(template: Template, element_id: str) -> Template:
    index = _index_of(template, element_id)
    elements = template.elements[:index] + template.elements[index + 1:]
    return dataclasses.replace(template, elements=elements, updated_at=_now_iso())


def remove_elements(template: Template, element_ids: Iterable[str]) -> Template:
    """Remove several elements; unknown ids are reported, not ignored."""
    ids = set(element_ids)
    missing = ids - set(template.element_ids())
    if missing:
        raise ElementNotFound(sorted(missing)[0])
    elements = [e for e in template.elements if e.id not in ids]
    return dataclasses.replace(template, elements=elements, updated_at=_now_iso())


def reorder_element(template: Template, element_id: str, direction: str) -> Template:
    """
    Move one element in the stacking order and renumber every element.

    Layers are ranked front to back and get ``z_index = len - index``;
    the returned element list is in back-to-front order so the list order
    and z_index agree.
    """
    if direction not in REORDER_DIRECTIONS:
        raise InvalidElement(
            f"Unknown reorder direction {direction!r}; expected one of {REORDER_DIRECTIONS}"
        )
    _index_of(template, element_id)

    layers = list(reversed(sorted_by_z(template.elements)))  # front first
    pos = next(i for i, e in enumerate(layers) if e.id == element_id)
    element = layers.pop(pos)

    if direction == "front":
        new_pos = 0
    elif direction == "back":
        new_pos = len(layers)
    elif direction == "forward":
        new_pos = max(0, pos - 1)
    else:
        new_pos = min(len(layers), pos + 1)
    layers.insert(new_pos, element)

    count = len(layers)
    renumbered = [
        e if e.z_index == count - i else dataclasses.replace(e, z_index=count - i)
        for i, e in enumerate(layers)
    ]
    renumbered.reverse()
    return dataclasses.replace(template, elements=renumbered, updated_at=_now_iso())


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------

def add_variable(template: Template, var: VarDef) -> Template:
    if template.find_variable(var.key) is not None:
        raise InvalidTemplate(f"Variable {var.key!r} already exists")
    return dataclasses.replace(
        template, variables=template.variables + [var], updated_at=_now_iso()
    )


def update_variable(template: Template, key: str, patch: Dict[str, Any]) -> Template:
    variables = list(template.variables)
    for i, v in enumerate(variables):
        if v.key == key:
            new_key = patch.get("key", key)
            if new_key != key and template.find_variable(new_key) is not None:
                raise InvalidTemplate(f"Variable {new_key!r} already exists")
            try:
                variables[i] = dataclasses.replace(v, **patch)
            except TypeError as e:
                raise InvalidTemplate(str(e)) from e
            return dataclasses.replace(template, variables=variables, updated_at=_now_iso())
    raise InvalidTemplate(f"No variable named {key!r}")


def remove_variable(template: Template, key: str) -> Template:
    variables = [v for v in template.variables if v.key != key]
    if len(variables) == len(template.variables):
        raise InvalidTemplate(f"No variable named {key!r}")
    return dataclasses.replace(template, variables=variables, updated_at=_now_iso())

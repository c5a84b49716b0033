# label_designer/core/units.py
"""
Conversions between physical units (mm, inch) and device pixels.

Everything here is pure and stateless. A device pixel is always tied to
a DPI; there is no global DPI.
"""
from __future__ import annotations

import re
from typing import Tuple

from .errors import InvalidUnit

MM_PER_INCH = 25.4
POINTS_PER_INCH = 72.0

MM = "mm"
INCH = "in"
PX = "px"

UNITS = (MM, INCH, PX)

_UNIT_ALIASES = {
    "mm": MM,
    "millimeter": MM,
    "millimeters": MM,
    "in": INCH,
    "inch": INCH,
    "inches": INCH,
    '"': INCH,
    "px": PX,
    "pixel": PX,
    "pixels": PX,
}

_WITH_UNIT_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*([a-zA-Z\"]+)\s*$")


def normalize_unit(unit: str) -> str:
    """Map user spellings ("MM", "inch") onto one of UNITS."""
    key = (unit or "").strip().lower()
    try:
        return _UNIT_ALIASES[key]
    except KeyError:
        raise InvalidUnit(f"Unknown unit: {unit!r}") from None


def _check_dpi(dpi: float) -> float:
    try:
        value = float(dpi)
    except (TypeError, ValueError):
        raise InvalidUnit(f"DPI must be a number, got {dpi!r}") from None
    if value <= 0:
        raise InvalidUnit(f"DPI must be positive, got {dpi!r}")
    return value


def to_device_pixels(value: float, unit: str, dpi: float) -> float:
    """
    Convert *value* expressed in *unit* into device pixels at *dpi*.

    mm:   px = mm * dpi / 25.4
    in:   px = in * dpi
    px:   unchanged
    """
    d = _check_dpi(dpi)
    u = normalize_unit(unit)
    if u == MM:
        return float(value) * d / MM_PER_INCH
    if u == INCH:
        return float(value) * d
    return float(value)


def from_device_pixels(pixels: float, unit: str, dpi: float) -> float:
    """Inverse of :func:`to_device_pixels`."""
    d = _check_dpi(dpi)
    u = normalize_unit(unit)
    if u == MM:
        return float(pixels) * MM_PER_INCH / d
    if u == INCH:
        return float(pixels) / d
    return float(pixels)


def convert(value: float, from_unit: str, to_unit: str, dpi: float) -> float:
    """Convert between any two units, going through device pixels."""
    src = normalize_unit(from_unit)
    dst = normalize_unit(to_unit)
    _check_dpi(dpi)
    if src == dst:
        return float(value)
    # mm <-> in does not depend on dpi; keep it exact.
    if src == MM and dst == INCH:
        return float(value) / MM_PER_INCH
    if src == INCH and dst == MM:
        return float(value) * MM_PER_INCH
    return from_device_pixels(to_device_pixels(value, src, dpi), dst, dpi)


def points_to_pixels(points: float, dpi: float) -> float:
    """Typographic points (1/72 in) to device pixels."""
    return float(points) * _check_dpi(dpi) / POINTS_PER_INCH


def pixels_to_points(pixels: float, dpi: float) -> float:
    return float(pixels) * POINTS_PER_INCH / _check_dpi(dpi)


def parse_with_unit(text: str) -> Tuple[float, str]:
    """
    Parse strings such as ``"12.5mm"`` or ``"2 in"``.

    Raises InvalidUnit for anything else.
    """
    m = _WITH_UNIT_RE.match(text or "")
    if not m:
        raise InvalidUnit(f"Invalid unit format: {text!r}")
    return float(m.group(1)), normalize_unit(m.group(2))


def format_with_unit(value: float, unit: str, decimals: int = 2) -> str:
    u = normalize_unit(unit)
    return f"{round(float(value), decimals):g}{u}"


def snap_to_grid(value: float, grid: float) -> float:
    if grid <= 0:
        return float(value)
    return round(float(value) / grid) * grid

# label_designer/core/variables.py
"""
Binding resolution: turns element bindings and ``{{token}}`` placeholders
into display strings for one data record.

Resolution never raises. A label must still render something when a record
is missing a field, so every failure degrades to the binding fallback or an
empty string.

Rules
-----
- A bare binding field is a VarDef key.
- ``{{token}}`` is a VarDef key if one exists, otherwise a record path
  (dotted, with numeric list indices: ``sample.tests.0.name``).
- VarDef ``manual``: value is ``sample_value``.
- VarDef ``record-field``: record[field_path], then ``sample_value``.
- Then the binding fallback, then "".
- Record values are stringified *before* formatting; the fallback is
  returned as-is and never formatted.
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Set, Union

from .errors import UnresolvedBinding
from .models import DataBinding, Element, Template, TextElement, VarDef

log = logging.getLogger(__name__)

# {{token}} or {{token|fallback}}
PLACEHOLDER_RE = re.compile(r"\{\{\s*([^}|]+?)\s*(?:\|([^}]*))?\}\}")

_DATE_TOKENS = {
    "yyyy": "%Y",
    "MM": "%m",
    "dd": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}
_DATE_TOKEN_RE = re.compile(r"yyyy|MM|dd|HH|mm|ss")

_MISSING = object()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def stringify(value: Any) -> str:
    """Record value -> string. Integral floats drop their ``.0``."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def strip_braces(field: str) -> tuple[str, bool]:
    """Return (token, was_wrapped) for ``"{{token}}"`` or ``"token"``."""
    f = (field or "").strip()
    m = PLACEHOLDER_RE.fullmatch(f)
    if m:
        return m.group(1).strip(), True
    return f, False


def lookup_path(record: Optional[Mapping[str, Any]], path: str) -> Any:
    """
    Walk *path* through nested mappings / sequences.

    Raises UnresolvedBinding when any step is missing or the value is None.
    """
    if record is None:
        raise UnresolvedBinding(f"No record to resolve {path!r}")
    if not path:
        raise UnresolvedBinding("Empty field path")

    if path in record:  # flat keys that contain dots win
        current = record[path]
    else:
        current = record
        for part in path.split("."):
            if isinstance(current, Mapping):
                current = current.get(part, _MISSING)
            elif isinstance(current, (list, tuple)) and part.isdigit():
                idx = int(part)
                current = current[idx] if idx < len(current) else _MISSING
            else:
                current = _MISSING
            if current is _MISSING:
                raise UnresolvedBinding(f"Record has no field {path!r}")

    if current is None:
        raise UnresolvedBinding(f"Record field {path!r} is empty")
    return current


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------

def _parse_timestamp(raw: str) -> Optional[datetime]:
    s = (raw or "").strip()
    if not s:
        return None
    try:
        number = float(s)
    except ValueError:
        number = None
    if number is not None:
        # Epoch seconds, or milliseconds for anything past the year 5000.
        if abs(number) > 1e11:
            number /= 1000.0
        try:
            return datetime.fromtimestamp(number, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def format_date(raw: str, pattern: str) -> str:
    """
    Format *raw* with a yyyy/MM/dd/HH/mm/ss pattern.

    Returns *raw* unchanged when it cannot be parsed as a timestamp.
    """
    ts = _parse_timestamp(raw)
    if ts is None:
        log.debug("Date format skipped; %r is not a timestamp", raw)
        return raw
    strf = _DATE_TOKEN_RE.sub(
        lambda m: _DATE_TOKENS[m.group(0)],
        pattern.replace("%", "%%"),
    )
    return ts.strftime(strf)


def apply_format(value: str, fmt: Optional[str]) -> str:
    """
    Apply one of: identity (None / "" / "identity"), ``upper``, ``lower``,
    ``date:<pattern>``. Unknown formats leave the value unchanged.
    """
    if not fmt or fmt == "identity":
        return value
    if fmt == "upper":
        return value.upper()
    if fmt == "lower":
        return value.lower()
    if fmt.startswith("date:"):
        return format_date(value, fmt[len("date:"):])
    log.warning("Unknown format %r; value left unchanged", fmt)
    return value


def is_valid_format(fmt: Optional[str]) -> bool:
    return (not fmt) or fmt in ("identity", "upper", "lower") or (
        fmt.startswith("date:") and len(fmt) > len("date:")
    )


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def _find_var(variables: Iterable[VarDef], key: str) -> Optional[VarDef]:
    for v in variables:
        if v.key == key:
            return v
    return None


def _var_raw_value(var: VarDef, record: Optional[Mapping[str, Any]]) -> Any:
    if var.source == "manual":
        if var.sample_value is None:
            raise UnresolvedBinding(f"Variable {var.key!r} has no value")
        return var.sample_value
    try:
        return lookup_path(record, var.field_path or "")
    except UnresolvedBinding:
        if var.sample_value is None:
            raise
        return var.sample_value


def resolve_binding(
    binding: DataBinding,
    variables: Iterable[VarDef],
    record: Optional[Mapping[str, Any]] = None,
) -> str:
    token, wrapped = strip_braces(binding.field)
    fallback = binding.fallback if binding.fallback is not None else ""

    var = _find_var(variables, token)
    try:
        if var is not None:
            raw = _var_raw_value(var, record)
            fmt = binding.format or var.format
        elif wrapped:
            raw = lookup_path(record, token)
            fmt = binding.format
        else:
            raise UnresolvedBinding(f"No variable named {token!r}")
    except UnresolvedBinding as e:
        log.debug("Binding %r unresolved (%s); using fallback %r", binding.field, e, fallback)
        return fallback

    return apply_format(stringify(raw), fmt)


def resolve(
    binding_or_literal: Union[DataBinding, str, None],
    variables: Iterable[VarDef] = (),
    record: Optional[Mapping[str, Any]] = None,
    fallback: Optional[str] = None,
) -> str:
    """
    Resolve a binding or literal to a string.

    - ``DataBinding`` -> binding rules.
    - ``"{{token}}"`` (the whole string) -> binding rules, with *fallback*.
    - any other string -> returned as the literal it is.
    """
    if binding_or_literal is None:
        return fallback or ""
    if isinstance(binding_or_literal, DataBinding):
        if fallback is not None and binding_or_literal.fallback is None:
            binding_or_literal = DataBinding(
                field=binding_or_literal.field,
                format=binding_or_literal.format,
                fallback=fallback,
            )
        return resolve_binding(binding_or_literal, variables, record)

    text = str(binding_or_literal)
    m = PLACEHOLDER_RE.fullmatch(text.strip())
    if m:
        inline_fallback = m.group(2)
        fb = fallback if fallback is not None else inline_fallback
        return resolve_binding(DataBinding(field=text.strip(), fallback=fb), variables, record)
    return text


def resolve_text(
    content: str,
    variables: Iterable[VarDef] = (),
    record: Optional[Mapping[str, Any]] = None,
) -> str:
    """Substitute every ``{{token}}`` / ``{{token|fallback}}`` inside *content*."""
    if not content or "{{" not in content:
        return content or ""
    variables = list(variables)

    def _sub(m: re.Match) -> str:
        return resolve_binding(
            DataBinding(field="{{" + m.group(1) + "}}", fallback=m.group(2)),
            variables,
            record,
        )

    return PLACEHOLDER_RE.sub(_sub, content)


def element_literal(element: Element) -> str:
    """The static text an element carries when it has no binding."""
    if isinstance(element, TextElement):
        return element.content
    return str(getattr(element, "value", "") or "")


def resolve_element_value(
    element: Element,
    variables: Iterable[VarDef] = (),
    record: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    The display value for a text / barcode / qr element.

    A data binding wins; otherwise the literal (with any inline placeholders
    filled in) is used.
    """
    if element.data_binding is not None:
        return resolve_binding(element.data_binding, variables, record)
    return resolve_text(element_literal(element), variables, record)


def scan_placeholders(template: Template) -> Set[str]:
    """Every token referenced by the template (placeholders and bindings)."""
    used: Set[str] = set()
    for e in template.elements:
        for m in PLACEHOLDER_RE.finditer(element_literal(e)):
            used.add(m.group(1).strip())
        if e.data_binding is not None:
            used.add(strip_braces(e.data_binding.field)[0])
    return used

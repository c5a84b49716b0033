# label_designer/printing/merge.py
"""
CSV data merge: spreadsheet rows -> print records.

Each CSV column is mapped onto a template variable key. A record-field
variable gets its value at its ``field_path`` so the template resolves it
as usual; any other key is used as a dotted record path.
"""
from __future__ import annotations

import csv
import io
import logging
import os
from typing import IO, Any, Dict, Iterable, List, Mapping, Tuple, Union

from ..core.models import VarDef
from .exceptions import PrinterConfigError

log = logging.getLogger(__name__)

CsvSource = Union[str, "os.PathLike[str]", IO[str]]


def _read_text(source: CsvSource) -> str:
    if hasattr(source, "read"):
        return source.read()
    if isinstance(source, os.PathLike) or ("\n" not in source and os.path.isfile(source)):
        with open(source, "r", encoding="utf-8-sig", newline="") as f:
            return f.read()
    return source


def read_csv(source: CsvSource) -> Tuple[List[str], List[Dict[str, str]]]:
    """Column names and row dicts from a CSV path, text or open file. Blank lines are skipped."""
    content = _read_text(source).lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(content))
    columns = list(reader.fieldnames or [])
    rows = [dict(row) for row in reader]
    return columns, rows


def _set_path(record: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    node = record
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[parts[-1]] = value


def merge_csv(
    source: CsvSource,
    column_map: Mapping[str, str],
    variables: Iterable[VarDef] = (),
) -> List[Dict[str, Any]]:
    """
    Build one record per CSV row from *column_map* (variable key -> column).

    Keys mapped to an empty column name are left out. A mapped column the
    CSV does not have raises PrinterConfigError.
    """
    columns, rows = read_csv(source)
    mapping = {key: col for key, col in column_map.items() if col}
    missing = sorted({col for col in mapping.values() if col not in columns})
    if missing:
        raise PrinterConfigError(f"CSV has no column(s): {', '.join(missing)}")

    targets = {}
    by_key = {v.key: v for v in variables}
    for key in mapping:
        var = by_key.get(key)
        if var is not None and var.source == "record-field" and var.field_path:
            targets[key] = var.field_path
        else:
            targets[key] = key

    records: List[Dict[str, Any]] = []
    for row in rows:
        record: Dict[str, Any] = {}
        for key, col in mapping.items():
            _set_path(record, targets[key], row.get(col) or "")
        records.append(record)
    log.debug("Merged %d CSV row(s) over %d column(s)", len(records), len(mapping))
    return records

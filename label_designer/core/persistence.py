# label_designer/core/persistence.py
"""
Template persistence: the store interface the editor talks to, an in-memory
store and a folder-of-JSON-files store with portable asset paths.

Stores only promise last-write-wins and read-your-writes.
"""
from __future__ import annotations

import copy
import dataclasses
import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, runtime_checkable

from .errors import InvalidTemplate
from .models import Template
from .template_ops import create_template
from .utils import make_elements_portable, resolve_element_paths

log = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@runtime_checkable
class TemplateStore(Protocol):
    def get_templates(self) -> List[Template]: ...
    def get_template(self, template_id: str) -> Optional[Template]: ...
    def save_template(self, template: Template) -> Template: ...
    def delete_template(self, template_id: str) -> bool: ...
    def create_template(self, name: str) -> Template: ...


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def save_template_file(template: Template, path: str) -> None:
    """Write *template* as JSON; image paths next to *path* become relative."""
    data = template.to_dict()
    data["elements"] = make_elements_portable(data["elements"], path)
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp, path)


def load_template_file(path: str) -> Template:
    """
    Read a template written by ``save_template_file``.

    Raises InvalidTemplate for files that are not template JSON; OSError
    (missing file, permissions) propagates as is.
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidTemplate(
                f"{path} is not valid JSON (line {e.lineno}, column {e.colno}: {e.msg})"
            ) from e

    if not isinstance(data, dict):
        raise InvalidTemplate(f"{path} does not contain a template object")
    if isinstance(data.get("elements"), list):
        data["elements"] = resolve_element_paths(data["elements"], path)
    try:
        return Template.from_dict(data)
    except (TypeError, ValueError) as e:
        raise InvalidTemplate(f"{path}: {e}") from e


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class InMemoryTemplateStore:
    """Dict-backed store; returns copies so callers cannot alias stored values."""

    def __init__(self):
        self._templates: Dict[str, Template] = {}

    def get_templates(self) -> List[Template]:
        return [copy.deepcopy(t) for t in self._templates.values()]

    def get_template(self, template_id: str) -> Optional[Template]:
        t = self._templates.get(template_id)
        return copy.deepcopy(t) if t is not None else None

    def save_template(self, template: Template) -> Template:
        if not template.id:
            raise InvalidTemplate("Template has no id")
        stored = dataclasses.replace(copy.deepcopy(template), updated_at=_now_iso())
        self._templates[stored.id] = stored
        return copy.deepcopy(stored)

    def delete_template(self, template_id: str) -> bool:
        return self._templates.pop(template_id, None) is not None

    def create_template(self, name: str) -> Template:
        return self.save_template(create_template(name))


class JsonTemplateStore:
    """One ``<id>.json`` file per template in *directory*."""

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def path_for(self, template_id: str) -> str:
        if not template_id or os.sep in template_id or (os.altsep and os.altsep in template_id):
            raise InvalidTemplate(f"Unusable template id {template_id!r}")
        return os.path.join(self.directory, f"{template_id}.json")

    def get_templates(self) -> List[Template]:
        out = []
        for name in sorted(os.listdir(self.directory)):
            if not name.endswith(".json"):
                continue
            path = os.path.join(self.directory, name)
            try:
                out.append(load_template_file(path))
            except (InvalidTemplate, OSError) as e:
                log.warning("Skipping unreadable template %s: %s", path, e)
        return out

    def get_template(self, template_id: str) -> Optional[Template]:
        path = self.path_for(template_id)
        if not os.path.exists(path):
            return None
        return load_template_file(path)

    def save_template(self, template: Template) -> Template:
        stored = dataclasses.replace(template, updated_at=_now_iso())
        save_template_file(stored, self.path_for(stored.id))
        log.debug("Saved template %s", stored.id)
        return stored

    def delete_template(self, template_id: str) -> bool:
        path = self.path_for(template_id)
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        return True

    def create_template(self, name: str) -> Template:
        return self.save_template(create_template(name))

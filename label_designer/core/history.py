# label_designer/core/history.py
"""
Snapshot undo / redo.

Templates are immutable values (every mutator in ``template_ops`` returns a
new one), so a history entry simply holds on to the Template as it was.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .models import Template

log = logging.getLogger(__name__)

# Action kinds used in descriptions and by the editor's menus.
ACTION_KINDS = (
    "add", "delete", "move", "resize", "rotate", "style", "text", "reorder",
    "group", "ungroup", "align", "distribute", "paste", "variable", "template",
)

_VERBS = {
    "add": "Add",
    "delete": "Delete",
    "move": "Move",
    "resize": "Resize",
    "rotate": "Rotate",
    "style": "Restyle",
    "text": "Edit",
    "reorder": "Reorder",
    "group": "Group",
    "ungroup": "Ungroup",
    "align": "Align",
    "distribute": "Distribute",
    "paste": "Paste",
    "variable": "Edit variables on",
    "template": "Edit",
}


def describe(kind: str, count: int = 1, noun: str = "element") -> str:
    """Short human label for a history entry, e.g. ``"Move 3 elements"``."""
    verb = _VERBS.get(kind, kind.capitalize() or "Change")
    if kind in ("variable", "template"):
        return f"{verb} template"
    if count == 1:
        return f"{verb} {noun}"
    return f"{verb} {count} {noun}s"


@dataclass(frozen=True)
class HistoryEntry:
    snapshot: Template
    description: str
    kind: str
    affected_ids: Tuple[str, ...] = ()
    timestamp: float = field(default_factory=time.time)


Listener = Callable[["HistoryManager"], None]


class HistoryManager:
    """
    Bounded undo / redo stacks.

    ``save_state`` is called with the template *before* a change. ``undo`` and
    ``redo`` take the template as it is now and hand back the one to show,
    or None when there is nothing to go back (or forward) to.
    """

    def __init__(self, max_size: Optional[int] = None):
        if max_size is None:
            from ..config import current_settings
            max_size = current_settings().history_limit
        self.max_size = max(1, int(max_size))
        self._undo: List[HistoryEntry] = []
        self._redo: List[HistoryEntry] = []
        self._listeners: List[Listener] = []

    # ---------- observers ----------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ---------- stack ops ----------

    def save_state(
        self,
        template: Template,
        description: str,
        kind: str = "template",
        affected_ids: Optional[Sequence[str]] = None,
    ) -> None:
        self._undo.append(HistoryEntry(
            snapshot=template,
            description=description,
            kind=kind,
            affected_ids=tuple(affected_ids or ()),
        ))
        if len(self._undo) > self.max_size:
            del self._undo[: len(self._undo) - self.max_size]
        self._redo.clear()
        log.debug("History: %s (%d undo)", description, len(self._undo))
        self._notify()

    def undo(self, current: Template) -> Optional[Template]:
        if not self._undo:
            return None
        entry = self._undo.pop()
        self._redo.append(HistoryEntry(
            snapshot=current,
            description=entry.description,
            kind=entry.kind,
            affected_ids=entry.affected_ids,
        ))
        log.debug("Undo: %s", entry.description)
        self._notify()
        return entry.snapshot

    def redo(self, current: Template) -> Optional[Template]:
        if not self._redo:
            return None
        entry = self._redo.pop()
        self._undo.append(HistoryEntry(
            snapshot=current,
            description=entry.description,
            kind=entry.kind,
            affected_ids=entry.affected_ids,
        ))
        log.debug("Redo: %s", entry.description)
        self._notify()
        return entry.snapshot

    # ---------- queries ----------

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    def undo_description(self) -> Optional[str]:
        return self._undo[-1].description if self._undo else None

    def redo_description(self) -> Optional[str]:
        return self._redo[-1].description if self._redo else None

    @property
    def undo_entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._undo)

    @property
    def redo_entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._redo)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
        self._notify()

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from .models import Template
from .units import convert

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Group:
    """
    Membership record only. Grouping never touches the member elements, so
    dropping a group is always lossless.
    """
    id: str
    label: str
    element_ids: Tuple[str, ...]
    locked: bool = False
    visible: bool = True
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )


@dataclass(frozen=True)
class Bounds:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center(self) -> Tuple[float, float]:
        return (self.left + self.right) / 2.0, (self.top + self.bottom) / 2.0


Listener = Callable[[FrozenSet[str]], None]


class SelectionManager:
    """
    The live selection plus the group records of one editor session.

    Listeners always receive the complete selected id set, never a delta.
    """

    def __init__(self):
        self._selected: List[str] = []   # insertion order, for "primary" selection
        self._groups: List[Group] = []
        self.active_group_id: Optional[str] = None
        self._listeners: List[Listener] = []

    # ---------- observers ----------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        ids = self.selected_ids
        for listener in list(self._listeners):
            listener(ids)

    def _set(self, ids: Iterable[str]) -> None:
        seen = set()
        ordered = []
        for i in ids:
            if i not in seen:
                seen.add(i)
                ordered.append(i)
        self._selected = ordered
        self._notify()

    # ---------- selection ----------

    @property
    def selected_ids(self) -> FrozenSet[str]:
        return frozenset(self._selected)

    @property
    def primary(self) -> Optional[str]:
        """Most recently added id (the one the inspector shows)."""
        return self._selected[-1] if self._selected else None

    def __len__(self) -> int:
        return len(self._selected)

    def is_selected(self, element_id: str) -> bool:
        return element_id in self._selected

    def is_multi(self) -> bool:
        return len(self._selected) > 1

    def select(self, element_id: str) -> None:
        self._set([element_id])

    def toggle(self, element_id: str) -> None:
        if element_id in self._selected:
            self._set(i for i in self._selected if i != element_id)
        else:
            self._set(self._selected + [element_id])

    def add(self, element_id: str) -> None:
        if element_id not in self._selected:
            self._set(self._selected + [element_id])

    def remove(self, element_id: str) -> None:
        if element_id in self._selected:
            self._set(i for i in self._selected if i != element_id)

    def select_many(self, element_ids: Iterable[str]) -> None:
        self._set(element_ids)

    def select_all(self, template: Template) -> None:
        self._set(template.element_ids())

    def invert(self, template: Template) -> None:
        current = set(self._selected)
        self._set(i for i in template.element_ids() if i not in current)

    def clear(self) -> None:
        self._set([])

    def prune(self, template: Template) -> None:
        """Forget ids (in the selection and in groups) that the template no longer has."""
        alive = set(template.element_ids())
        groups = []
        for g in self._groups:
            members = tuple(i for i in g.element_ids if i in alive)
            if len(members) >= 2:
                groups.append(g if members == g.element_ids else dataclasses.replace(g, element_ids=members))
            elif self.active_group_id == g.id:
                self.active_group_id = None
        self._groups = groups
        self._set(i for i in self._selected if i in alive)

    # ---------- groups ----------

    @property
    def groups(self) -> Tuple[Group, ...]:
        return tuple(self._groups)

    def get_group(self, group_id: str) -> Optional[Group]:
        return next((g for g in self._groups if g.id == group_id), None)

    def create_group(self, label: str = "Group") -> Optional[Group]:
        """Group the current selection; needs at least two selected elements."""
        if len(self._selected) < 2:
            return None
        group = Group(
            id=f"group_{uuid.uuid4().hex[:10]}",
            label=label,
            element_ids=tuple(self._selected),
        )
        self._groups.append(group)
        self.active_group_id = group.id
        log.debug("Grouped %d elements as %s", len(group.element_ids), group.id)
        self._notify()
        return group

    def ungroup_group(self, group_id: str) -> bool:
        """Drop the group record. Member elements and the selection are untouched."""
        group = self.get_group(group_id)
        if group is None:
            return False
        self._groups.remove(group)
        if self.active_group_id == group_id:
            self.active_group_id = None
        self._notify()
        return True

    def add_to_group(self, group_id: str, element_ids: Iterable[str]) -> bool:
        group = self.get_group(group_id)
        if group is None:
            return False
        extra = tuple(i for i in element_ids if i not in group.element_ids)
        self._replace_group(group, dataclasses.replace(group, element_ids=group.element_ids + extra))
        return True

    def remove_from_group(self, group_id: str, element_ids: Iterable[str]) -> bool:
        group = self.get_group(group_id)
        if group is None:
            return False
        drop = set(element_ids)
        self._replace_group(
            group, dataclasses.replace(group, element_ids=tuple(i for i in group.element_ids if i not in drop))
        )
        return True

    def _replace_group(self, old: Group, new: Group) -> None:
        self._groups[self._groups.index(old)] = new
        self._notify()

    def groups_for_element(self, element_id: str) -> List[Group]:
        return [g for g in self._groups if element_id in g.element_ids]

    def select_group(self, group_id: str) -> bool:
        group = self.get_group(group_id)
        if group is None:
            return False
        self.active_group_id = group_id
        self._set(group.element_ids)
        return True

    # ---------- geometry ----------

    def selection_bounds(self, template: Template) -> Optional[Bounds]:
        """Bounding box of the selected elements, in the template unit."""
        boxes = []
        for element_id in self._selected:
            e = template.find_element(element_id)
            if e is None:
                continue
            unit = template.element_unit(e)
            to_t = lambda v: convert(v, unit, template.unit, template.dpi)
            boxes.append((to_t(e.x), to_t(e.y), to_t(e.x + e.w), to_t(e.y + e.h)))
        if not boxes:
            return None
        return Bounds(
            left=min(b[0] for b in boxes),
            top=min(b[1] for b in boxes),
            right=max(b[2] for b in boxes),
            bottom=max(b[3] for b in boxes),
        )

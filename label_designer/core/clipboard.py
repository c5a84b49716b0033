from __future__ import annotations

import copy
import dataclasses
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .models import Element, Template, element_from_dict
from .template_ops import SESSION_IDS, IdAllocator, convert_element_lengths
from .units import MM, convert, normalize_unit

log = logging.getLogger(__name__)

COPY = "copy"
CUT = "cut"


@dataclass
class ClipboardPayload:
    """
    Deep-cloned elements plus where they came from.

    Geometry stays exactly as copied (in ``unit``); new ids are only minted
    at paste time.
    """
    elements: List[Element]
    source_template_id: Optional[str] = None
    mode: str = COPY
    unit: str = MM
    dpi: int = 300
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "elements": [e.to_dict() for e in self.elements],
            "source_template_id": self.source_template_id,
            "mode": self.mode,
            "unit": self.unit,
            "dpi": self.dpi,
            "timestamp": self.timestamp,
        }

    @staticmethod
    def from_dict(d: dict) -> "ClipboardPayload":
        elements = d.get("elements")
        if not isinstance(elements, list):
            raise ValueError("Clipboard data has no element list")
        return ClipboardPayload(
            elements=[element_from_dict(x) for x in elements],
            source_template_id=d.get("source_template_id"),
            mode=d.get("mode", COPY),
            unit=normalize_unit(d.get("unit", MM)),
            dpi=int(d.get("dpi", 300)),
            timestamp=float(d.get("timestamp", time.time())),
        )


Listener = Callable[[Optional[ClipboardPayload]], None]


class ClipboardManager:
    """
    Editor clipboard. Never touches a template: ``cut`` only tells the
    caller which ids to remove.
    """

    def __init__(self, allocator: Optional[IdAllocator] = None):
        self.allocator = allocator or SESSION_IDS
        self._payload: Optional[ClipboardPayload] = None
        self._paste_count = 0
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
            listener(self._payload)

    # ---------- copy / cut ----------

    def copy(
        self,
        elements: Sequence[Element],
        source_template_id: Optional[str] = None,
        unit: str = MM,
        dpi: int = 300,
        mode: str = COPY,
    ) -> None:
        if not elements:
            return
        self.allocator.reserve(e.id for e in elements)
        self._payload = ClipboardPayload(
            elements=copy.deepcopy(list(elements)),
            source_template_id=source_template_id,
            mode=mode,
            unit=normalize_unit(unit),
            dpi=int(dpi),
        )
        self._paste_count = 0
        log.debug("Clipboard: %s %d element(s)", mode, len(elements))
        self._notify()

    def cut(
        self,
        elements: Sequence[Element],
        source_template_id: Optional[str] = None,
        unit: str = MM,
        dpi: int = 300,
    ) -> List[str]:
        """Copy, then return the ids the caller should remove from its template."""
        self.copy(elements, source_template_id, unit, dpi, mode=CUT)
        return [e.id for e in elements]

    # ---------- paste ----------

    def paste(
        self,
        offset_x: Optional[float] = None,
        offset_y: Optional[float] = None,
        duplicate_ids: bool = True,
        unit: Optional[str] = None,
        dpi: Optional[int] = None,
        target: Optional[Template] = None,
    ) -> Optional[List[Element]]:
        """
        Fresh copies of the clipboard elements, or None when it is empty.

        The n-th paste of the same payload is shifted by n x (offset_x, offset_y),
        given in the target unit (``unit``, else ``target``'s unit, else the
        unit the elements were copied in). With ``target`` the pasted elements
        also stack above everything already on it.
        """
        payload = self._payload
        if payload is None:
            return None

        if offset_x is None or offset_y is None:
            from ..config import current_settings
            default = current_settings().paste_offset
            offset_x = default if offset_x is None else offset_x
            offset_y = default if offset_y is None else offset_y

        to_unit = normalize_unit(unit or (target.unit if target else payload.unit))
        to_dpi = int(dpi or (target.dpi if target else payload.dpi))
        taken = set(target.element_ids()) if target else set()

        self._paste_count += 1
        n = self._paste_count

        z_base = None
        if target is not None and target.elements:
            z_base = max(
                (e.z_index if e.z_index is not None else i)
                for i, e in enumerate(target.elements)
            )

        pasted: List[Element] = []
        for index, original in enumerate(payload.elements):
            e = copy.deepcopy(original)
            if e.unit is None and to_unit != payload.unit:
                e = convert_element_lengths(e, payload.unit, to_unit, payload.dpi)
            own_unit = e.unit or to_unit
            patch = {
                "x": e.x + convert(n * offset_x, to_unit, own_unit, to_dpi),
                "y": e.y + convert(n * offset_y, to_unit, own_unit, to_dpi),
            }
            if duplicate_ids:
                patch["id"] = self.allocator.new_id(e.kind, taken=taken)
                patch["name"] = f"{e.name or e.kind} Copy"
                taken.add(patch["id"])
            if z_base is not None:
                patch["z_index"] = z_base + index + 1
            pasted.append(dataclasses.replace(e, **patch))

        log.debug("Pasted %d element(s) (paste #%d)", len(pasted), n)
        return pasted

    # ---------- state ----------

    @property
    def payload(self) -> Optional[ClipboardPayload]:
        return self._payload

    @property
    def paste_count(self) -> int:
        return self._paste_count

    def has_content(self) -> bool:
        return self._payload is not None

    def clear(self) -> None:
        self._payload = None
        self._paste_count = 0
        self._notify()

    # ---------- system clipboard interchange ----------

    def to_json(self) -> Optional[str]:
        if self._payload is None:
            return None
        return json.dumps(self._payload.to_dict(), indent=2)

    def from_json(self, raw: str) -> bool:
        """Load a payload produced by ``to_json``. Returns False if *raw* is not one."""
        try:
            payload = ClipboardPayload.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as e:
            log.warning("Ignoring clipboard data: %s", e)
            return False
        self.allocator.reserve(e.id for e in payload.elements)
        self._payload = payload
        self._paste_count = 0
        self._notify()
        return True

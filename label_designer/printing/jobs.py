# label_designer/printing/jobs.py
"""
Print job records and their lifecycle.

    pending -> printing -> completed | failed
    pending | printing -> cancelled

Nothing leaves a terminal state; a retry is a new job.
"""
from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from ..core.models import Template
from .exceptions import InvalidJobTransition

PENDING = "pending"
PRINTING = "printing"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

STATUSES = (PENDING, PRINTING, COMPLETED, FAILED, CANCELLED)
TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED})

_ALLOWED = {
    PENDING: {PRINTING, CANCELLED},
    PRINTING: {COMPLETED, FAILED, CANCELLED},
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


@dataclass
class PrintJob:
    template: Template
    record: Dict[str, Any] = field(default_factory=dict)
    copies: int = 1
    id: str = field(default_factory=lambda: f"job_{uuid.uuid4().hex[:10]}")
    status: str = PENDING
    progress: float = 0.0
    copies_done: int = 0
    error: Optional[str] = None
    created_at: str = field(default_factory=_now_iso)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    failure: Optional[BaseException] = field(default=None, repr=False, compare=False)

    @classmethod
    def for_record(cls, template: Template, record: Optional[Mapping[str, Any]], copies: int) -> "PrintJob":
        """A pending job holding its own snapshot of *record*."""
        return cls(template=template, record=copy.deepcopy(dict(record or {})), copies=copies)

    @property
    def template_ref(self) -> str:
        return self.template.id

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    def transition(self, status: str, error: Optional[str] = None) -> None:
        if status not in _ALLOWED.get(self.status, ()):
            raise InvalidJobTransition(self.id, self.status, status)
        self.status = status
        if status == PRINTING:
            self.started_at = _now_iso()
        elif status in TERMINAL:
            self.completed_at = _now_iso()
        if status == FAILED:
            self.error = error
        elif status == COMPLETED:
            self.progress = 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "template_ref": self.template_ref,
            "record": self.record,
            "copies": self.copies,
            "status": self.status,
            "progress": self.progress,
            "error": self.error,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

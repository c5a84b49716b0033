from __future__ import annotations

import logging
import os
import re
from typing import List, Optional, Tuple

from .exceptions import PrinterConfigError

log = logging.getLogger(__name__)


class BaseBackend:
    """Where a rendered copy goes once the orchestrator has its PDF bytes."""

    def send(self, data: bytes, job_id: str = "", copy: int = 1) -> None:
        raise NotImplementedError


class DryRunBackend(BaseBackend):
    """Keeps every payload in memory; nothing leaves the process."""

    def __init__(self):
        self.sent_chunks: List[bytes] = []
        self.sent_labels: List[Tuple[str, int]] = []

    def send(self, data: bytes, job_id: str = "", copy: int = 1) -> None:
        self.sent_chunks.append(bytes(data))
        self.sent_labels.append((job_id, copy))

    @property
    def total_bytes(self) -> int:
        return sum(len(c) for c in self.sent_chunks)


_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class DirectoryBackend(BaseBackend):
    """Writes each copy to ``<directory>/<job>-<copy>.pdf``."""

    def __init__(self, directory: str, suffix: str = ".pdf"):
        if not directory:
            raise PrinterConfigError("Directory backend requires an output directory.")
        self.directory = directory
        self.suffix = suffix
        self.written: List[str] = []

    def path_for(self, job_id: str, copy: int) -> str:
        name = _UNSAFE.sub("_", job_id or "label")
        return os.path.join(self.directory, f"{name}-{copy}{self.suffix}")

    def send(self, data: bytes, job_id: str = "", copy: int = 1) -> None:
        os.makedirs(self.directory, exist_ok=True)
        path = self.path_for(job_id, copy)
        with open(path, "wb") as fh:
            fh.write(data)
        self.written.append(path)
        log.debug("Wrote %d bytes to %s", len(data), path)


def make_backend(cfg: Optional[dict] = None) -> BaseBackend:
    """Factory to build a backend from an output config dict."""
    cfg = cfg or {}
    iface = (cfg.get("interface") or "dry_run").lower()
    if iface == "dry_run":
        return DryRunBackend()
    if iface == "directory":
        return DirectoryBackend(cfg.get("directory", ""))
    raise PrinterConfigError(f"Unknown backend: {iface}")

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, List, Mapping, Optional

from PySide6 import QtCore

from ..core.models import Template
from .exceptions import friendly_message
from .jobs import PrintJob
from .orchestrator import PrintJobOrchestrator

log = logging.getLogger(__name__)


class WorkerSignals(QtCore.QObject):
    job_changed = QtCore.Signal(object)   # PrintJob
    progress = QtCore.Signal(int)         # whole batch, 0–100
    finished = QtCore.Signal()            # always emitted, even after error
    error = QtCore.Signal(str)            # batch-level error message


class BatchPrintWorker(QtCore.QThread):
    """
    Runs one print batch off the GUI thread.

    Per-job failures are reported through ``job_changed`` (the job ends up
    ``failed``); ``error`` is only for problems that stop the whole batch.
    ``run()`` can also be called directly, which is what the tests do.
    """

    def __init__(
        self,
        orchestrator: PrintJobOrchestrator,
        template: Template,
        records: Iterable[Optional[Mapping[str, Any]]],
        copies: int = 1,
        parent=None,
    ):
        super().__init__(parent)
        self.orchestrator = orchestrator
        self.template = template
        self.records = list(records)
        self.copies = int(copies)
        self.signals = WorkerSignals()
        self.jobs: List[PrintJob] = []
        self._cancel_requested = threading.Event()

    def cancel(self) -> None:
        """Cancel the batch, including one that has not been submitted yet."""
        self._cancel_requested.set()
        self.orchestrator.cancel()

    def _batch_progress(self) -> int:
        total = len(self.jobs) * max(self.copies, 1)
        if not total:
            return 100
        done = sum(
            job.copies if job.is_terminal else job.copies_done
            for job in self.jobs
        )
        return int(done * 100 / total)

    # ---------------- thread entry ----------------

    def run(self):
        unsubscribe = self.orchestrator.subscribe(self.signals.job_changed.emit)
        try:
            self.jobs = self.orchestrator.submit(self.template, self.records, self.copies)
            if self._cancel_requested.is_set():
                self.orchestrator.cancel()
            last = -1
            for _ in self.orchestrator.iter_jobs(self.jobs):
                pct = self._batch_progress()
                if pct != last:
                    self.signals.progress.emit(pct)
                    last = pct
            if last != 100:
                self.signals.progress.emit(100)
        except Exception as e:
            log.exception("Batch print aborted")
            self.signals.error.emit(friendly_message(e))
        finally:
            unsubscribe()
            self.signals.finished.emit()

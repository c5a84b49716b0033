# label_designer/printing/orchestrator.py
"""
Sequential batch printing: one job per record, N copies per job.

Jobs run strictly in submission order. Every copy is rendered and sent on
its own; cancellation is checked between copies and between jobs, never in
the middle of a render. A failing copy fails its job only; the batch moves
on to the next record.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from ..core.errors import RenderFailure
from ..core.models import Template
from .backends import BaseBackend, DryRunBackend
from .exceptions import InvalidJobTransition, friendly_message
from .jobs import CANCELLED, COMPLETED, FAILED, PENDING, PRINTING, STATUSES, PrintJob

log = logging.getLogger(__name__)

RenderFn = Callable[[Template, Mapping[str, Any]], bytes]
Listener = Callable[[PrintJob], None]


def _default_render(template: Template, record: Mapping[str, Any]) -> bytes:
    from ..surfaces.export import render_template_to_pdf
    return render_template_to_pdf(template, record)


class PrintJobOrchestrator:
    """
    Runs print batches and reports every job change to its listeners.

    ``render`` turns (template, record) into the bytes of one copy (a PDF by
    default); ``backend`` receives each copy.
    """

    def __init__(self, render: Optional[RenderFn] = None, backend: Optional[BaseBackend] = None):
        self.render = render or _default_render
        self.backend = backend or DryRunBackend()
        self.jobs: List[PrintJob] = []
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()
        self._cancel = threading.Event()

    # ---------- observers ----------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, job: PrintJob) -> None:
        for listener in list(self._listeners):
            try:
                listener(job)
            except Exception:
                log.exception("Print job listener failed for %s", job.id)

    # ---------- state changes ----------

    def _move(self, job: PrintJob, status: str, error: Optional[str] = None) -> bool:
        """Transition *job* unless a cancel got there first."""
        with self._lock:
            if job.status == CANCELLED:
                return False
            job.transition(status, error)
        log.debug("Job %s -> %s", job.id, status)
        self._notify(job)
        return True

    def _progress(self, job: PrintJob, copy_no: int) -> None:
        with self._lock:
            if job.status != PRINTING:
                return
            job.copies_done = copy_no
            job.progress = copy_no / job.copies * 100.0
        self._notify(job)

    def _fail(self, job: PrintJob, exc: BaseException) -> None:
        failure = exc if isinstance(exc, RenderFailure) else RenderFailure(friendly_message(exc))
        if failure is not exc:
            failure.__cause__ = exc
        job.failure = failure
        if self._move(job, FAILED, friendly_message(failure)):
            log.warning("Job %s failed: %s", job.id, job.error)

    # ---------- submission ----------

    def submit(self, template: Template, records: Iterable[Optional[Mapping[str, Any]]], copies: int = 1) -> List[PrintJob]:
        """Create one pending job per record (in order) without running them."""
        if int(copies) < 1:
            raise ValueError(f"copies must be at least 1, got {copies!r}")
        jobs = [PrintJob.for_record(template, r, int(copies)) for r in records]
        with self._lock:
            self.jobs.extend(jobs)
        self._cancel.clear()
        for job in jobs:
            self._notify(job)
        return jobs

    def retry_job(self, job: PrintJob) -> PrintJob:
        """Re-submit a finished job as a new pending job (same template, record, copies)."""
        if not job.is_terminal:
            raise InvalidJobTransition(job.id, job.status, PENDING)
        new_job = PrintJob.for_record(job.template, job.record, job.copies)
        with self._lock:
            self.jobs.append(new_job)
        self._cancel.clear()
        self._notify(new_job)
        log.debug("Job %s retried as %s", job.id, new_job.id)
        return new_job

    # ---------- running ----------

    def iter_jobs(self, jobs: Iterable[PrintJob]) -> Iterator[PrintJob]:
        """
        Process pending *jobs* in order, yielding the current job after every
        state or progress change.
        """
        for job in jobs:
            if self._cancel.is_set():
                break
            if job.status != PENDING:
                continue
            if not self._move(job, PRINTING):
                continue
            yield job

            completed = True
            for copy_no in range(1, job.copies + 1):
                if self._cancel.is_set():
                    completed = False
                    break
                try:
                    data = self.render(job.template, job.record)
                    if self._cancel.is_set():
                        log.debug("Job %s cancelled during copy %d; output discarded", job.id, copy_no)
                        completed = False
                        break
                    self.backend.send(data, job_id=job.id, copy=copy_no)
                except Exception as e:
                    self._fail(job, e)
                    completed = False
                    break
                self._progress(job, copy_no)
                yield job

            if completed:
                self._move(job, COMPLETED)
            yield job

    def run_jobs(self, jobs: Iterable[PrintJob]) -> List[PrintJob]:
        jobs = list(jobs)
        for _ in self.iter_jobs(jobs):
            pass
        return jobs

    def iter_batch(self, template: Template, records: Iterable[Optional[Mapping[str, Any]]], copies: int = 1) -> Iterator[PrintJob]:
        """Submit a batch, then run it lazily; see ``iter_jobs``."""
        jobs = self.submit(template, records, copies)
        return self.iter_jobs(jobs)

    def run_batch(self, template: Template, records: Iterable[Optional[Mapping[str, Any]]], copies: int = 1) -> List[PrintJob]:
        """Run a whole batch synchronously and return its jobs."""
        jobs = self.submit(template, records, copies)
        log.info("Printing %d job(s) x %d copies of %s", len(jobs), copies, template.id)
        self.run_jobs(jobs)
        log.info("Batch done: %s", self.summary(jobs))
        return jobs

    def cancel(self) -> int:
        """
        Cancel every pending or printing job. Safe to call from another thread.

        Returns the number of jobs cancelled.
        """
        self._cancel.set()
        cancelled: List[PrintJob] = []
        with self._lock:
            for job in self.jobs:
                if job.status in (PENDING, PRINTING):
                    job.transition(CANCELLED)
                    cancelled.append(job)
        for job in cancelled:
            self._notify(job)
        if cancelled:
            log.info("Cancelled %d print job(s)", len(cancelled))
        return len(cancelled)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    # ---------- reporting ----------

    def summary(self, jobs: Optional[Iterable[PrintJob]] = None) -> Dict[str, int]:
        counts = {status: 0 for status in STATUSES}
        for job in (self.jobs if jobs is None else jobs):
            counts[job.status] += 1
        return counts

    def clear_finished(self) -> None:
        with self._lock:
            self.jobs = [j for j in self.jobs if not j.is_terminal]

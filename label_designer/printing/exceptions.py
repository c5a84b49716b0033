# label_designer/printing/exceptions.py
"""
Consistent error types for the batch print pipeline.

No Qt dependencies: this module is pure Python so it can be used
in non-GUI contexts (tests, headless batch runs, dry-run pipelines).
"""
from __future__ import annotations

from ..core.errors import LabelError, RenderFailure


class PrintError(Exception):
    """Base exception for all printing errors."""


class PrinterConfigError(PrintError):
    """Invalid or incomplete output backend configuration."""


class PrintJobError(PrintError):
    """Error during a print job (render, PDF export, writing output)."""


class InvalidJobTransition(PrintError):
    """A job status change that the job lifecycle does not allow."""

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(f"Job {job_id}: cannot go from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


# ---------------------------------------------------------------------------
# Error-mapping helpers
# ---------------------------------------------------------------------------

_OUTPUT_PATTERNS: list[tuple[type, str]] = [
    (PermissionError, "Permission denied writing label output."),
    (FileNotFoundError, "Output folder does not exist."),
    (IsADirectoryError, "Output path is a folder, not a file."),
    (OSError, "Could not write label output."),
]


def _chain(new: PrintError, cause: BaseException) -> PrintError:
    """Attach *cause* as ``__cause__`` (mimics ``raise new from cause``)."""
    new.__cause__ = cause
    return new


def map_exception(exc: BaseException) -> PrintError:
    """
    Wrap a low-level exception into the appropriate ``PrintError`` subclass
    with a user-friendly message while preserving the original as ``__cause__``.

    If *exc* is already a ``PrintError`` it is returned unchanged.
    """
    if isinstance(exc, PrintError):
        return exc

    # Label content problems are job-level, whatever their base classes say.
    if isinstance(exc, RenderFailure):
        where = f" (element {exc.element_id})" if exc.element_id else ""
        return _chain(PrintJobError(f"{exc}{where}"), exc)
    if isinstance(exc, LabelError):
        return _chain(PrintJobError(str(exc)), exc)

    for exc_type, message in _OUTPUT_PATTERNS:
        if isinstance(exc, exc_type):
            detail = getattr(exc, "filename", None)
            return _chain(PrintJobError(f"{message} {detail}" if detail else message), exc)

    text = str(exc).lower()
    if isinstance(exc, (ValueError, KeyError)):
        return _chain(PrinterConfigError(str(exc)), exc)
    if isinstance(exc, RuntimeError) and any(
        kw in text for kw in ("not installed", "missing", "requires", "unknown backend")
    ):
        return _chain(PrinterConfigError(str(exc)), exc)

    return _chain(PrintJobError(str(exc)), exc)


def friendly_message(exc: BaseException) -> str:
    """Return a short, UI-safe description for *exc*."""
    mapped = map_exception(exc)
    return str(mapped)

# label_designer/core/errors.py
"""
Error types for the template core (units, model, codes, rendering).

No Qt dependencies: this module is pure Python so it can be used from
tests, batch jobs and the editor alike.
"""
from __future__ import annotations

from typing import Optional


class LabelError(Exception):
    """Base exception for every error raised by the label core."""


class InvalidUnit(LabelError, ValueError):
    """Non-positive DPI or a unit name we do not know."""


class InvalidTemplate(LabelError, ValueError):
    """Template size or metadata that breaks the template invariants."""


class ElementNotFound(LabelError, KeyError):
    """An element id that is not part of the template."""

    def __init__(self, element_id: str):
        super().__init__(element_id)
        self.element_id = element_id

    def __str__(self) -> str:
        return f"No element with id {self.element_id!r}"


class InvalidElement(LabelError, ValueError):
    """An element patch or constructor call that would break template invariants."""


class BarcodeValidationError(LabelError, ValueError):
    """Raised when barcode data is invalid for the selected symbology."""


class InvalidChecksum(BarcodeValidationError):
    """EAN / UPC check digit does not match the payload."""

    def __init__(self, symbology: str, got: str, expected: str):
        super().__init__(
            f"Invalid {symbology} check digit: got {got}, expected {expected}."
        )
        self.symbology = symbology
        self.got = got
        self.expected = expected


class CapacityExceeded(BarcodeValidationError):
    """QR payload does not fit at the chosen error-correction level."""

    def __init__(self, length: int, ecc: str):
        super().__init__(
            f"QR payload of {length} bytes exceeds the capacity at ECC level {ecc}."
        )
        self.length = length
        self.ecc = ecc


class UnresolvedBinding(LabelError, LookupError):
    """
    A binding that could not be resolved against variables or the record.

    Only used inside the resolver: callers always receive the fallback or
    an empty string instead.
    """


class RenderFailure(LabelError):
    """Drawing one element (or a whole scene) failed."""

    def __init__(self, message: str, element_id: Optional[str] = None):
        super().__init__(message)
        self.element_id = element_id

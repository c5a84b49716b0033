from __future__ import annotations

"""
Barcode / QR generation for label elements.

Dependencies:
- Pillow          -> pip install pillow
- python-barcode  -> pip install python-barcode[images]
- qrcode          -> pip install qrcode[pil]

Every generator returns a RasterImage sized to the exact physical box it
was asked for at the requested DPI.
"""

import io
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Tuple

import barcode
import qrcode
from barcode.errors import BarcodeError
from barcode.writer import ImageWriter
from PIL import Image
from qrcode.exceptions import DataOverflowError

from .errors import BarcodeValidationError, CapacityExceeded, InvalidChecksum, InvalidUnit
from .units import MM, to_device_pixels

log = logging.getLogger(__name__)

_ECC = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}

# Symbologies whose check digit is mandatory: bad values are rejected.
CHECKSUM_SYMBOLOGIES = ("EAN13", "EAN8", "UPC")


@dataclass(frozen=True)
class RasterImage:
    """A Pillow image plus the DPI it was rendered for."""
    image: Image.Image
    dpi: int

    @property
    def width_px(self) -> int:
        return self.image.width

    @property
    def height_px(self) -> int:
        return self.image.height

    def to_png_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG", dpi=(self.dpi, self.dpi))
        return buffer.getvalue()


@dataclass(frozen=True)
class BarcodeValidation:
    """Inline validation result for the inspector."""
    ok: bool
    message: str = ""
    normalized: str = ""


# --- Cache ----------------------------------------------------------------

_CACHE: "OrderedDict[Tuple, RasterImage]" = OrderedDict()
_CACHE_MAX = 128
# Previews render on the GUI thread while batches render on a worker thread.
_CACHE_LOCK = threading.Lock()


def set_cache_size(size: int) -> None:
    global _CACHE_MAX
    with _CACHE_LOCK:
        _CACHE_MAX = max(0, int(size))
        while len(_CACHE) > _CACHE_MAX:
            _CACHE.popitem(last=False)


def clear_cache() -> None:
    with _CACHE_LOCK:
        _CACHE.clear()


def _cache_get(key: Tuple) -> Optional[RasterImage]:
    with _CACHE_LOCK:
        hit = _CACHE.get(key)
        if hit is not None:
            _CACHE.move_to_end(key)
        return hit


def _cache_put(key: Tuple, value: RasterImage) -> None:
    with _CACHE_LOCK:
        if _CACHE_MAX <= 0:
            return
        _CACHE[key] = value
        _CACHE.move_to_end(key)
        while len(_CACHE) > _CACHE_MAX:
            _CACHE.popitem(last=False)


# --- Checksums ------------------------------------------------------------


def _weighted_checksum(body: str) -> str:
    """
    GS1 mod-10: weights 3,1,3,1... from the rightmost body digit.
    Shared by EAN-13, EAN-8 and UPC-A.
    """
    total = 0
    for i, ch in enumerate(reversed(body)):
        total += int(ch) * (3 if i % 2 == 0 else 1)
    return str((10 - (total % 10)) % 10)


def ean13_checksum(data: str) -> str:
    """Check digit for the first 12 digits of `data`."""
    digits = "".join(ch for ch in data[:12] if ch.isdigit())
    if len(digits) != 12:
        raise ValueError("EAN-13 requires at least 12 digits for checksum")
    return _weighted_checksum(digits)


def ean8_checksum(data: str) -> str:
    digits = "".join(ch for ch in data[:7] if ch.isdigit())
    if len(digits) != 7:
        raise ValueError("EAN-8 requires at least 7 digits for checksum")
    return _weighted_checksum(digits)


def upca_checksum(data: str) -> str:
    digits = "".join(ch for ch in data[:11] if ch.isdigit())
    if len(digits) != 11:
        raise ValueError("UPC-A requires at least 11 digits for checksum")
    return _weighted_checksum(digits)


# --- Validation helpers ---------------------------------------------------


def _validate_code128(data: str) -> str:
    data = data or ""
    if not data:
        raise BarcodeValidationError("Code 128 data cannot be empty.")
    for ch in data:
        if ord(ch) < 32 or ord(ch) > 126:
            raise BarcodeValidationError(
                f"Code 128 only supports printable ASCII (32–126). Offending char: {repr(ch)}"
            )
    return data


def _validate_code39(data: str) -> str:
    data = (data or "").strip().upper()
    if not data:
        raise BarcodeValidationError("Code 39 data cannot be empty.")
    if "*" in data:
        raise BarcodeValidationError(
            "Do not include '*' in Code 39 data (it's reserved for start/stop)."
        )
    allowed = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ -.$/+%"
    for ch in data:
        if ch not in allowed:
            raise BarcodeValidationError(
                f"Code 39 does not allow {repr(ch)}. Allowed: A–Z, 0–9, space, - . $ / + %"
            )
    return data


def _validate_ean_family(name: str, symbology: str, data: str, body_len: int, checksum_fn) -> str:
    data = (data or "").strip()
    if not data:
        raise BarcodeValidationError(f"{name} data cannot be empty.")
    if not data.isdigit():
        raise BarcodeValidationError(f"{name} supports digits only.")
    if len(data) not in (body_len, body_len + 1):
        raise BarcodeValidationError(
            f"{name} must be {body_len} or {body_len + 1} digits long."
        )

    if len(data) == body_len:
        return data + checksum_fn(data)

    expected = checksum_fn(data[:-1])
    if data[-1] != expected:
        raise InvalidChecksum(name, data[-1], expected)
    return data


def _validate_gs1_128(data: str) -> str:
    """
    Light GS1 syntax check: ``(AI)value`` groups where AI is 2–4 digits,
    or raw data without parentheses.
    """
    data = data or ""
    if not data.strip():
        raise BarcodeValidationError("GS1 data cannot be empty.")
    if len(data) > 48:
        raise BarcodeValidationError("GS1-128 data too long (>48 characters).")
    if "(" not in data and ")" not in data:
        return data

    i = 0
    while i < len(data):
        ch = data[i]
        if ch == "(":
            j = i + 1
            while j < len(data) and data[j].isdigit():
                j += 1
            ai_len = j - i - 1
            if not (2 <= ai_len <= 4) or j >= len(data) or data[j] != ")":
                raise BarcodeValidationError(
                    "GS1 AI syntax looks invalid near position "
                    f"{i}. Expected '(AI)' where AI is 2–4 digits, e.g. (01), (17), (10)."
                )
            i = j
        elif ch == ")":
            raise BarcodeValidationError("Unbalanced ')' in GS1 data.")
        i += 1
    return data


def normalize_barcode_value(symbology: str, data: str) -> str:
    """
    Validate *data* for *symbology* and return the value to encode.

    EAN/UPC bodies without a check digit get one appended; a wrong check
    digit raises InvalidChecksum. Other problems raise BarcodeValidationError.
    """
    key = (symbology or "").strip().upper().replace("_", "-")
    if key == "CODE128":
        return _validate_code128(data)
    if key == "CODE39":
        return _validate_code39(data)
    if key == "EAN13":
        return _validate_ean_family("EAN-13", key, data, 12, ean13_checksum)
    if key == "EAN8":
        return _validate_ean_family("EAN-8", key, data, 7, ean8_checksum)
    if key in ("UPC", "UPCA", "UPC-A"):
        return _validate_ean_family("UPC-A", "UPC", data, 11, upca_checksum)
    if key in ("GS1-128", "GS1128"):
        return _validate_gs1_128(data)
    raise BarcodeValidationError(f"Unsupported symbology {symbology!r}.")


def validate_barcode_value(symbology: str, data: str) -> BarcodeValidation:
    """Never raises; for inline messages in the inspector."""
    try:
        normalized = normalize_barcode_value(symbology, data)
    except BarcodeValidationError as e:
        return BarcodeValidation(ok=False, message=str(e), normalized=data or "")
    return BarcodeValidation(ok=True, normalized=normalized)


def barcode_help_text(symbology: str) -> str:
    k = (symbology or "").upper()
    if k == "UPC":
        return "UPC-A: 11 or 12 digits; check digit is validated automatically."
    if k == "EAN13":
        return "EAN-13: 12 or 13 digits; check digit is validated automatically."
    if k == "EAN8":
        return "EAN-8: 7 or 8 digits; check digit is validated automatically."
    if k == "CODE39":
        return "Code 39: A–Z, 0–9, space, - . $ / + % (no * in data)."
    if k == "CODE128":
        return "Code 128: any printable ASCII text."
    if k == "GS1-128":
        return "GS1-128: use GS1 AIs like (01)…(17)…(10)…"
    return ""


# --- 1D (python-barcode) --------------------------------------------------

_PYBARCODE_NAMES = {
    "CODE128": "code128",
    "CODE39": "code39",
    "EAN13": "ean13",
    "EAN8": "ean8",
    "UPC": "upca",
    "GS1-128": "gs1_128",
}


def _make_code(symbology: str, value: str):
    cls = barcode.get_barcode_class(_PYBARCODE_NAMES[symbology])
    if symbology == "CODE39":
        return cls(value, writer=ImageWriter(), add_checksum=False)
    if symbology in ("EAN13", "EAN8", "UPC"):
        # The library appends the check digit itself; hand it the body only.
        return cls(value[:-1], writer=ImageWriter())
    if symbology == "GS1-128":
        return cls(value.replace("(", "").replace(")", ""), writer=ImageWriter())
    return cls(value, writer=ImageWriter())


def _mm_to_px(mm_value: float, dpi: int) -> int:
    return max(1, int(round(to_device_pixels(mm_value, MM, dpi))))


def generate_barcode(
    symbology: str,
    value: str,
    width_mm: float,
    height_mm: float,
    quiet_zone_mm: float = 2.0,
    display_value: bool = True,
    dpi: int = 300,
) -> RasterImage:
    """
    Render a linear barcode into a width_mm x height_mm raster at *dpi*.

    - EAN13 / EAN8 / UPC: invalid check digit -> InvalidChecksum, nothing encoded.
    - CODE128 / CODE39: validation problems are logged and the raw value is
      encoded anyway (see validate_barcode_value for the inline message).
    """
    if dpi <= 0:
        raise InvalidUnit(f"DPI must be positive, got {dpi!r}")
    if width_mm <= 0 or height_mm <= 0:
        raise BarcodeValidationError("Barcode size must be positive.")

    sym = (symbology or "").strip().upper()
    if sym not in _PYBARCODE_NAMES:
        raise BarcodeValidationError(f"Unsupported symbology {symbology!r}.")
    if not value:
        raise BarcodeValidationError("Barcode value cannot be empty.")

    if sym in CHECKSUM_SYMBOLOGIES or sym == "GS1-128":
        data = normalize_barcode_value(sym, value)
    else:
        check = validate_barcode_value(sym, value)
        if not check.ok:
            log.warning("Encoding %s value %r despite: %s", sym, value, check.message)
        data = check.normalized if check.ok else value

    key = ("1d", sym, data, width_mm, height_mm, quiet_zone_mm, bool(display_value), dpi)
    cached = _cache_get(key)
    if cached is not None:
        return cached

    try:
        code = _make_code(sym, data)
        modules = len(code.build()[0])
        bar_area_mm = max(width_mm - 2 * quiet_zone_mm, width_mm * 0.5)
        text_mm = height_mm * 0.25 if display_value else 0.0
        options = {
            "module_width": max(bar_area_mm / max(modules, 1), 0.01),
            "module_height": max(height_mm - text_mm, 1.0),
            "quiet_zone": quiet_zone_mm,
            "write_text": bool(display_value),
            "font_size": max(4, int(text_mm * 72 / 25.4 * 0.6)),
            "text_distance": text_mm * 0.15,
            "dpi": dpi,
        }
        pil_img = code.render(options)
    except BarcodeError as e:
        raise BarcodeValidationError(f"{sym} cannot encode {value!r}: {e}") from e

    target = (_mm_to_px(width_mm, dpi), _mm_to_px(height_mm, dpi))
    pil_img = pil_img.convert("RGB")
    if pil_img.size != target:
        pil_img = pil_img.resize(target, Image.Resampling.NEAREST)

    result = RasterImage(image=pil_img, dpi=dpi)
    _cache_put(key, result)
    return result


# --- QR (qrcode) ----------------------------------------------------------


def generate_qr(
    value: str,
    size_mm: float,
    margin_mm: float = 1.0,
    ecc: str = "M",
    dpi: int = 300,
) -> RasterImage:
    """
    Render a square QR code of size_mm at *dpi* with a white margin.

    Payloads beyond the largest QR version at *ecc* raise CapacityExceeded.
    """
    if dpi <= 0:
        raise InvalidUnit(f"DPI must be positive, got {dpi!r}")
    if size_mm <= 0:
        raise BarcodeValidationError("QR size must be positive.")
    data = value or ""
    if not data:
        raise BarcodeValidationError("QR Code data cannot be empty.")
    level = (ecc or "M").upper()
    if level not in _ECC:
        raise BarcodeValidationError(f"Unknown QR error correction level {ecc!r}.")

    key = ("qr", data, size_mm, margin_mm, level, dpi)
    cached = _cache_get(key)
    if cached is not None:
        return cached

    qr = qrcode.QRCode(
        version=None,
        error_correction=_ECC[level],
        box_size=1,
        border=0,
    )
    qr.add_data(data)
    try:
        qr.make(fit=True)
    except DataOverflowError as e:
        raise CapacityExceeded(len(data.encode("utf-8")), level) from e

    side = _mm_to_px(size_mm, dpi)
    margin = int(round(to_device_pixels(max(margin_mm, 0.0), MM, dpi)))
    inner = max(side - 2 * margin, qr.modules_count)

    matrix = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    matrix = matrix.resize((inner, inner), Image.Resampling.NEAREST)

    canvas = Image.new("RGB", (inner + 2 * margin, inner + 2 * margin), "white")
    canvas.paste(matrix, (margin, margin))
    if canvas.size != (side, side):
        canvas = canvas.resize((side, side), Image.Resampling.NEAREST)

    log.debug("QR v%s (%s) %d bytes -> %dpx", qr.version, level, len(data), side)
    result = RasterImage(image=canvas, dpi=dpi)
    _cache_put(key, result)
    return result

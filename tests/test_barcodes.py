"""
Tests for barcode / QR generation and validation.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from label_designer.core import barcodes
from label_designer.core.barcodes import (
    barcode_help_text,
    ean8_checksum,
    ean13_checksum,
    generate_barcode,
    generate_qr,
    normalize_barcode_value,
    upca_checksum,
    validate_barcode_value,
)
from label_designer.core.errors import (
    BarcodeValidationError,
    CapacityExceeded,
    InvalidChecksum,
    InvalidUnit,
)

VALID_EAN13 = ["4006381333931", "5901234123457", "9780306406157", "0012345678905"]


def _mutate(code: str, index: int) -> str:
    digit = (int(code[index]) + 1) % 10
    return code[:index] + str(digit) + code[index + 1:]


class TestChecksums:
    def test_ean13(self):
        assert ean13_checksum("400638133393") == "1"

    def test_ean8(self):
        assert ean8_checksum("9638507") == "4"

    def test_upca(self):
        assert upca_checksum("03600029145") == "2"

    def test_body_gets_check_digit(self):
        assert normalize_barcode_value("EAN13", "400638133393") == "4006381333931"

    def test_wrong_check_digit(self):
        with pytest.raises(InvalidChecksum) as info:
            normalize_barcode_value("UPC", "036000291453")
        assert info.value.expected == "2"


class TestGenerateBarcode:
    @pytest.mark.parametrize("code", VALID_EAN13)
    def test_valid_ean13(self, code):
        img = generate_barcode("EAN13", code, width_mm=40, height_mm=15, dpi=300)
        assert img.width_px == round(40 * 300 / 25.4)
        assert img.height_px == round(15 * 300 / 25.4)

    @pytest.mark.parametrize("code", VALID_EAN13)
    @pytest.mark.parametrize("index", [0, 5, 12])
    def test_mutated_ean13_is_rejected(self, code, index):
        """Any single changed digit breaks the check digit."""
        with pytest.raises(InvalidChecksum):
            generate_barcode("EAN13", _mutate(code, index), width_mm=40, height_mm=15)

    def test_ean8_and_upc(self):
        generate_barcode("EAN8", "96385074", width_mm=25, height_mm=10, dpi=203)
        generate_barcode("UPC", "036000291452", width_mm=35, height_mm=15, dpi=203)

    def test_code128_ascii(self):
        img = generate_barcode("CODE128", "S-2024-0042", width_mm=30, height_mm=10, display_value=False)
        assert img.image.mode == "RGB"

    def test_code39_lowercase_is_encoded(self):
        """Code 39 problems are reported inline but generation still happens."""
        check = validate_barcode_value("CODE39", "abc-1")
        assert check.ok and check.normalized == "ABC-1"
        generate_barcode("CODE39", "abc-1", width_mm=40, height_mm=10)

    def test_gs1_128_with_ais(self):
        generate_barcode("GS1-128", "(01)09501101530003(10)ABC123", width_mm=60, height_mm=15)

    def test_empty_value(self):
        with pytest.raises(BarcodeValidationError):
            generate_barcode("CODE128", "", width_mm=30, height_mm=10)

    def test_bad_dpi(self):
        with pytest.raises(InvalidUnit):
            generate_barcode("CODE128", "x", width_mm=30, height_mm=10, dpi=0)

    def test_cache_hits(self):
        a = generate_barcode("CODE128", "cached", width_mm=30, height_mm=10)
        b = generate_barcode("CODE128", "cached", width_mm=30, height_mm=10)
        assert a is b

    def test_cache_is_bounded(self):
        barcodes.set_cache_size(2)
        try:
            for i in range(5):
                generate_barcode("CODE128", f"v{i}", width_mm=30, height_mm=10)
            assert len(barcodes._CACHE) == 2
        finally:
            barcodes.set_cache_size(128)

    def test_cache_shared_between_threads(self):
        """Hits and evictions from several threads never corrupt the cache."""
        barcodes.set_cache_size(2)

        def work(i):
            value = f"t{i % 4}"
            img = generate_barcode("CODE128", value, width_mm=20, height_mm=8)
            qr = generate_qr(value, size_mm=8)
            return img.width_px, qr.width_px

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(work, range(40)))

        assert len(set(results)) == 1
        assert len(barcodes._CACHE) <= 2

    def test_png_bytes(self):
        data = generate_barcode("CODE128", "png", width_mm=30, height_mm=10).to_png_bytes()
        assert data[:8] == b"\x89PNG\r\n\x1a\n"


class TestValidation:
    def test_code128_rejects_control_chars(self):
        check = validate_barcode_value("CODE128", "bad\x01")
        assert not check.ok
        assert "Code 128" in check.message

    def test_ean_message(self):
        check = validate_barcode_value("EAN13", "4006381333932")
        assert not check.ok
        assert "check digit" in check.message

    def test_gs1_bad_ai(self):
        assert not validate_barcode_value("GS1-128", "(1)123").ok

    def test_help_text(self):
        assert "EAN-13" in barcode_help_text("EAN13")
        assert barcode_help_text("QR") == ""


class TestGenerateQR:
    def test_size(self):
        img = generate_qr("https://lab.example/s/42", size_mm=20, margin_mm=1, ecc="M", dpi=300)
        side = round(20 * 300 / 25.4)
        assert (img.width_px, img.height_px) == (side, side)

    def test_margin_is_white(self):
        img = generate_qr("margin", size_mm=20, margin_mm=2, dpi=300)
        assert img.image.getpixel((0, 0)) == (255, 255, 255)

    def test_empty(self):
        with pytest.raises(BarcodeValidationError):
            generate_qr("", size_mm=20)

    def test_whitespace_is_valid_data(self):
        img = generate_qr(" ", size_mm=10)
        assert img.width_px == round(10 * 300 / 25.4)

    def test_capacity_exceeded(self):
        """Too much data is an error, never silently truncated."""
        with pytest.raises(CapacityExceeded) as info:
            generate_qr("x" * 3000, size_mm=40, ecc="L")
        assert info.value.ecc == "L"

    def test_capacity_depends_on_ecc(self):
        payload = "x" * 1500
        generate_qr(payload, size_mm=60, ecc="L")
        with pytest.raises(CapacityExceeded):
            generate_qr(payload, size_mm=60, ecc="H")

    def test_unknown_ecc(self):
        with pytest.raises(BarcodeValidationError):
            generate_qr("x", size_mm=10, ecc="Z")

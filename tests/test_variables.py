"""
Tests for binding resolution and the format language.
"""
from __future__ import annotations

from datetime import date

import pytest

from label_designer.core.models import DataBinding, TextElement, VarDef
from label_designer.core.variables import (
    apply_format,
    is_valid_format,
    lookup_path,
    resolve,
    resolve_element_value,
    resolve_text,
    scan_placeholders,
    stringify,
)
from label_designer.core.errors import UnresolvedBinding


VARS = [
    VarDef(key="code", source="record-field", field_path="sample.code"),
    VarDef(key="lot", source="record-field", field_path="sample.lot", sample_value="LOT-PREVIEW"),
    VarDef(key="site", source="manual", sample_value="North Lab"),
    VarDef(key="received", source="record-field", field_path="sample.received", format="date:dd/MM/yyyy"),
]

RECORD = {
    "sample": {
        "code": "s-001",
        "received": "2024-03-05T10:20:00Z",
        "weight": 12.0,
        "tests": [{"name": "pH"}, {"name": "Brix"}],
    }
}


class TestResolve:
    def test_literal_without_binding(self):
        assert resolve("Hello", VARS, RECORD) == "Hello"

    def test_manual_variable(self):
        assert resolve(DataBinding(field="site"), VARS, RECORD) == "North Lab"

    def test_record_field_variable(self):
        assert resolve(DataBinding(field="code"), VARS, RECORD) == "s-001"

    def test_record_field_falls_back_to_sample_value(self):
        assert resolve(DataBinding(field="lot"), VARS, RECORD) == "LOT-PREVIEW"

    def test_unknown_key_uses_binding_fallback(self):
        assert resolve(DataBinding(field="nope", fallback="?"), VARS, RECORD) == "?"

    def test_unknown_key_without_fallback_is_empty(self):
        assert resolve(DataBinding(field="nope"), VARS, RECORD) == ""

    def test_missing_field_with_upper_keeps_fallback_unchanged(self):
        """Format is applied to record values only, never to the fallback."""
        binding = DataBinding(field="{{sample.missing}}", format="upper", fallback="N/A")
        assert resolve(binding, VARS, RECORD) == "N/A"

        var_binding = DataBinding(field="code", format="upper", fallback="n/a")
        assert resolve(var_binding, VARS, {"sample": {}}) == "n/a"

    def test_sample_value_is_formatted(self):
        """A sample value stands in for the record value, so the format applies."""
        assert resolve(DataBinding(field="lot", format="lower"), VARS, RECORD) == "lot-preview"
        assert resolve(DataBinding(field="site", format="upper"), VARS, RECORD) == "NORTH LAB"

    def test_binding_format_applies_to_value(self):
        assert resolve(DataBinding(field="code", format="upper"), VARS, RECORD) == "S-001"

    def test_variable_format(self):
        assert resolve(DataBinding(field="received"), VARS, RECORD) == "05/03/2024"

    def test_record_path_placeholder(self):
        assert resolve("{{sample.tests.1.name}}", VARS, RECORD) == "Brix"

    def test_placeholder_inline_fallback(self):
        assert resolve("{{sample.nothing|none}}", VARS, RECORD) == "none"

    def test_none_record_never_raises(self):
        assert resolve(DataBinding(field="code", fallback="-"), VARS, None) == "-"

    def test_numbers_are_stringified_before_format(self):
        assert resolve("{{sample.weight}}", VARS, RECORD) == "12"


class TestFormats:
    def test_identity_upper_lower(self):
        assert apply_format("aBc", None) == "aBc"
        assert apply_format("aBc", "identity") == "aBc"
        assert apply_format("aBc", "upper") == "ABC"
        assert apply_format("aBc", "lower") == "abc"

    def test_date_pattern(self):
        assert apply_format("2024-12-31", "date:yyyy.MM.dd") == "2024.12.31"

    def test_date_parse_failure_returns_raw(self):
        assert apply_format("not a date", "date:yyyy") == "not a date"

    def test_epoch_seconds(self):
        assert apply_format("0", "date:yyyy-MM-dd HH:mm:ss") == "1970-01-01 00:00:00"

    def test_unknown_format_leaves_value(self):
        assert apply_format("abc", "title") == "abc"

    def test_is_valid_format(self):
        assert is_valid_format("upper")
        assert is_valid_format("date:yyyy")
        assert not is_valid_format("date:")
        assert not is_valid_format("shout")


class TestHelpers:
    def test_stringify(self):
        assert stringify(None) == ""
        assert stringify(True) == "true"
        assert stringify(3.5) == "3.5"
        assert stringify(4.0) == "4"
        assert stringify(date(2024, 1, 2)) == "2024-01-02"

    def test_lookup_path_missing(self):
        with pytest.raises(UnresolvedBinding):
            lookup_path(RECORD, "sample.tests.9.name")

    def test_resolve_text_mixes_literals_and_tokens(self):
        text = "{{site}} / {{code}} / {{sample.nope|-}}"
        assert resolve_text(text, VARS, RECORD) == "North Lab / s-001 / -"

    def test_resolve_element_value_prefers_binding(self):
        e = TextElement(id="t", content="literal", data_binding=DataBinding(field="site"))
        assert resolve_element_value(e, VARS, RECORD) == "North Lab"

    def test_scan_placeholders(self, sample_template):
        assert scan_placeholders(sample_template) == {"lab", "sample.name", "sample_code", "sample.url"}

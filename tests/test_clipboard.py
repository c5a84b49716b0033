"""
Tests for copy / cut / paste.
"""
from __future__ import annotations

import pytest

from label_designer.config import EditorSettings, set_current_settings
from label_designer.core.clipboard import ClipboardManager
from label_designer.core.template_ops import insert_elements, remove_elements


def _copy_title_and_qr(clip, template):
    elements = [template.find_element("title"), template.find_element("qr")]
    clip.copy(elements, source_template_id=template.id, unit=template.unit, dpi=template.dpi)
    return elements


class TestPaste:
    def test_empty_clipboard(self, allocator):
        clip = ClipboardManager(allocator)
        assert clip.paste() is None
        assert not clip.has_content()

    def test_two_pastes_get_disjoint_ids_and_growing_offset(self, sample_template, allocator):
        clip = ClipboardManager(allocator)
        originals = _copy_title_and_qr(clip, sample_template)

        first = clip.paste(offset_x=2, offset_y=2, target=sample_template)
        second = clip.paste(offset_x=2, offset_y=2, target=sample_template)

        original_ids = {e.id for e in originals}
        first_ids = {e.id for e in first}
        second_ids = {e.id for e in second}
        assert not (first_ids & second_ids)
        assert not (first_ids & original_ids)
        assert not (second_ids & original_ids)

        for orig, a, b in zip(originals, first, second):
            assert a.x == pytest.approx(orig.x + 2)
            assert b.x == pytest.approx(orig.x + 4)
            assert b.y == pytest.approx(orig.y + 4)

    def test_paste_does_not_touch_clipboard_elements(self, sample_template, allocator):
        clip = ClipboardManager(allocator)
        _copy_title_and_qr(clip, sample_template)
        clip.paste(target=sample_template)
        assert clip.payload.elements[0].id == "title"
        assert clip.payload.elements[0].x == 2

    def test_default_offset_from_settings(self, sample_template, allocator):
        set_current_settings(EditorSettings(paste_offset=5.0))
        clip = ClipboardManager(allocator)
        _copy_title_and_qr(clip, sample_template)
        pasted = clip.paste()
        assert pasted[0].x == pytest.approx(7)

    def test_pasted_elements_stack_on_top(self, sample_template, allocator):
        clip = ClipboardManager(allocator)
        _copy_title_and_qr(clip, sample_template)
        pasted = clip.paste(target=sample_template)
        assert [e.z_index for e in pasted] == [4, 5]
        merged = insert_elements(sample_template, pasted)
        assert len(merged.elements) == 6

    def test_paste_into_inch_template(self, sample_template, allocator):
        from label_designer.core.template_ops import resize_template

        clip = ClipboardManager(allocator)
        _copy_title_and_qr(clip, sample_template)
        inch = resize_template(sample_template, unit="in")
        pasted = clip.paste(offset_x=0.1, offset_y=0.1, target=inch)
        assert pasted[0].x == pytest.approx(2 / 25.4 + 0.1)
        assert pasted[0].w == pytest.approx(46 / 25.4)

    def test_keep_ids(self, sample_template, allocator):
        clip = ClipboardManager(allocator)
        _copy_title_and_qr(clip, sample_template)
        pasted = clip.paste(duplicate_ids=False)
        assert [e.id for e in pasted] == ["title", "qr"]


class TestCutAndInterchange:
    def test_cut_returns_ids_to_remove(self, sample_template, allocator):
        clip = ClipboardManager(allocator)
        ids = clip.cut([sample_template.find_element("code")], sample_template.id)
        assert ids == ["code"]
        assert clip.payload.mode == "cut"
        t = remove_elements(sample_template, ids)
        pasted = clip.paste(target=t)
        assert pasted[0].id != "code"

    def test_new_copy_resets_paste_count(self, sample_template, allocator):
        clip = ClipboardManager(allocator)
        _copy_title_and_qr(clip, sample_template)
        clip.paste()
        clip.paste()
        _copy_title_and_qr(clip, sample_template)
        assert clip.paste_count == 0

    def test_json_round_trip(self, sample_template, allocator):
        clip = ClipboardManager(allocator)
        _copy_title_and_qr(clip, sample_template)
        raw = clip.to_json()

        other = ClipboardManager(allocator)
        assert other.from_json(raw)
        assert [e.id for e in other.payload.elements] == ["title", "qr"]

    def test_from_json_rejects_junk(self, allocator):
        clip = ClipboardManager(allocator)
        assert not clip.from_json("not json")
        assert not clip.from_json('{"elements": 3}')
        assert not clip.has_content()

    def test_listeners(self, sample_template, allocator):
        clip = ClipboardManager(allocator)
        seen = []
        clip.subscribe(seen.append)
        _copy_title_and_qr(clip, sample_template)
        clip.clear()
        assert seen[0] is not None
        assert seen[-1] is None

"""
Tests for multi-selection and groups.
"""
from __future__ import annotations

import copy

import pytest

from label_designer.core.selection import SelectionManager
from label_designer.core.template_ops import remove_element


class TestSelection:
    def test_select_toggle_add_remove(self):
        sel = SelectionManager()
        sel.select("a")
        sel.toggle("b")
        assert sel.selected_ids == {"a", "b"}
        assert sel.primary == "b"
        sel.toggle("a")
        assert sel.selected_ids == {"b"}
        sel.add("c")
        sel.remove("b")
        assert sel.selected_ids == {"c"}
        assert not sel.is_multi()

    def test_select_all_and_invert(self, sample_template):
        sel = SelectionManager()
        sel.select("qr")
        sel.invert(sample_template)
        assert sel.selected_ids == {"border", "title", "code"}
        sel.select_all(sample_template)
        assert len(sel) == 4

    def test_listeners_get_the_full_set(self):
        sel = SelectionManager()
        seen = []
        sel.subscribe(seen.append)
        sel.select("a")
        sel.add("b")
        sel.clear()
        assert seen == [frozenset({"a"}), frozenset({"a", "b"}), frozenset()]

    def test_prune_after_delete(self, sample_template):
        sel = SelectionManager()
        sel.select_many(["qr", "code", "title"])
        sel.create_group()
        t = remove_element(remove_element(sample_template, "qr"), "code")
        sel.prune(t)
        assert sel.selected_ids == {"title"}
        assert sel.groups == ()

    def test_bounds(self, sample_template):
        sel = SelectionManager()
        assert sel.selection_bounds(sample_template) is None
        sel.select_many(["code", "qr"])
        b = sel.selection_bounds(sample_template)
        assert (b.left, b.top, b.right, b.bottom) == pytest.approx((2, 10, 48, 24))


class TestGroups:
    def test_group_needs_two(self):
        sel = SelectionManager()
        sel.select("a")
        assert sel.create_group() is None

    def test_create_and_select_group(self):
        sel = SelectionManager()
        sel.select_many(["a", "b"])
        group = sel.create_group("Header")
        sel.clear()
        assert sel.select_group(group.id)
        assert sel.selected_ids == {"a", "b"}
        assert sel.active_group_id == group.id
        assert sel.groups_for_element("a") == [group]

    def test_ungroup_leaves_elements_unchanged(self, sample_template):
        """Ungrouping only drops the membership record."""
        before = copy.deepcopy(sample_template)
        sel = SelectionManager()
        sel.select_many(["title", "code"])
        group = sel.create_group()

        assert sel.ungroup_group(group.id)
        assert sel.groups == ()
        assert sel.active_group_id is None
        assert sample_template == before
        assert sel.selected_ids == {"title", "code"}

    def test_ungroup_unknown(self):
        assert not SelectionManager().ungroup_group("nope")

    def test_add_and_remove_members(self):
        sel = SelectionManager()
        sel.select_many(["a", "b"])
        group = sel.create_group()
        sel.add_to_group(group.id, ["c", "a"])
        assert sel.get_group(group.id).element_ids == ("a", "b", "c")
        sel.remove_from_group(group.id, ["b"])
        assert sel.get_group(group.id).element_ids == ("a", "c")

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.utils.merge_utils import deep_merge, diff_fields


def test_diff_fields_returns_only_changed_leaves():
    old = {"diary": "", "weights": {"morning": None, "evening": {"value": 60.0, "note": ""}}}
    new = {"diary": "", "weights": {"morning": {"value": 65.2}, "evening": {"value": 60.0, "note": "x"}}}

    assert diff_fields(old, new) == {
        "weights": {"morning": {"value": 65.2}, "evening": {"note": "x"}}
    }


def test_diff_fields_treats_lists_atomically():
    old = {"meals": {"lunch": {"menus": ["a", "", ""], "photos": [None, None]}}}
    new = {"meals": {"lunch": {"menus": ["a", "b", ""], "photos": [None, None]}}}

    assert diff_fields(old, new) == {"meals": {"lunch": {"menus": ["a", "b", ""]}}}


def test_diff_fields_of_equal_values_is_empty():
    value = {"a": {"b": [1, 2]}, "c": 1}
    assert diff_fields(value, dict(value)) == {}


def test_deep_merge_keeps_untouched_fields_and_inputs():
    base = {"diary": "synced elsewhere", "weights": {"morning": {"value": 60.0, "note": "n"}}}
    patch = {"weights": {"morning": {"value": 61.0}}}

    merged = deep_merge(base, patch)

    assert merged == {"diary": "synced elsewhere", "weights": {"morning": {"value": 61.0, "note": "n"}}}
    assert base["weights"]["morning"]["value"] == 60.0
    assert deep_merge(merged, patch) == merged


def test_deep_merge_replaces_null_slot_with_map():
    assert deep_merge({"weights": {"other": None}}, {"weights": {"other": {"value": 1}}}) == {
        "weights": {"other": {"value": 1}}
    }

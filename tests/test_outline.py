"""Tests for markdown list outline helpers."""

from tasksync.documents.outline import build_outline, indent_unit, indent_width, subtree_end


def test_nesting_follows_indentation():
    lines = ["- a", "  - b", "    - c", "  - d", "- e"]
    assert build_outline(lines) == {0: None, 1: 0, 2: 1, 3: 0, 4: None}


def test_unindented_text_ends_the_list():
    lines = ["- a", "Paragraph", "  - b"]
    assert build_outline(lines) == {0: None, 2: None}


def test_blank_lines_and_indented_text_do_not_break_nesting():
    lines = ["- a", "", "  continuation", "  - b"]
    assert build_outline(lines)[3] == 0


def test_tabs_count_as_four_columns():
    assert indent_width("\t  - x") == 6
    assert build_outline(["- a", "\t- b", "    - c"]) == {0: None, 1: 0, 2: 0}


def test_subtree_end_includes_nested_lines_only():
    lines = ["- a", "  - b", "", "    - c", "- d", ""]
    assert subtree_end(lines, 0) == 4
    assert subtree_end(lines, 1) == 4
    assert subtree_end(lines, 4) == 5


def test_indent_unit_detection():
    assert indent_unit(["- a", "    - b"]) == "    "
    assert indent_unit(["- a", "\t- b"]) == "\t"
    assert indent_unit(["- a", "- b"]) == "\t"

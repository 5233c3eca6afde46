"""Structural outline of markdown list items.

Nesting is derived from list-item indentation the way markdown renders it:
an item's parent is the nearest preceding list item with a smaller indent.
A non-indented line that is not a list item ends the list.
"""

import re

LIST_ITEM = re.compile(r"^(\s*)[-*+]\s")
TAB_WIDTH = 4


def indent_width(line: str) -> int:
    """Visual width of the leading whitespace, tabs counted as TAB_WIDTH."""
    width = 0
    for char in line:
        if char == "\t":
            width += TAB_WIDTH
        elif char == " ":
            width += 1
        else:
            break
    return width


def is_list_item(line: str) -> bool:
    return LIST_ITEM.match(line) is not None


def build_outline(lines: list[str]) -> dict[int, int | None]:
    """Map each list-item line index to its parent list-item line index (None = top level)."""
    outline: dict[int, int | None] = {}
    stack: list[tuple[int, int]] = []

    for index, line in enumerate(lines):
        if not line.strip():
            continue
        width = indent_width(line)
        if not is_list_item(line):
            if width == 0:
                stack.clear()
            continue

        while stack and stack[-1][0] >= width:
            stack.pop()
        outline[index] = stack[-1][1] if stack else None
        stack.append((width, index))

    return outline


def subtree_end(lines: list[str], index: int) -> int:
    """Index one past the last line nested under ``lines[index]``.

    Nested lines are the following non-blank lines indented deeper than the
    item; blank lines inside the block belong to it, trailing ones do not.
    """
    width = indent_width(lines[index])
    end = index + 1
    cursor = index + 1
    while cursor < len(lines):
        line = lines[cursor]
        if line.strip():
            if indent_width(line) <= width:
                break
            end = cursor + 1
        cursor += 1
    return end


def indent_unit(lines: list[str]) -> str:
    """Indentation step used by the document: the first nested list item's prefix, else a tab."""
    for line in lines:
        if is_list_item(line) and line[0] in " \t":
            prefix = line[: len(line) - len(line.lstrip())]
            return "\t" if "\t" in prefix else prefix
    return "\t"

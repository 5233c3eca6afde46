"""Planning of remote-won changes onto a document's lines."""

import structlog
from pydantic import BaseModel, Field

from tasksync.documents.outline import build_outline, indent_unit, indent_width, subtree_end
from tasksync.documents.task_line import TaskLineCodec
from tasksync.models.task import TaskFields

log = structlog.stdlib.get_logger()


class LineUpdate(BaseModel):
    """Remote-won state for one task line."""

    task_id: str
    fields: TaskFields | None = Field(default=None, description="New field values, None keeps the text")
    reparent: bool = Field(default=False, description="Move the line under parent_id")
    parent_id: str | None = Field(default=None, description="Target parent, None = root")
    depth: int = Field(default=0, ge=0, description="Target depth, shallow updates are applied first")


class WritebackPlan:
    """Rewrites, moves and removes task lines.

    Used as the mutation passed to ``DocumentSource.write``, so it operates
    on whatever the document holds at write time. After ``apply`` the ids
    that were found are in ``applied`` and the rest in ``missing``.
    """

    def __init__(self, codec: TaskLineCodec, updates: list[LineUpdate], deletions: list[str]):
        self._codec = codec
        self._updates = sorted(updates, key=lambda u: u.depth)
        self._deletions = list(deletions)
        self.applied: set[str] = set()
        self.missing: set[str] = set()

    def __call__(self, lines: list[str]) -> list[str]:
        return self.apply(lines)

    def apply(self, lines: list[str]) -> list[str]:
        self.applied = set()
        self.missing = set()
        lines = list(lines)

        for task_id in self._deletions:
            index = self._find(lines, task_id)
            if index is None:
                self.missing.add(task_id)
                continue
            del lines[index]
            self.applied.add(task_id)

        for update in self._updates:
            index = self._find(lines, update.task_id)
            if index is None:
                log.warning("task_line_not_found_for_update", task_id=update.task_id)
                self.missing.add(update.task_id)
                continue

            if update.fields is not None:
                indent, _ = self._codec.split_indent(lines[index])
                lines[index] = indent + self._codec.build(update.fields, update.task_id)

            if update.reparent and self._structural_parent(lines, index) != update.parent_id:
                lines = self._move(lines, index, update.parent_id)
            self.applied.add(update.task_id)

        return lines

    def _find(self, lines: list[str], task_id: str) -> int | None:
        for index, line in enumerate(lines):
            if self._codec.extract_id(line) == task_id:
                return index
        return None

    def _structural_parent(self, lines: list[str], index: int) -> str | None:
        parent_index = build_outline(lines).get(index)
        if parent_index is None or not self._codec.is_task(lines[parent_index]):
            return None
        return self._codec.extract_id(lines[parent_index])

    def _move(self, lines: list[str], index: int, parent_id: str | None) -> list[str]:
        """Move the line and everything nested under it below ``parent_id``."""
        unit = indent_unit(lines)
        end = subtree_end(lines, index)
        block = lines[index:end]
        rest = lines[:index] + lines[end:]

        parent_index = self._find(rest, parent_id) if parent_id is not None else None
        if parent_id is not None and parent_index is None:
            log.warning("move_target_parent_not_found", parent_id=parent_id)

        if parent_index is not None:
            new_base, _ = self._codec.split_indent(rest[parent_index])
            new_base += unit
            insert_at = subtree_end(rest, parent_index)
        else:
            new_base = ""
            insert_at = self._root_insertion_point(rest)

        old_base, _ = self._codec.split_indent(block[0])
        moved = [self._reindent(line, old_base, new_base) for line in block]
        return rest[:insert_at] + moved + rest[insert_at:]

    def _root_insertion_point(self, lines: list[str]) -> int:
        outline = build_outline(lines)
        roots = [i for i, parent in outline.items() if parent is None and self._codec.is_task(lines[i])]
        if roots:
            return subtree_end(lines, roots[-1])
        end = len(lines)
        while end > 0 and not lines[end - 1].strip():
            end -= 1
        return end

    @staticmethod
    def _reindent(line: str, old_base: str, new_base: str) -> str:
        if not line.strip():
            return line
        if line.startswith(old_base):
            return new_base + line[len(old_base) :]
        # Mixed indentation: keep the depth difference measured in columns
        extra = max(indent_width(line) - indent_width(old_base), 0)
        return new_base + " " * extra + line.lstrip()

"""In-memory authoritative task record set."""

from typing import Iterable

import structlog

from tasksync.models.task import TaskRecord

log = structlog.stdlib.get_logger()


class TaskStore:
    """Task records keyed by remote id.

    Pure data access: nothing here touches the network or the disk. The whole
    map is persisted as one unit by :class:`tasksync.storage.state_file.StateFile`.
    """

    def __init__(self, records: Iterable[TaskRecord] = ()):
        self._records: dict[str, TaskRecord] = {}
        for record in records:
            self.upsert(record)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._records

    def get(self, task_id: str) -> TaskRecord | None:
        return self._records.get(task_id)

    def upsert(self, record: TaskRecord) -> None:
        self._records[record.id] = record

    def delete(self, task_id: str) -> None:
        if self._records.pop(task_id, None) is not None:
            log.debug("task_record_deleted", task_id=task_id)

    def by_document(self, document_path: str) -> list[TaskRecord]:
        return [r for r in self._records.values() if r.document_path == document_path]

    def with_pending_changes(self) -> list[TaskRecord]:
        return [r for r in self._records.values() if r.pending_changes]

    def clear_pending_changes(self, task_id: str) -> None:
        record = self._records.get(task_id)
        if record is not None:
            record.pending_changes = []

    def records(self) -> list[TaskRecord]:
        return list(self._records.values())

    def depth_of(self, task_id: str, max_depth: int) -> int:
        """Depth of a task in the stored parent chain (0 = root).

        Walks parent links iteratively. A cycle, a link to an unknown record or
        a chain longer than ``max_depth`` stops the walk at the depth reached.
        """
        depth = 0
        visited = {task_id}
        record = self._records.get(task_id)
        while record is not None and record.parent_id is not None and depth < max_depth:
            if record.parent_id in visited:
                log.warning("parent_cycle_in_store", task_id=task_id, parent_id=record.parent_id)
                break
            visited.add(record.parent_id)
            depth += 1
            record = self._records.get(record.parent_id)
        return depth

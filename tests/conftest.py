"""Shared fixtures: in-memory documents and an in-memory remote task service."""

from typing import Any, Sequence

import pytest

from tasksync.documents.source import DocumentError
from tasksync.models.config import SyncConfig
from tasksync.models.remote import (
    CommandResult,
    CreateResult,
    PullResult,
    RemoteTask,
    TaskCreate,
    TaskMove,
    TaskUpdate,
)
from tasksync.models.state import FULL_SYNC_CURSOR
from tasksync.remote.errors import RemoteSyncError
from tasksync.storage.task_store import TaskStore
from tasksync.sync.scheduler import CooperativeScheduler
from tasksync.utils.clock import epoch_millis

FRONTMATTER = "---\ntodoist-sync: true\n---\n"


class InMemoryDocumentSource:
    """Documents held in a dict; writes stamp the current time as mtime."""

    def __init__(self):
        self.texts: dict[str, str] = {}
        self.mtimes: dict[str, int] = {}
        self.enabled: set[str] = set()
        self.active: str | None = None
        self.write_count = 0
        self.fail_writes = False

    def put(self, path: str, body: str, mtime: int | None = None, sync: bool = True) -> None:
        self.texts[path] = (FRONTMATTER if sync else "") + body
        self.mtimes[path] = epoch_millis() if mtime is None else mtime
        if sync:
            self.enabled.add(path)
        else:
            self.enabled.discard(path)

    def body(self, path: str) -> str:
        return self.texts[path][len(FRONTMATTER) :]

    def list_sync_enabled(self) -> list[str]:
        return sorted(self.enabled)

    def read(self, path: str) -> str:
        if path not in self.texts:
            raise DocumentError(f"Failed to read document {path}: not found")
        return self.texts[path]

    def modified_at(self, path: str) -> int:
        return self.mtimes[path]

    def write(self, path: str, mutate) -> None:
        if self.fail_writes:
            raise DocumentError(f"Failed to write document {path}: read-only")
        lines = self.read(path).split("\n")
        new_lines = mutate(list(lines))
        if new_lines == lines:
            return
        self.texts[path] = "\n".join(new_lines)
        self.mtimes[path] = epoch_millis()
        self.write_count += 1

    def is_active(self, path: str) -> bool:
        return path == self.active


class FakeRemote:
    """Remote task service kept in memory, speaking the client's model types."""

    def __init__(self, sync_label: str = "tdsync"):
        self.sync_label = sync_label
        self.tasks: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.pulled_cursors: list[str] = []
        self.fail: set[str] = set()
        # Task ids (task contents for creates) whose command the service rejects
        self.failing_ids: set[str] = set()
        self._queued: list[dict[str, Any]] = []
        self._next_id = 1000
        self._cursor = 0

    def queue_item(self, task_id: str, updated_at: str | None = None, **overrides: Any) -> None:
        """Queue a changed item for the next pull, based on the task's current state."""
        item = dict(self.tasks.get(task_id, {"id": task_id, "content": "", "labels": []}))
        item.update(overrides)
        item["id"] = task_id
        if updated_at is not None:
            item["updated_at"] = updated_at
        if task_id in self.tasks and not item.get("is_deleted"):
            self.tasks[task_id].update(overrides)
        self._queued.append(item)

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail:
            raise RemoteSyncError(f"{operation} unavailable")

    def pull(self, cursor: str) -> PullResult:
        self.pulled_cursors.append(cursor)
        self._check("pull")
        if cursor == FULL_SYNC_CURSOR:
            raw = [dict(task) for task in self.tasks.values()]
        else:
            raw = self._queued
        self._queued = []
        self._cursor += 1
        return PullResult(
            items=[RemoteTask.model_validate(item) for item in raw],
            sync_cursor=f"cursor-{self._cursor}",
            full_sync=cursor == FULL_SYNC_CURSOR,
        )

    def batch_create(self, items: Sequence[TaskCreate]) -> CreateResult:
        self._check("create")
        mapping = {}
        failures = {}
        for item in items:
            if item.fields.content in self.failing_ids:
                failures[item.temp_id] = "rejected"
                continue
            task_id = str(self._next_id)
            self._next_id += 1
            self.tasks[task_id] = {
                "id": task_id,
                "content": item.fields.content,
                "checked": item.fields.completed,
                "priority": item.fields.priority or 1,
                "labels": item.fields.labels + [self.sync_label],
                "parent_id": item.parent_id,
            }
            mapping[item.temp_id] = task_id
        return CreateResult(temp_id_mapping=mapping, sync_cursor="write-cursor", failures=failures)

    def batch_update(self, items: Sequence[TaskUpdate]) -> CommandResult:
        self._check("update")
        failures = {}
        for item in items:
            if item.id in self.failing_ids:
                failures[item.id] = "rejected"
                continue
            task = self.tasks.setdefault(item.id, {"id": item.id})
            task.update(
                content=item.fields.content,
                checked=item.fields.completed,
                priority=item.fields.priority or 1,
                labels=item.fields.labels + [self.sync_label],
            )
        return CommandResult(sync_cursor="write-cursor", failures=failures)

    def batch_move(self, items: Sequence[TaskMove]) -> CommandResult:
        self._check("move")
        failures = {}
        for item in items:
            if item.id in self.failing_ids:
                failures[item.id] = "rejected"
                continue
            self.tasks.setdefault(item.id, {"id": item.id})["parent_id"] = item.parent_id
        return CommandResult(sync_cursor="write-cursor", failures=failures)

    def batch_delete(self, task_ids: Sequence[str]) -> CommandResult:
        self._check("delete")
        failures = {}
        for task_id in task_ids:
            if task_id in self.failing_ids:
                failures[task_id] = "rejected"
                continue
            self.tasks.pop(task_id, None)
        return CommandResult(sync_cursor="write-cursor", failures=failures)


@pytest.fixture
def source() -> InMemoryDocumentSource:
    return InMemoryDocumentSource()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def store() -> TaskStore:
    return TaskStore()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(document_pause_seconds=0.0, search_chunk_size=2)


@pytest.fixture
def scheduler() -> CooperativeScheduler:
    return CooperativeScheduler(document_pause_seconds=0.0, search_chunk_size=2)

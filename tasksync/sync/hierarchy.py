"""Creation of new tasks, parents before children."""

import uuid
from collections import defaultdict

import structlog
from pydantic import BaseModel, Field

from tasksync.documents.source import DocumentError, DocumentSource
from tasksync.documents.task_line import TaskLineCodec
from tasksync.models.config import SyncConfig
from tasksync.models.remote import TaskCreate
from tasksync.models.task import ParsedTaskLine, TaskFields, TaskRecord
from tasksync.remote.errors import RemoteSyncError
from tasksync.remote.sync_client import TaskSyncClient
from tasksync.storage.task_store import TaskStore
from tasksync.utils.batching import chunked
from tasksync.utils.clock import epoch_millis

log = structlog.stdlib.get_logger()


class CreationOutcome(BaseModel):
    """Result of creating a document's new tasks."""

    content_to_id: dict[str, str] = Field(
        default_factory=dict, description="Content of each created task -> its remote id"
    )
    created_ids: set[str] = Field(default_factory=set, description="Ids written back into the document")
    ghost_ids: list[str] = Field(
        default_factory=list, description="Created ids whose line could not be matched"
    )
    ghosts_deleted: int = 0
    anomalies: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class _Created(BaseModel):
    task_id: str
    text: str
    fields: TaskFields
    parent_id: str | None = None


class HierarchicalCreator:
    """Creates new tasks level by level so every child can reference a real parent id.

    Ids are written back by matching the exact line text captured at scan
    time. Lines that changed or vanished meanwhile leave their created task
    unmatched; such ghost tasks are deleted again.
    """

    def __init__(
        self,
        store: TaskStore,
        client: TaskSyncClient,
        codec: TaskLineCodec,
        source: DocumentSource,
        config: SyncConfig,
    ):
        self._store = store
        self._client = client
        self._codec = codec
        self._source = source
        self._config = config

    def depths(self, document_path: str, new_tasks: list[ParsedTaskLine]) -> tuple[dict[int, int], list[str]]:
        """
        Compute hierarchy depth for each new task.

        Parents always precede their children in the document, so depths are
        filled in line order. A chain deeper than ``max_hierarchy_depth``
        degrades the task to a root task.

        Returns:
            Tuple of (line index -> depth, anomaly notes)
        """
        max_depth = self._config.max_hierarchy_depth
        depths: dict[int, int] = {}
        anomalies: list[str] = []

        for task in sorted(new_tasks, key=lambda t: t.line_index):
            if task.parent_id is not None:
                depth = self._store.depth_of(task.parent_id, max_depth) + 1
            elif task.parent_line_index is not None and task.parent_line_index in depths:
                depth = depths[task.parent_line_index] + 1
            else:
                depth = 0

            if depth > max_depth:
                note = (
                    f"Task '{task.fields.content}' in {document_path} is nested deeper than "
                    f"{max_depth} levels; created as a root task"
                )
                log.warning("hierarchy_too_deep", document_path=document_path, line_index=task.line_index)
                anomalies.append(note)
                task.parent_id = None
                task.parent_content = None
                task.parent_line_index = None
                depth = 0
            depths[task.line_index] = depth

        return depths, anomalies

    def create(self, document_path: str, new_tasks: list[ParsedTaskLine]) -> CreationOutcome:
        """
        Create every new task of a document and embed the resulting ids.

        Args:
            document_path: Document holding the tasks
            new_tasks: Scanned task lines without an embedded id

        Returns:
            CreationOutcome with the created ids and a content -> id map
        """
        outcome = CreationOutcome()
        if not new_tasks:
            return outcome

        depths, outcome.anomalies = self.depths(document_path, new_tasks)
        levels: dict[int, list[ParsedTaskLine]] = defaultdict(list)
        for task in new_tasks:
            levels[depths[task.line_index]].append(task)

        line_ids: dict[int, str] = {}
        created: list[_Created] = []

        for depth in sorted(levels):
            requests_by_temp_id: dict[str, tuple[ParsedTaskLine, str | None]] = {}
            for task in levels[depth]:
                parent_id = self._creation_parent(document_path, task, line_ids, outcome)
                requests_by_temp_id[str(uuid.uuid4())] = (task, parent_id)

            for batch in chunked(list(requests_by_temp_id.items()), self._config.batch_size):
                items = [
                    TaskCreate(temp_id=temp_id, fields=task.fields, parent_id=parent_id)
                    for temp_id, (task, parent_id) in batch
                ]
                try:
                    result = self._client.batch_create(items)
                except RemoteSyncError as e:
                    message = f"Creating {len(items)} tasks for {document_path} failed: {e}"
                    log.error("task_creation_batch_failed", document_path=document_path, depth=depth, error=str(e))
                    outcome.errors.append(message)
                    continue

                for temp_id, error in result.failures.items():
                    task, _ = requests_by_temp_id[temp_id]
                    outcome.errors.append(f"Creating '{task.fields.content}' failed: {error}")

                for temp_id, task_id in result.temp_id_mapping.items():
                    task, parent_id = requests_by_temp_id[temp_id]
                    line_ids[task.line_index] = task_id
                    created.append(
                        _Created(task_id=task_id, text=task.text, fields=task.fields, parent_id=parent_id)
                    )

            log.info("hierarchy_level_created", document_path=document_path, depth=depth, count=len(levels[depth]))

        if created:
            self._write_back(document_path, created, outcome)
        return outcome

    def _creation_parent(
        self,
        document_path: str,
        task: ParsedTaskLine,
        line_ids: dict[int, str],
        outcome: CreationOutcome,
    ) -> str | None:
        if task.parent_id is not None:
            return task.parent_id
        if task.parent_line_index is None:
            return None
        parent_id = line_ids.get(task.parent_line_index)
        if parent_id is None:
            note = (
                f"Parent of '{task.fields.content}' in {document_path} was not created; "
                f"created as a root task"
            )
            log.warning("parent_creation_failed_root_fallback", document_path=document_path, line_index=task.line_index)
            outcome.anomalies.append(note)
        return parent_id

    def _write_back(self, document_path: str, created: list[_Created], outcome: CreationOutcome) -> None:
        line_to_created: dict[str, _Created] = {}
        duplicates: list[_Created] = []
        for item in created:
            if line_to_created.setdefault(item.text, item) is not item:
                duplicates.append(item)

        consumed: list[_Created] = []

        def embed_ids(lines: list[str]) -> list[str]:
            consumed.clear()
            remaining = dict(line_to_created)
            for index, line in enumerate(lines):
                if line not in remaining or self._codec.extract_id(line) is not None:
                    continue
                item = remaining.pop(line)
                indent, _ = self._codec.split_indent(line)
                lines[index] = indent + self._codec.build(item.fields, item.task_id)
                consumed.append(item)
            return lines

        try:
            self._source.write(document_path, embed_ids)
        except DocumentError as e:
            log.error("id_write_back_failed", document_path=document_path, error=str(e))
            outcome.errors.append(f"Writing task ids into {document_path} failed: {e}")
            consumed.clear()

        now = epoch_millis()
        for item in consumed:
            self._store.upsert(
                TaskRecord(
                    id=item.task_id,
                    document_path=document_path,
                    fields=item.fields,
                    parent_id=item.parent_id,
                    last_synced_at=now,
                )
            )
            outcome.created_ids.add(item.task_id)
            outcome.content_to_id.setdefault(item.fields.content, item.task_id)

        consumed_ids = {item.task_id for item in consumed}
        outcome.ghost_ids = [item.task_id for item in created if item.task_id not in consumed_ids]
        if duplicates:
            log.warning("duplicate_new_task_lines", document_path=document_path, count=len(duplicates))
        if outcome.ghost_ids:
            self._delete_ghosts(document_path, outcome)

        log.info(
            "task_ids_written_back",
            document_path=document_path,
            created=len(consumed),
            ghosts=len(outcome.ghost_ids),
        )

    def _delete_ghosts(self, document_path: str, outcome: CreationOutcome) -> None:
        for batch in chunked(outcome.ghost_ids, self._config.batch_size):
            try:
                result = self._client.batch_delete(batch)
            except RemoteSyncError as e:
                log.error("ghost_task_deletion_failed", document_path=document_path, error=str(e))
                outcome.errors.append(f"Deleting {len(batch)} unmatched tasks failed: {e}")
                continue
            outcome.ghosts_deleted += len(batch) - len(result.failures)
            for task_id, error in result.failures.items():
                outcome.errors.append(f"Deleting unmatched task {task_id} failed: {error}")

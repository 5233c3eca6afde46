"""Per-document task detection and local change tracking."""

import structlog
from pydantic import BaseModel, Field, ValidationError

from tasksync.documents.outline import build_outline
from tasksync.documents.source import DocumentError, DocumentSource
from tasksync.documents.task_line import TaskLineCodec
from tasksync.models.config import SyncConfig
from tasksync.models.task import (
    ChangeFields,
    ChangeOrigin,
    ParsedTaskLine,
    PendingChange,
    TaskRecord,
)
from tasksync.storage.task_store import TaskStore
from tasksync.sync.scheduler import CooperativeScheduler
from tasksync.utils.clock import epoch_millis

log = structlog.stdlib.get_logger()


class DocumentScan(BaseModel):
    """Task lines found in one document, split into new and existing tasks."""

    document_path: str
    modified_at: int = Field(..., description="Document mtime, epoch milliseconds")
    new_tasks: list[ParsedTaskLine] = Field(default_factory=list)
    existing_tasks: list[ParsedTaskLine] = Field(default_factory=list)
    adopted_ids: set[str] = Field(
        default_factory=set, description="Ids unknown to the store, adopted as baseline"
    )
    anomalies: list[str] = Field(default_factory=list)


class BidirectionalResult(BaseModel):
    """Outcome of checking the store's view of a document against the document."""

    relocated: dict[str, str] = Field(default_factory=dict, description="task id -> new document")
    deleted: list[str] = Field(default_factory=list, description="Ids found in no document")


class DocumentReconciler:
    """Compares one document's task lines with the task store.

    The reconciler only records divergences (as pending changes and updated
    document paths). Resolving and applying them is left to the caller.
    """

    def __init__(
        self,
        store: TaskStore,
        codec: TaskLineCodec,
        source: DocumentSource,
        scheduler: CooperativeScheduler,
        config: SyncConfig,
    ):
        self._store = store
        self._codec = codec
        self._source = source
        self._scheduler = scheduler
        self._config = config

    def scan(self, document_path: str, lines: list[str], modified_at: int) -> DocumentScan:
        """
        Find task lines and their structural parents.

        Args:
            document_path: Path of the document
            lines: Document text split into lines
            modified_at: Document modification time (epoch milliseconds)

        Returns:
            DocumentScan with new (no id) and existing (embedded id) tasks
        """
        scan = DocumentScan(document_path=document_path, modified_at=modified_at)
        outline = build_outline(lines)
        parsed: dict[int, ParsedTaskLine] = {}
        skipped: set[int] = set()
        seen_ids: set[str] = set()

        for index, line in enumerate(lines):
            if not self._codec.is_task(line):
                continue

            try:
                fields = self._codec.parse(line)
            except ValidationError as e:
                log.warning(
                    "malformed_task_line_skipped", document_path=document_path, line_index=index, error=str(e)
                )
                skipped.add(index)
                continue
            if fields is None:
                log.warning("malformed_task_line_skipped", document_path=document_path, line_index=index)
                skipped.add(index)
                continue

            task_id = self._codec.extract_id(line)
            if task_id is not None and task_id in seen_ids:
                note = f"Duplicate task id {task_id} in {document_path} line {index + 1} ignored"
                log.warning("duplicate_task_id", document_path=document_path, task_id=task_id)
                scan.anomalies.append(note)
                skipped.add(index)
                continue

            task = ParsedTaskLine(line_index=index, text=line, fields=fields, task_id=task_id)
            parent_index = outline.get(index)
            parent = parsed.get(parent_index) if parent_index is not None else None
            if parent_index in skipped:
                task.parent_skipped = True
            elif parent is not None:
                task.parent_line_index = parent.line_index
                if parent.task_id is not None:
                    task.parent_id = parent.task_id
                else:
                    task.parent_content = parent.fields.content

            parsed[index] = task
            if task_id is None:
                scan.new_tasks.append(task)
            else:
                seen_ids.add(task_id)
                scan.existing_tasks.append(task)

        log.info(
            "document_scanned",
            document_path=document_path,
            new_tasks=len(scan.new_tasks),
            existing_tasks=len(scan.existing_tasks),
        )
        return scan

    def register_existing(self, scan: DocumentScan) -> None:
        """Adopt ids unknown to the store and claim tasks that moved into this document.

        A task whose line is present cannot be locally deleted, so local
        deletions still pending from an earlier failed or lost push are dropped.
        """
        for task in scan.existing_tasks:
            record = self._store.get(task.task_id)
            if record is None:
                note = f"Task {task.task_id} in {scan.document_path} was unknown; adopted as baseline"
                log.warning("unknown_task_id_adopted", task_id=task.task_id, document_path=scan.document_path)
                scan.anomalies.append(note)
                self._store.upsert(
                    TaskRecord(
                        id=task.task_id,
                        document_path=scan.document_path,
                        fields=task.fields,
                        parent_id=task.parent_id,
                        last_synced_at=epoch_millis(),
                    )
                )
                scan.adopted_ids.add(task.task_id)
                continue

            self._drop_stale_deletions(record, scan.document_path)
            if record.document_path != scan.document_path:
                log.info(
                    "task_moved_into_document",
                    task_id=task.task_id,
                    from_path=record.document_path,
                    to_path=scan.document_path,
                )
                record.document_path = scan.document_path

    def bidirectional_check(
        self, scan: DocumentScan, exclude_ids: set[str] | None = None
    ) -> BidirectionalResult:
        """
        Check records the store assigns to this document but that are absent from it.

        A missing task found in another sync-enabled document is relocated
        there; one found nowhere gets a local deletion change.

        Args:
            scan: Scan of the document
            exclude_ids: Ids to leave alone (created in this same pass)

        Returns:
            BidirectionalResult with relocations and deletions
        """
        result = BidirectionalResult()
        present = {task.task_id for task in scan.existing_tasks}
        exclude_ids = exclude_ids or set()
        missing = [
            record
            for record in self._store.by_document(scan.document_path)
            if record.id not in present and record.id not in exclude_ids
        ]
        if not missing:
            return result

        log.info("searching_for_missing_tasks", document_path=scan.document_path, count=len(missing))
        locations = self._locate({record.id for record in missing}, scan.document_path)

        for record in missing:
            new_path = locations.get(record.id)
            if new_path is not None:
                log.info(
                    "task_moved_out_of_document",
                    task_id=record.id,
                    from_path=scan.document_path,
                    to_path=new_path,
                )
                record.document_path = new_path
                self._drop_stale_deletions(record, new_path)
                result.relocated[record.id] = new_path
                continue

            already_pending = any(
                change.origin is ChangeOrigin.LOCAL and change.changes.deleted
                for change in record.pending_changes
            )
            if not already_pending:
                log.info("task_deleted_locally", task_id=record.id, document_path=scan.document_path)
                record.pending_changes.append(
                    PendingChange(
                        origin=ChangeOrigin.LOCAL,
                        timestamp=scan.modified_at,
                        changes=ChangeFields(deleted=True),
                    )
                )
            result.deleted.append(record.id)

        return result

    def detect_local_changes(self, scan: DocumentScan, content_to_id: dict[str, str]) -> int:
        """
        Append a local pending change for every existing task that differs from its record.

        Args:
            scan: Scan of the document
            content_to_id: Ids of tasks created in this pass, keyed by content,
                used to resolve parents that were brand-new tasks

        Returns:
            Number of pending changes appended
        """
        window_ms = self._config.self_write_window_seconds * 1000
        appended = 0

        for task in scan.existing_tasks:
            if task.task_id in scan.adopted_ids:
                continue
            record = self._store.get(task.task_id)
            if record is None:
                continue

            parent_id, parent_known = self._resolve_parent(scan, task, content_to_id)
            differing = record.fields.differing_fields(task.fields)
            parent_changed = parent_known and parent_id != record.parent_id
            if not differing and not parent_changed:
                continue

            if abs(scan.modified_at - record.last_synced_at) < window_ms:
                log.debug(
                    "local_change_suppressed_as_self_write",
                    task_id=record.id,
                    document_path=scan.document_path,
                )
                continue

            change = PendingChange(
                origin=ChangeOrigin.LOCAL,
                timestamp=scan.modified_at,
                changes=ChangeFields(
                    task=task.fields,
                    parent_id=parent_id if parent_changed else None,
                    parent_changed=parent_changed,
                ),
            )
            if change in record.pending_changes:
                continue

            log.info(
                "local_change_detected",
                task_id=record.id,
                fields=differing,
                parent_changed=parent_changed,
            )
            record.pending_changes.append(change)
            appended += 1

        return appended

    @staticmethod
    def _drop_stale_deletions(record: TaskRecord, document_path: str) -> None:
        kept = [
            change
            for change in record.pending_changes
            if not (change.origin is ChangeOrigin.LOCAL and change.changes.deleted)
        ]
        if len(kept) != len(record.pending_changes):
            log.info("stale_local_deletion_dropped", task_id=record.id, document_path=document_path)
            record.pending_changes = kept

    def _resolve_parent(
        self, scan: DocumentScan, task: ParsedTaskLine, content_to_id: dict[str, str]
    ) -> tuple[str | None, bool]:
        """Resolved parent id and whether the parent is known at all."""
        if task.parent_skipped:
            return None, False
        if task.parent_id is not None:
            parent_id = task.parent_id
        elif task.parent_content is not None:
            parent_id = content_to_id.get(task.parent_content)
            if parent_id is None:
                # Parent creation failed or is pending, keep the stored parent for now
                return None, False
        else:
            return None, True

        parent = self._store.get(parent_id)
        if parent is not None and parent.document_path != scan.document_path:
            note = (
                f"Task {task.task_id} has parent {parent_id} in {parent.document_path}; "
                f"hierarchies may not span documents, treated as root"
            )
            log.warning(
                "cross_document_parent_rejected",
                task_id=task.task_id,
                parent_id=parent_id,
                parent_document=parent.document_path,
            )
            scan.anomalies.append(note)
            return None, True
        return parent_id, True

    def _locate(self, task_ids: set[str], exclude_path: str) -> dict[str, str]:
        """Search the other sync-enabled documents for embedded ids."""
        found: dict[str, str] = {}
        candidates = [p for p in self._source.list_sync_enabled() if p != exclude_path]
        chunk_size = self._scheduler.search_chunk_size

        for start in range(0, len(candidates), chunk_size):
            for path in candidates[start : start + chunk_size]:
                try:
                    text = self._source.read(path)
                except DocumentError as e:
                    log.warning("document_unreadable_during_search", document_path=path, error=str(e))
                    continue
                for line in text.split("\n"):
                    task_id = self._codec.extract_id(line)
                    if task_id in task_ids and task_id not in found:
                        found[task_id] = path
                if len(found) == len(task_ids):
                    return found
            self._scheduler.during_search()

        return found

"""Resolution and application of a document's pending changes."""

import structlog
from pydantic import BaseModel, Field

from tasksync.documents.source import DocumentError, DocumentSource
from tasksync.documents.task_line import TaskLineCodec
from tasksync.models.config import SyncConfig
from tasksync.models.remote import TaskMove, TaskUpdate
from tasksync.models.task import ChangeOrigin, PendingChange, TaskFields, TaskRecord
from tasksync.remote.errors import RemoteSyncError
from tasksync.remote.sync_client import TaskSyncClient
from tasksync.storage.task_store import TaskStore
from tasksync.sync.conflict_resolver import resolve_conflicts
from tasksync.sync.writeback import LineUpdate, WritebackPlan
from tasksync.utils.batching import chunked
from tasksync.utils.clock import epoch_millis

log = structlog.stdlib.get_logger()


class ApplyOutcome(BaseModel):
    """Counts and notes from applying one document's resolved changes."""

    remote_updates: int = 0
    remote_deletions: int = 0
    local_updates: int = 0
    local_deletions: int = 0
    moves: int = 0
    anomalies: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class _Push(BaseModel):
    """Local-won state of one record, applied to the store once the remote accepts it."""

    record_id: str
    fields: TaskFields | None = None
    parent_changed: bool = False
    parent_id: str | None = None


class ChangeApplier:
    """Resolves pending changes of one document and applies each winner to the other side.

    Local winners are pushed in batches (updates, then moves, then deletes so
    children are reparented before a deleted parent disappears). Remote
    winners are written into the document in one mutation. The store is
    only changed for changes that were applied; everything else keeps its
    pending changes and is retried next cycle.
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

    def apply(self, document_path: str) -> ApplyOutcome:
        """
        Resolve and apply every pending change of the document's records.

        Args:
            document_path: Document whose records are processed

        Returns:
            ApplyOutcome with counts, anomalies and errors
        """
        outcome = ApplyOutcome()
        pushes: dict[str, _Push] = {}
        deletions: list[str] = []
        line_updates: list[LineUpdate] = []
        line_deletions: list[str] = []

        for record in self._store.by_document(document_path):
            winner = resolve_conflicts(record, self._config.conflict_window_seconds)
            if winner is None:
                continue
            if winner.origin is ChangeOrigin.LOCAL:
                self._plan_local_win(record, winner, pushes, deletions)
            else:
                self._plan_remote_win(document_path, record, winner, line_updates, line_deletions, outcome)

        if pushes or deletions:
            self._push(pushes, deletions, outcome)
        if line_updates or line_deletions:
            self._write(document_path, line_updates, line_deletions, outcome)

        return outcome

    def _plan_local_win(
        self,
        record: TaskRecord,
        winner: PendingChange,
        pushes: dict[str, _Push],
        deletions: list[str],
    ) -> None:
        if winner.changes.deleted:
            deletions.append(record.id)
            return

        fields = winner.changes.task
        if fields is not None and fields.same_as(record.fields):
            fields = None
        parent_changed = winner.changes.parent_changed and winner.changes.parent_id != record.parent_id

        if fields is None and not parent_changed:
            log.debug("local_change_already_in_sync", task_id=record.id)
            record.pending_changes = []
            return

        pushes[record.id] = _Push(
            record_id=record.id,
            fields=fields,
            parent_changed=parent_changed,
            parent_id=winner.changes.parent_id if parent_changed else None,
        )

    def _plan_remote_win(
        self,
        document_path: str,
        record: TaskRecord,
        winner: PendingChange,
        line_updates: list[LineUpdate],
        line_deletions: list[str],
        outcome: ApplyOutcome,
    ) -> None:
        if winner.changes.deleted:
            line_deletions.append(record.id)
            return

        parent_changed = winner.changes.parent_changed
        parent_id = winner.changes.parent_id if parent_changed else record.parent_id
        if parent_changed and parent_id is not None:
            parent = self._store.get(parent_id)
            if parent is None or parent.document_path != document_path:
                note = (
                    f"Remote parent {parent_id} of task {record.id} is not in {document_path}; "
                    f"task kept as a root task"
                )
                log.warning("remote_parent_outside_document", task_id=record.id, parent_id=parent_id)
                outcome.anomalies.append(note)
                parent_id = None

        depth = 0
        if parent_id is not None:
            depth = self._store.depth_of(parent_id, self._config.max_hierarchy_depth) + 1

        line_updates.append(
            LineUpdate(
                task_id=record.id,
                fields=winner.changes.task,
                reparent=parent_changed,
                parent_id=parent_id,
                depth=depth,
            )
        )

    def _push(self, pushes: dict[str, _Push], deletions: list[str], outcome: ApplyOutcome) -> None:
        failed: set[str] = set()
        batch_size = self._config.batch_size

        updates = []
        for push in pushes.values():
            if push.fields is None:
                continue
            record = self._store.get(push.record_id)
            fields_differ = [f for f in record.fields.differing_fields(push.fields) if f != "completed"]
            updates.append(
                TaskUpdate(
                    id=push.record_id,
                    fields=push.fields,
                    update_fields=bool(fields_differ),
                    update_completion=record.fields.completed != push.fields.completed,
                )
            )
        moves = [
            TaskMove(id=push.record_id, parent_id=push.parent_id)
            for push in pushes.values()
            if push.parent_changed
        ]

        for batch in chunked(updates, batch_size):
            failed |= self._send("update", self._client.batch_update, batch, [u.id for u in batch], outcome)
        for batch in chunked(moves, batch_size):
            failed |= self._send("move", self._client.batch_move, batch, [m.id for m in batch], outcome)
        for batch in chunked(deletions, batch_size):
            failed |= self._send("delete", self._client.batch_delete, batch, batch, outcome)

        now = epoch_millis()
        for push in pushes.values():
            if push.record_id in failed:
                continue
            record = self._store.get(push.record_id)
            if push.fields is not None:
                record.fields = push.fields
                outcome.remote_updates += 1
            if push.parent_changed:
                record.parent_id = push.parent_id
                outcome.moves += 1
            record.last_synced_at = now
            record.pending_changes = []

        for task_id in deletions:
            if task_id not in failed:
                self._store.delete(task_id)
                outcome.remote_deletions += 1

        log.info(
            "local_changes_pushed",
            updates=len(updates),
            moves=len(moves),
            deletions=len(deletions),
            failed=len(failed),
        )

    def _send(self, kind: str, send, batch: list, task_ids: list[str], outcome: ApplyOutcome) -> set[str]:
        """Send one batch; returns the ids whose command did not succeed."""
        try:
            result = send(batch)
        except RemoteSyncError as e:
            log.error("push_batch_failed", kind=kind, size=len(batch), error=str(e))
            outcome.errors.append(f"Remote {kind} of {len(batch)} tasks failed: {e}")
            return set(task_ids)

        if result.sync_cursor:
            log.debug("write_cursor_ignored", kind=kind)
        for task_id, error in result.failures.items():
            outcome.errors.append(f"Remote {kind} of task {task_id} failed: {error}")
        return set(result.failures)

    def _write(
        self,
        document_path: str,
        line_updates: list[LineUpdate],
        line_deletions: list[str],
        outcome: ApplyOutcome,
    ) -> None:
        plan = WritebackPlan(self._codec, line_updates, line_deletions)
        try:
            self._source.write(document_path, plan)
        except DocumentError as e:
            log.error("remote_changes_write_failed", document_path=document_path, error=str(e))
            outcome.errors.append(f"Writing remote changes into {document_path} failed: {e}")
            return

        now = epoch_millis()
        for update in line_updates:
            record = self._store.get(update.task_id)
            if update.task_id in plan.missing:
                outcome.anomalies.append(
                    f"Line of task {update.task_id} not found in {document_path}; record updated only"
                )
            if update.fields is not None:
                record.fields = update.fields
                outcome.local_updates += 1
            if update.reparent:
                record.parent_id = update.parent_id
                outcome.moves += 1
            record.last_synced_at = now
            record.pending_changes = []

        for task_id in line_deletions:
            self._store.delete(task_id)
            outcome.local_deletions += 1

        log.info(
            "remote_changes_written",
            document_path=document_path,
            updates=len(line_updates),
            deletions=len(line_deletions),
        )

"""Synchronization coordinator orchestrating one sync cycle."""

from collections import deque
from datetime import datetime

import structlog

from tasksync.documents.source import DocumentError, DocumentSource
from tasksync.documents.task_line import TaskLineCodec
from tasksync.models.config import SyncConfig
from tasksync.models.remote import PullResult, RemoteTask
from tasksync.models.state import FULL_SYNC_CURSOR, SyncState
from tasksync.models.task import ChangeFields, ChangeOrigin, PendingChange
from tasksync.remote.errors import RemoteSyncError
from tasksync.remote.sync_client import TaskSyncClient
from tasksync.storage.state_file import StateFile
from tasksync.storage.task_store import TaskStore
from tasksync.sync.document_processor import DocumentProcessor
from tasksync.sync.models import SyncPhase, SyncReport
from tasksync.sync.scheduler import CooperativeScheduler, LogNotifier, Notifier
from tasksync.utils.clock import epoch_millis

log = structlog.stdlib.get_logger()


class SyncCoordinator:
    """Orchestrates synchronization between the documents and the remote service.

    A cycle pulls remote changes into the task store, selects the documents
    that need attention, processes them one at a time and persists the
    state once at the end. Only one cycle runs at a time.
    """

    def __init__(
        self,
        client: TaskSyncClient,
        source: DocumentSource,
        state_file: StateFile,
        config: SyncConfig | None = None,
        notifier: Notifier | None = None,
        scheduler: CooperativeScheduler | None = None,
    ):
        """
        Initialize sync coordinator.

        Args:
            client: Client for the remote sync API
            source: Access to the local documents
            state_file: Where the task store and cursor are persisted
            config: Optional sync settings (defaults used if None)
            notifier: Optional sink for user-visible notices (logged if None)
            scheduler: Optional cooperative scheduler (built from config if None)
        """
        self._client = client
        self._source = source
        self._state_file = state_file
        self._config = config or SyncConfig()
        self._notifier = notifier or LogNotifier()
        self._scheduler = scheduler or CooperativeScheduler(
            document_pause_seconds=self._config.document_pause_seconds,
            search_chunk_size=self._config.search_chunk_size,
        )
        self._codec = TaskLineCodec(client.sync_label)

        self._state: SyncState | None = None
        self._store: TaskStore | None = None
        self._phase = SyncPhase.IDLE
        self._in_progress = False

        log.info("sync_coordinator_initialized", state_file=str(state_file.path))

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def store(self) -> TaskStore:
        self._ensure_loaded()
        return self._store

    @property
    def state(self) -> SyncState:
        self._ensure_loaded()
        return self._state

    def run_cycle(self, full_resync: bool = False) -> SyncReport | None:
        """
        Run one complete sync cycle.

        This method:
        1. Pulls remote changes and records them as pending changes
        2. Selects modified documents and documents owning pending changes
        3. Processes each document sequentially
        4. Persists the task store and cursor

        Args:
            full_resync: Ignore the stored cursor and pull everything

        Returns:
            SyncReport with the cycle results, or None if a cycle is already running
        """
        if self._in_progress:
            log.warning("sync_cycle_rejected_already_running")
            return None

        self._in_progress = True
        try:
            return self._run_cycle(full_resync)
        finally:
            self._in_progress = False
            self._phase = SyncPhase.IDLE

    def _run_cycle(self, full_resync: bool) -> SyncReport:
        start_time = datetime.now()
        cycle_started_at = epoch_millis()
        report = SyncReport(start_time=start_time)
        log.info("sync_cycle_started", full_resync=full_resync)

        try:
            self._ensure_loaded()
        except RuntimeError as e:
            return self._abort(report, f"Loading sync state failed: {e}")

        self._phase = SyncPhase.PULLING
        cursor = FULL_SYNC_CURSOR if full_resync else self._state.sync_cursor
        try:
            pulled = self._client.pull(cursor)
        except RemoteSyncError as e:
            return self._abort(report, f"Pulling remote changes failed: {e}")

        report.pulled_items = len(pulled.items)
        report.full_resync = pulled.full_sync
        report.anomalies.extend(self.apply_remote_items(pulled.items))

        self._phase = SyncPhase.SELECTING_DOCUMENTS
        documents = self.select_documents(self._state.last_cycle_at)

        self._phase = SyncPhase.PROCESSING_DOCUMENTS
        self._process_documents(documents, report)

        self._phase = SyncPhase.PERSISTING
        try:
            self._persist(pulled, cycle_started_at)
        except RuntimeError as e:
            return self._abort(report, f"Saving sync state failed: {e}")

        end_time = datetime.now()
        report.end_time = end_time
        report.duration_seconds = (end_time - start_time).total_seconds()

        log.info(
            "sync_cycle_completed",
            documents=report.documents_processed,
            total_changes=report.total_changes,
            errors=len(report.errors),
            duration_seconds=report.duration_seconds,
            success=report.success,
        )
        if report.total_changes or report.errors:
            self._notifier.notify(self._summary(report))
        return report

    def apply_remote_items(self, items: list[RemoteTask]) -> list[str]:
        """
        Record pulled items as remote pending changes.

        Items that match their record exactly (usually echoes of this
        system's own writes) are ignored. Unknown items carrying the sync
        label are reported as orphans.

        Args:
            items: Items from the pull

        Returns:
            Anomaly notes
        """
        store = self.store
        sync_label = self._client.sync_label.lower()
        now = epoch_millis()
        anomalies: list[str] = []
        recorded = 0

        for item in items:
            record = store.get(item.id)
            if record is None:
                if not item.is_deleted and sync_label in (label.lower() for label in item.labels):
                    log.warning("orphaned_remote_task", task_id=item.id, content=item.content)
                    anomalies.append(f"Remote task {item.id} carries the sync label but is in no document")
                continue

            timestamp = item.updated_at_millis(now)
            if item.is_deleted:
                change = PendingChange(
                    origin=ChangeOrigin.REMOTE,
                    timestamp=timestamp,
                    changes=ChangeFields(deleted=True),
                )
            else:
                fields = item.to_fields(self._client.sync_label)
                parent_changed = item.parent_id != record.parent_id
                if fields.same_as(record.fields) and not parent_changed:
                    continue
                change = PendingChange(
                    origin=ChangeOrigin.REMOTE,
                    timestamp=timestamp,
                    changes=ChangeFields(
                        task=fields,
                        parent_id=item.parent_id if parent_changed else None,
                        parent_changed=parent_changed,
                    ),
                )

            if change in record.pending_changes:
                continue
            record.pending_changes.append(change)
            recorded += 1

        log.info("remote_changes_recorded", pulled=len(items), recorded=recorded)
        return anomalies

    def select_documents(self, since: int) -> list[str]:
        """
        Documents to process this cycle.

        A document is selected when it was modified after ``since`` or owns
        a record with pending changes.

        Args:
            since: Start of the previous cycle (epoch milliseconds)

        Returns:
            Document paths in listing order
        """
        pending_paths = {record.document_path for record in self.store.with_pending_changes()}
        selected: list[str] = []

        for path in self._source.list_sync_enabled():
            if self._config.skip_active_document and self._source.is_active(path):
                log.debug("active_document_skipped", document_path=path)
                continue
            if path in pending_paths:
                selected.append(path)
                continue
            try:
                modified_at = self._source.modified_at(path)
            except DocumentError as e:
                log.warning("document_stat_failed", document_path=path, error=str(e))
                continue
            if modified_at > since:
                selected.append(path)

        unavailable = pending_paths - set(selected)
        if unavailable:
            log.warning("pending_changes_for_unselected_documents", documents=sorted(unavailable))

        log.info("documents_selected", count=len(selected))
        return selected

    def _process_documents(self, documents: list[str], report: SyncReport) -> None:
        processor = DocumentProcessor(
            self.store, self._client, self._source, self._scheduler, self._config, self._codec
        )
        queue = deque(documents)
        queued = set(documents)
        processed: set[str] = set()

        while queue:
            path = queue.popleft()
            queued.discard(path)
            processed.add(path)

            try:
                document_report = processor.process(path)
            except Exception as e:
                error_msg = f"Failed to sync document {path}: {str(e)}"
                log.error("document_sync_failed", document_path=path, error=str(e))
                report.errors.append(error_msg)
                self._notifier.notify(error_msg)
                self._scheduler.after_document()
                continue

            report.add_document(document_report)
            for error in document_report.errors:
                self._notifier.notify(error)

            for destination in document_report.relocated_to:
                if destination not in queued and destination not in processed:
                    log.info("relocation_target_enqueued", document_path=destination)
                    queue.append(destination)
                    queued.add(destination)

            self._scheduler.after_document()

    def _persist(self, pulled: PullResult, cycle_started_at: int) -> None:
        # Cursors returned by writes are never adopted: a third-party edit made
        # between pull and push would otherwise be skipped
        self._state.sync_cursor = pulled.sync_cursor
        self._state.last_cycle_at = cycle_started_at
        self._state.tasks = {record.id: record for record in self._store.records()}
        self._state_file.save(self._state)

    def _ensure_loaded(self) -> None:
        if self._state is None:
            self._state = self._state_file.load()
            self._store = TaskStore(self._state.tasks.values())
            log.info("task_store_loaded", task_count=len(self._store))

    def _abort(self, report: SyncReport, error_msg: str) -> SyncReport:
        end_time = datetime.now()
        report.aborted = True
        report.errors.append(error_msg)
        report.end_time = end_time
        report.duration_seconds = (end_time - report.start_time).total_seconds()
        log.error("sync_cycle_aborted", phase=self._phase.value, error=error_msg)
        self._notifier.notify(error_msg)
        return report

    @staticmethod
    def _summary(report: SyncReport) -> str:
        parts = [
            f"{report.tasks_created} created",
            f"{report.remote_updates + report.local_updates} updated",
            f"{report.remote_deletions + report.local_deletions} deleted",
            f"{report.moves} moved",
        ]
        summary = f"Sync complete: {', '.join(parts)} across {report.documents_processed} documents"
        if report.errors:
            summary += f" ({len(report.errors)} errors)"
        return summary

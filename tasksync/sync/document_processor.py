"""The per-document reconciliation pipeline."""

import structlog

from tasksync.documents.source import DocumentSource
from tasksync.documents.task_line import TaskLineCodec
from tasksync.models.config import SyncConfig
from tasksync.remote.sync_client import TaskSyncClient
from tasksync.storage.task_store import TaskStore
from tasksync.sync.change_applier import ChangeApplier
from tasksync.sync.document_reconciler import DocumentReconciler
from tasksync.sync.hierarchy import HierarchicalCreator
from tasksync.sync.models import DocumentReport
from tasksync.sync.scheduler import CooperativeScheduler

log = structlog.stdlib.get_logger()


class DocumentProcessor:
    """Runs one document through detection, creation and change application."""

    def __init__(
        self,
        store: TaskStore,
        client: TaskSyncClient,
        source: DocumentSource,
        scheduler: CooperativeScheduler,
        config: SyncConfig,
        codec: TaskLineCodec | None = None,
    ):
        codec = codec or TaskLineCodec(client.sync_label)
        self._source = source
        self._reconciler = DocumentReconciler(store, codec, source, scheduler, config)
        self._creator = HierarchicalCreator(store, client, codec, source, config)
        self._applier = ChangeApplier(store, client, codec, source, config)

    def process(self, document_path: str) -> DocumentReport:
        """
        Reconcile one document with the task store and the remote service.

        Order matters: existing ids are registered first, missing tasks are
        looked up before anything is created (so fresh ids are never taken
        for moved tasks), and local changes are detected once new parents
        have ids.

        Args:
            document_path: Document to process

        Returns:
            DocumentReport of what was done

        Raises:
            DocumentError: If the document cannot be read
        """
        log.info("document_processing_started", document_path=document_path)
        report = DocumentReport(document_path=document_path)

        text = self._source.read(document_path)
        modified_at = self._source.modified_at(document_path)
        scan = self._reconciler.scan(document_path, text.split("\n"), modified_at)

        self._reconciler.register_existing(scan)

        moved = self._reconciler.bidirectional_check(scan)
        report.relocated_tasks = len(moved.relocated)
        report.relocated_to = sorted(set(moved.relocated.values()))

        creation = self._creator.create(document_path, scan.new_tasks)
        report.tasks_created = len(creation.created_ids)
        report.ghost_tasks_deleted = creation.ghosts_deleted

        self._reconciler.detect_local_changes(scan, creation.content_to_id)

        applied = self._applier.apply(document_path)
        report.remote_updates = applied.remote_updates
        report.remote_deletions = applied.remote_deletions
        report.local_updates = applied.local_updates
        report.local_deletions = applied.local_deletions
        report.moves = applied.moves

        report.anomalies = scan.anomalies + creation.anomalies + applied.anomalies
        report.errors = creation.errors + applied.errors

        log.info(
            "document_processing_completed",
            document_path=document_path,
            created=report.tasks_created,
            remote_updates=report.remote_updates,
            local_updates=report.local_updates,
            errors=len(report.errors),
        )
        return report

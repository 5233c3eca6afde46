"""Synchronization components for reconciling documents with the remote task list."""

from tasksync.sync.conflict_resolver import compare_timestamps, resolve_conflicts
from tasksync.sync.document_processor import DocumentProcessor
from tasksync.sync.models import DocumentReport, SyncPhase, SyncReport
from tasksync.sync.scheduler import CooperativeScheduler, LogNotifier, Notifier
from tasksync.sync.sync_coordinator import SyncCoordinator

__all__ = [
    "CooperativeScheduler",
    "DocumentProcessor",
    "DocumentReport",
    "LogNotifier",
    "Notifier",
    "SyncCoordinator",
    "SyncPhase",
    "SyncReport",
    "compare_timestamps",
    "resolve_conflicts",
]

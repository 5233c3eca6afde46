#!/usr/bin/env python3
"""
Scheduled synchronization script for the task sync engine.

Each cycle:
- Pulls task changes from the remote service
- Reconciles every modified sync-enabled document
- Persists the task store and sync cursor

Run it once from cron or a similar scheduler, or keep it running with --loop.

Usage:
    python scripts/scheduled_sync.py [--config CONFIG_PATH] [--full-resync] [--loop]
"""

import argparse
import sys
import time

import structlog

from tasksync.documents.source import FilesystemDocumentSource
from tasksync.remote.sync_client import TaskSyncClient
from tasksync.storage.state_file import StateFile
from tasksync.sync.models import SyncReport
from tasksync.sync.scheduler import LogNotifier
from tasksync.sync.sync_coordinator import SyncCoordinator
from tasksync.utils.config_loader import ConfigLoader, ConfigurationError
from tasksync.utils.logging_config import configure_logging_from_config

log = structlog.stdlib.get_logger()


def build_coordinator(config_path: str | None, active_document: str | None) -> tuple[SyncCoordinator, int]:
    """
    Create the sync coordinator from configuration.

    Args:
        config_path: Optional path to configuration file
        active_document: Document currently being edited, if any

    Returns:
        Tuple of (coordinator, cycle interval in seconds)
    """
    config_loader = ConfigLoader()
    config = config_loader.load_config(config_path)
    configure_logging_from_config(config.logging)
    config_loader.validate_config(config)

    notifier = LogNotifier()
    client = TaskSyncClient(
        api_token=config.remote.api_token,
        api_url=str(config.remote.api_url),
        sync_label=config.remote.sync_label,
        default_project_id=config.remote.default_project_id,
        retry_config=config.retry,
        timeout_seconds=config.remote.timeout_seconds,
        notify=notifier.notify,
    )
    source = FilesystemDocumentSource(
        root=config.documents.root,
        pattern=config.documents.pattern,
        sync_marker=config.documents.sync_marker,
        active_path=active_document,
    )
    coordinator = SyncCoordinator(
        client=client,
        source=source,
        state_file=StateFile(config.documents.state_file),
        config=config.sync,
        notifier=notifier,
    )
    return coordinator, config.sync.interval_seconds


def print_summary(report: SyncReport) -> None:
    print("\n" + "=" * 60)
    print("SYNCHRONIZATION SUMMARY")
    print("=" * 60)

    if report.success:
        print("Status: ✓ SUCCESS")
    else:
        print("Status: ✗ FAILED" if report.aborted else "Status: ⚠ COMPLETED WITH ERRORS")
    print(f"Pull Type: {'full' if report.full_resync else 'incremental'}")
    print(f"Documents Processed: {report.documents_processed}")
    print(f"Tasks Created: {report.tasks_created}")
    print(f"Remote Updates: {report.remote_updates}")
    print(f"Local Updates: {report.local_updates}")
    print(f"Deletions: {report.remote_deletions + report.local_deletions}")
    print(f"Moves: {report.moves}")
    print(f"Duration: {report.duration_seconds:.2f} seconds")
    for error in report.errors:
        print(f"Error: {error}")

    print("=" * 60)


def main():
    """Main entry point for scheduled sync script."""
    parser = argparse.ArgumentParser(description="Scheduled synchronization of markdown tasks")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--full-resync",
        action="store_true",
        help="Ignore the stored cursor and pull every task",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep running a cycle every sync.interval_seconds",
    )
    parser.add_argument(
        "--active-document",
        type=str,
        help="Document being edited (skipped when sync.skip_active_document is set)",
        default=None,
    )

    args = parser.parse_args()

    try:
        coordinator, interval = build_coordinator(args.config, args.active_document)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    report = coordinator.run_cycle(full_resync=args.full_resync)
    print_summary(report)

    while args.loop:
        log.info("waiting_for_next_cycle", interval_seconds=interval)
        time.sleep(interval)
        report = coordinator.run_cycle()
        print_summary(report)

    sys.exit(0 if report.success else 1)


if __name__ == "__main__":
    main()

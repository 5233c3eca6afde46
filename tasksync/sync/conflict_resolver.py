"""Timestamp-window conflict resolution for pending task changes."""

from typing import Iterable

import structlog

from tasksync.models.task import ChangeOrigin, PendingChange, TaskRecord

log = structlog.stdlib.get_logger()


def _latest(changes: Iterable[PendingChange]) -> PendingChange:
    """Change with the greatest timestamp; on equal timestamps the later-recorded one."""
    latest: PendingChange | None = None
    for change in changes:
        if latest is None or change.timestamp >= latest.timestamp:
            latest = change
    if latest is None:
        raise ValueError("no changes to choose from")
    return latest


def compare_timestamps(local_ms: int, remote_ms: int, window_seconds: float) -> ChangeOrigin:
    """
    Decide which side wins a conflict.

    Within the window the sign of ``window_seconds`` decides: positive means
    the remote side wins, zero or negative means the local side wins. Outside
    the window the strictly newer timestamp wins, remote on exact equality.

    Args:
        local_ms: Latest local change time (epoch milliseconds)
        remote_ms: Latest remote change time (epoch milliseconds)
        window_seconds: Signed conflict resolution window

    Returns:
        Winning origin
    """
    diff_seconds = abs(local_ms - remote_ms) / 1000
    window_size = abs(window_seconds)

    if diff_seconds <= window_size:
        return ChangeOrigin.REMOTE if window_seconds > 0 else ChangeOrigin.LOCAL

    if local_ms > remote_ms:
        return ChangeOrigin.LOCAL
    return ChangeOrigin.REMOTE


def resolve_conflicts(record: TaskRecord, window_seconds: float) -> PendingChange | None:
    """
    Pick the winning pending change of a task record.

    Args:
        record: Task record whose pending changes are examined (not modified)
        window_seconds: Signed conflict resolution window

    Returns:
        The winning change, or None when nothing is pending
    """
    changes = record.pending_changes
    if not changes:
        return None

    if len(changes) == 1:
        return changes[0]

    local_changes = [c for c in changes if c.origin is ChangeOrigin.LOCAL]
    remote_changes = [c for c in changes if c.origin is ChangeOrigin.REMOTE]

    if not remote_changes:
        return _latest(local_changes)
    if not local_changes:
        return _latest(remote_changes)

    latest_local = _latest(local_changes)
    latest_remote = _latest(remote_changes)
    winner = compare_timestamps(latest_local.timestamp, latest_remote.timestamp, window_seconds)

    log.debug(
        "conflict_resolved",
        task_id=record.id,
        local_timestamp=latest_local.timestamp,
        remote_timestamp=latest_remote.timestamp,
        window_seconds=window_seconds,
        winner=winner.value,
    )

    return latest_local if winner is ChangeOrigin.LOCAL else latest_remote

"""Property-based tests for timestamp-window conflict resolution.

Covers:
- empty and single-change resolution
- last-write-wins within one origin
- window sign deciding conflicts inside the window
- recency deciding conflicts outside the window
- idempotence after pending changes are cleared
"""

import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from tasksync.models.task import ChangeFields, ChangeOrigin, PendingChange, TaskFields, TaskRecord
from tasksync.sync.conflict_resolver import compare_timestamps, resolve_conflicts

log = structlog.stdlib.get_logger()


def _change(origin: ChangeOrigin, timestamp: int, content: str = "task") -> PendingChange:
    return PendingChange(
        origin=origin,
        timestamp=timestamp,
        changes=ChangeFields(task=TaskFields(content=content)),
    )


def _record(*changes: PendingChange) -> TaskRecord:
    return TaskRecord(
        id="T1",
        document_path="notes.md",
        fields=TaskFields(content="task"),
        pending_changes=list(changes),
    )


windows = st.floats(min_value=-3600, max_value=3600, allow_nan=False)
timestamps = st.integers(min_value=0, max_value=4_000_000_000_000)
origins = st.sampled_from([ChangeOrigin.LOCAL, ChangeOrigin.REMOTE])


@given(window=windows)
@settings(max_examples=50)
def test_no_pending_changes_resolves_to_none(window: float):
    """A record without pending changes has no winner, whatever the window."""
    assert resolve_conflicts(_record(), window) is None


@given(origin=origins, timestamp=timestamps, window=windows)
@settings(max_examples=100)
def test_single_change_wins_unconditionally(origin: ChangeOrigin, timestamp: int, window: float):
    """Exactly one pending change is returned as is, independent of the window."""
    change = _change(origin, timestamp)
    assert resolve_conflicts(_record(change), window) is change


def test_latest_local_change_wins_within_one_origin():
    """Local changes at {10, 30, 20}: the one at 30 wins."""
    changes = [_change(ChangeOrigin.LOCAL, ts, content=f"v{ts}") for ts in (10, 30, 20)]
    winner = resolve_conflicts(_record(*changes), 60)
    assert winner is changes[1]
    assert winner.changes.task.content == "v30"


@given(st.lists(timestamps, min_size=2, max_size=8), origins, windows)
@settings(max_examples=100)
def test_single_origin_picks_maximum_timestamp(stamps: list[int], origin: ChangeOrigin, window: float):
    """With one origin only, the window is ignored and the newest change wins."""
    changes = [_change(origin, ts) for ts in stamps]
    winner = resolve_conflicts(_record(*changes), window)
    assert winner.timestamp == max(stamps)


def test_remote_wins_inside_positive_window():
    """Window +60, local 1_000_000, remote 1_030_000: 30s apart, remote wins."""
    local = _change(ChangeOrigin.LOCAL, 1_000_000)
    remote = _change(ChangeOrigin.REMOTE, 1_030_000)
    assert resolve_conflicts(_record(local, remote), 60) is remote


def test_newer_local_wins_outside_window():
    """Window +60, local 2_000_000, remote 1_000_000: 1000s apart, newer local wins."""
    local = _change(ChangeOrigin.LOCAL, 2_000_000)
    remote = _change(ChangeOrigin.REMOTE, 1_000_000)
    assert resolve_conflicts(_record(remote, local), 60) is local


def test_local_wins_inside_negative_window_despite_older_timestamp():
    """Window -30, local 1_000_000, remote 1_020_000: 20s apart, local wins."""
    local = _change(ChangeOrigin.LOCAL, 1_000_000)
    remote = _change(ChangeOrigin.REMOTE, 1_020_000)
    assert resolve_conflicts(_record(local, remote), -30) is local


def test_zero_window_favours_local_on_equal_timestamps():
    local = _change(ChangeOrigin.LOCAL, 5_000)
    remote = _change(ChangeOrigin.REMOTE, 5_000)
    assert resolve_conflicts(_record(local, remote), 0) is local


@given(local_ts=timestamps, remote_ts=timestamps, window=windows)
@settings(max_examples=200)
def test_compare_timestamps_matches_window_rule(local_ts: int, remote_ts: int, window: float):
    """Inside the window the sign decides; outside it the strictly newer side wins."""
    winner = compare_timestamps(local_ts, remote_ts, window)
    diff_seconds = abs(local_ts - remote_ts) / 1000

    if diff_seconds <= abs(window):
        expected = ChangeOrigin.REMOTE if window > 0 else ChangeOrigin.LOCAL
    else:
        expected = ChangeOrigin.LOCAL if local_ts > remote_ts else ChangeOrigin.REMOTE

    log.debug("compare_timestamps_case", local=local_ts, remote=remote_ts, window=window)
    assert winner is expected


@given(
    st.lists(st.tuples(origins, timestamps), min_size=2, max_size=6),
    windows,
)
@settings(max_examples=100)
def test_winner_is_latest_of_its_origin(entries: list[tuple[ChangeOrigin, int]], window: float):
    """The winner always carries its origin's maximum timestamp."""
    changes = [_change(origin, ts) for origin, ts in entries]
    winner = resolve_conflicts(_record(*changes), window)
    same_origin = [c.timestamp for c in changes if c.origin is winner.origin]
    assert winner.timestamp == max(same_origin)


def test_resolution_does_not_modify_record():
    local = _change(ChangeOrigin.LOCAL, 1)
    remote = _change(ChangeOrigin.REMOTE, 2)
    record = _record(local, remote)
    resolve_conflicts(record, 60)
    assert record.pending_changes == [local, remote]


def test_deleted_changeset_is_returned_like_any_other():
    deletion = PendingChange(
        origin=ChangeOrigin.LOCAL, timestamp=9_000_000, changes=ChangeFields(deleted=True)
    )
    update = _change(ChangeOrigin.REMOTE, 1_000)
    winner = resolve_conflicts(_record(update, deletion), 60)
    assert winner is deletion
    assert winner.changes.deleted


@given(origins, timestamps, windows)
@settings(max_examples=50)
def test_second_pass_after_clearing_is_a_no_op(origin: ChangeOrigin, timestamp: int, window: float):
    """Resolving, applying and clearing leaves nothing to resolve."""
    record = _record(_change(origin, timestamp, content="changed"))
    winner = resolve_conflicts(record, window)
    record.fields = winner.changes.task
    record.pending_changes = []

    assert resolve_conflicts(record, window) is None
    assert record.fields.content == "changed"

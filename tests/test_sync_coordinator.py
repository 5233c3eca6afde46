"""End-to-end tests of sync cycles against in-memory documents and remote."""

from tasksync.models.config import SyncConfig
from tasksync.models.state import FULL_SYNC_CURSOR
from tasksync.models.task import ChangeFields, ChangeOrigin, PendingChange, TaskFields, TaskRecord
from tasksync.storage.state_file import StateFile
from tasksync.sync.models import SyncPhase
from tasksync.sync.sync_coordinator import SyncCoordinator
from tasksync.utils.clock import epoch_millis


class RecordingNotifier:
    def __init__(self):
        self.messages: list[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


def make_coordinator(remote, source, tmp_path, notifier=None) -> SyncCoordinator:
    return SyncCoordinator(
        client=remote,
        source=source,
        state_file=StateFile(tmp_path / "state.json"),
        config=SyncConfig(document_pause_seconds=0.0),
        notifier=notifier or RecordingNotifier(),
    )


def user_edit_time() -> int:
    """An mtime clearly after the engine's own writes."""
    return epoch_millis() + 60_000


def test_first_cycle_creates_hierarchy_and_second_is_a_no_op(remote, source, tmp_path):
    source.put("x.md", "- [ ] A\n  - [ ] B\n")
    coordinator = make_coordinator(remote, source, tmp_path)

    first = coordinator.run_cycle()

    assert first.success
    assert first.tasks_created == 2
    assert remote.tasks["1001"]["parent_id"] == "1000"
    assert coordinator.store.get("1001").parent_id == "1000"

    text_after_first = source.texts["x.md"]
    remote.calls.clear()
    second = coordinator.run_cycle()

    assert second.success
    assert second.total_changes == 0
    assert remote.calls == ["pull"]
    assert source.texts["x.md"] == text_after_first


def test_full_resync_ignores_echoes_of_own_writes(remote, source, tmp_path):
    source.put("x.md", "- [ ] A\n  - [ ] B\n")
    coordinator = make_coordinator(remote, source, tmp_path)
    coordinator.run_cycle()

    report = coordinator.run_cycle(full_resync=True)

    assert report.full_resync
    assert report.pulled_items == 2
    assert report.total_changes == 0
    assert coordinator.store.with_pending_changes() == []


def test_orphaned_remote_task_is_reported_not_imported(remote, source, tmp_path):
    remote.tasks["555"] = {"id": "555", "content": "Lost", "labels": ["tdsync"]}
    remote.tasks["556"] = {"id": "556", "content": "Someone else's", "labels": []}
    coordinator = make_coordinator(remote, source, tmp_path)

    report = coordinator.run_cycle(full_resync=True)

    assert len(report.anomalies) == 1
    assert "555" in report.anomalies[0]
    assert len(coordinator.store) == 0


def test_remote_edit_is_written_into_document(remote, source, tmp_path):
    source.put("x.md", "- [ ] Buy milk")
    coordinator = make_coordinator(remote, source, tmp_path)
    coordinator.run_cycle()

    remote.queue_item("1000", updated_at="2030-01-01T00:00:00Z", content="Buy oat milk", priority=4)
    report = coordinator.run_cycle()

    assert report.local_updates == 1
    assert source.body("x.md").startswith("- [ ] Buy oat milk !!4 #tdsync %%[tid:: [1000]")
    assert coordinator.store.get("1000").fields.content == "Buy oat milk"


def test_local_edit_is_pushed(remote, source, tmp_path):
    source.put("x.md", "- [ ] Draft")
    coordinator = make_coordinator(remote, source, tmp_path)
    coordinator.run_cycle()

    edited = source.body("x.md").replace("- [ ] Draft", "- [x] Final")
    source.put("x.md", edited, mtime=user_edit_time())
    report = coordinator.run_cycle()

    assert report.remote_updates == 1
    assert remote.tasks["1000"]["content"] == "Final"
    assert remote.tasks["1000"]["checked"] is True


def test_newer_remote_edit_wins_a_conflict(remote, source, tmp_path):
    source.put("x.md", "- [ ] Original")
    coordinator = make_coordinator(remote, source, tmp_path)
    coordinator.run_cycle()

    source.put("x.md", source.body("x.md").replace("Original", "Local"), mtime=user_edit_time())
    remote.queue_item("1000", updated_at="2099-01-01T00:00:00Z", content="Remote")
    report = coordinator.run_cycle()

    assert report.local_updates == 1
    assert "- [ ] Remote #tdsync" in source.body("x.md")
    assert remote.tasks["1000"]["content"] == "Remote"


def test_deleted_line_deletes_remote_task(remote, source, tmp_path):
    source.put("x.md", "- [ ] Keep\n- [ ] Drop")
    coordinator = make_coordinator(remote, source, tmp_path)
    coordinator.run_cycle()

    kept = [line for line in source.body("x.md").split("\n") if "Drop" not in line]
    source.put("x.md", "\n".join(kept), mtime=user_edit_time())
    report = coordinator.run_cycle()

    assert report.remote_deletions == 1
    assert "1001" not in remote.tasks
    assert coordinator.store.get("1001") is None
    assert coordinator.store.get("1000") is not None


def test_task_moved_to_another_document_is_relocated(remote, source, tmp_path):
    source.put("x.md", "- [ ] Wander")
    source.put("y.md", "- [ ] Stay")
    coordinator = make_coordinator(remote, source, tmp_path)
    coordinator.run_cycle()
    wander_line = source.body("x.md")

    # y.md keeps an old mtime so only the relocation schedules it
    source.put("y.md", source.body("y.md") + "\n" + wander_line, mtime=0)
    source.put("x.md", "", mtime=user_edit_time())
    report = coordinator.run_cycle()

    assert report.relocated_tasks == 1
    assert report.documents_processed == 2
    assert report.remote_deletions == 0
    assert coordinator.store.get("1000").document_path == "y.md"
    assert "1000" in remote.tasks


def test_failed_document_does_not_stop_the_cycle(remote, source, tmp_path):
    notifier = RecordingNotifier()
    source.put("bad.md", "- [ ] Unreadable")
    del source.texts["bad.md"]
    source.put("good.md", "- [ ] Fine")
    coordinator = make_coordinator(remote, source, tmp_path, notifier)

    report = coordinator.run_cycle()

    assert report.tasks_created == 1
    assert len(report.errors) == 1
    assert not report.success
    assert any("bad.md" in message for message in notifier.messages)
    assert (tmp_path / "state.json").exists()


def test_pull_failure_aborts_without_persisting(remote, source, tmp_path):
    remote.fail.add("pull")
    source.put("x.md", "- [ ] Waiting")
    coordinator = make_coordinator(remote, source, tmp_path)

    report = coordinator.run_cycle()

    assert report.aborted
    assert not report.success
    assert remote.calls == ["pull"]
    assert not (tmp_path / "state.json").exists()
    assert coordinator.phase is SyncPhase.IDLE


def test_state_survives_restart(remote, source, tmp_path):
    source.put("x.md", "- [ ] Persist me")
    make_coordinator(remote, source, tmp_path).run_cycle()

    restarted = make_coordinator(remote, source, tmp_path)
    report = restarted.run_cycle()

    assert restarted.store.get("1000").fields.content == "Persist me"
    assert remote.pulled_cursors == [FULL_SYNC_CURSOR, "cursor-1"]
    assert report.total_changes == 0
    assert restarted.state.last_cycle_at > 0


def test_new_cycle_is_rejected_while_one_is_running(remote, source, tmp_path):
    nested_results = []

    class ReentrantNotifier:
        def notify(self, message: str) -> None:
            nested_results.append(coordinator.run_cycle())

    source.put("x.md", "- [ ] Trigger a summary")
    coordinator = make_coordinator(remote, source, tmp_path, ReentrantNotifier())

    report = coordinator.run_cycle()

    assert report is not None
    assert nested_results == [None]
    assert not coordinator.in_progress


def test_active_document_can_be_skipped(remote, source, tmp_path):
    source.put("x.md", "- [ ] Being typed")
    source.active = "x.md"
    coordinator = SyncCoordinator(
        client=remote,
        source=source,
        state_file=StateFile(tmp_path / "state.json"),
        config=SyncConfig(document_pause_seconds=0.0, skip_active_document=True),
    )

    report = coordinator.run_cycle()

    assert report.documents_processed == 0
    assert remote.tasks == {}


def test_unsynced_documents_are_ignored(remote, source, tmp_path):
    source.put("plain.md", "- [ ] Not for sync", sync=False)
    report = make_coordinator(remote, source, tmp_path).run_cycle()
    assert report.documents_processed == 0
    assert remote.tasks == {}


def test_document_with_pending_changes_is_selected_without_modification(remote, source, tmp_path):
    source.put("x.md", "- [ ] Owed a push", mtime=1_000)
    source.put("y.md", "- [ ] Quiet", mtime=1_000)
    coordinator = make_coordinator(remote, source, tmp_path)
    coordinator.store.upsert(
        TaskRecord(
            id="T1",
            document_path="x.md",
            fields=TaskFields(content="Owed a push"),
            pending_changes=[
                PendingChange(
                    origin=ChangeOrigin.LOCAL,
                    timestamp=900,
                    changes=ChangeFields(task=TaskFields(content="Owed a push", completed=True)),
                )
            ],
        )
    )

    assert coordinator.select_documents(since=5_000) == ["x.md"]

"""Single-file persistence for the task store and sync cursor."""

import os
import tempfile
from pathlib import Path

import structlog
from pydantic import ValidationError

from tasksync.models.state import SyncState

log = structlog.stdlib.get_logger()


class StateFile:
    """Saves and loads :class:`SyncState` as one JSON document.

    A save replaces the file atomically, so a crash leaves either the previous
    state or the new one on disk, never a mix.
    """

    def __init__(self, path: str | Path):
        """
        Initialize state file.

        Args:
            path: Location of the JSON state file
        """
        self._path = Path(path)
        log.info("state_file_initialized", path=str(self._path))

    @property
    def path(self) -> Path:
        return self._path

    def save(self, state: SyncState) -> None:
        """
        Persist the entire sync state.

        Args:
            state: State to save

        Raises:
            RuntimeError: If the state cannot be written
        """
        log.info(
            "saving_sync_state",
            path=str(self._path),
            task_count=len(state.tasks),
            last_cycle_at=state.last_cycle_at,
        )

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    tmp.write(state.model_dump_json(indent=2))
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            log.error("failed_to_save_sync_state", path=str(self._path), error=str(e))
            raise RuntimeError(f"Failed to save sync state: {e}") from e

        log.info("sync_state_saved", path=str(self._path))

    def load(self) -> SyncState:
        """
        Load the persisted sync state.

        Returns:
            Saved state, or a fresh state (full resync cursor, no tasks) when
            nothing has been saved yet

        Raises:
            RuntimeError: If the file exists but cannot be read or parsed
        """
        log.info("loading_sync_state", path=str(self._path))

        if not self._path.exists():
            log.info("no_sync_state_found", path=str(self._path))
            return SyncState()

        try:
            state = SyncState.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            log.error("failed_to_load_sync_state", path=str(self._path), error=str(e))
            raise RuntimeError(f"Failed to load sync state: {e}") from e

        log.info(
            "sync_state_loaded",
            path=str(self._path),
            task_count=len(state.tasks),
            sync_cursor=state.sync_cursor,
        )
        return state

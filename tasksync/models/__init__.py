"""Data models for the task sync engine."""

from tasksync.models.config import (
    AppConfig,
    DocumentsConfig,
    LoggingConfig,
    RemoteConfig,
    RetryConfig,
    SyncConfig,
)
from tasksync.models.remote import (
    CommandResult,
    CreateResult,
    PullResult,
    RemoteTask,
    TaskCreate,
    TaskMove,
    TaskUpdate,
)
from tasksync.models.state import FULL_SYNC_CURSOR, SyncState
from tasksync.models.task import (
    ChangeFields,
    ChangeOrigin,
    ParsedTaskLine,
    PendingChange,
    TaskFields,
    TaskRecord,
)

__all__ = [
    "TaskFields",
    "TaskRecord",
    "PendingChange",
    "ChangeFields",
    "ChangeOrigin",
    "ParsedTaskLine",
    "RemoteTask",
    "PullResult",
    "TaskCreate",
    "TaskUpdate",
    "TaskMove",
    "CreateResult",
    "CommandResult",
    "SyncState",
    "FULL_SYNC_CURSOR",
    "AppConfig",
    "RemoteConfig",
    "SyncConfig",
    "RetryConfig",
    "DocumentsConfig",
    "LoggingConfig",
]

"""Remote task service client"""

from tasksync.remote.errors import InvalidCursorError, RateLimitedError, RemoteSyncError
from tasksync.remote.sync_client import TaskSyncClient

__all__ = ["InvalidCursorError", "RateLimitedError", "RemoteSyncError", "TaskSyncClient"]

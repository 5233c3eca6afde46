"""Task record storage and state persistence"""

from tasksync.storage.state_file import StateFile
from tasksync.storage.task_store import TaskStore

__all__ = ["StateFile", "TaskStore"]

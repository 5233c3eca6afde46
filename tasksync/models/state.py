"""Persisted synchronization state."""

from pydantic import BaseModel, Field

from tasksync.models.task import TaskRecord

# Cursor value requesting a full resync
FULL_SYNC_CURSOR = "*"


class SyncState(BaseModel):
    """Everything that survives between cycles, saved and loaded as one unit."""

    sync_cursor: str = Field(default=FULL_SYNC_CURSOR, description="Incremental pull cursor")
    last_cycle_at: int = Field(
        default=0, ge=0, description="Start of the last completed cycle (epoch milliseconds)"
    )
    tasks: dict[str, TaskRecord] = Field(default_factory=dict, description="Records by remote id")

    model_config = {
        "json_schema_extra": {
            "example": {
                "sync_cursor": "aLGJg_2qwBE_kE3j9_Gn6uoKQtvQeyjm7UEz_aVwF8KdriDxw7e_InFZK61h",
                "last_cycle_at": 1714550400000,
                "tasks": {},
            }
        }
    }

"""Pydantic models for remote task items and batch commands."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from tasksync.models.task import TaskFields

# Priority the remote service assigns when none was chosen
DEFAULT_REMOTE_PRIORITY = 1

MINUTES_PER_DAY = 24 * 60


class RemoteDue(BaseModel):
    """Due information as returned by the remote service."""

    date: str = Field(default=..., description="Due date, optionally with a time part")
    datetime: str | None = Field(default=None, description="Due date and time, if timed")


class RemoteDuration(BaseModel):
    """Task duration as returned by the remote service."""

    amount: int = Field(default=..., ge=1)
    unit: str = Field(default="minute", description="'minute' or 'day'")

    def to_minutes(self) -> int:
        if self.unit == "day":
            return self.amount * MINUTES_PER_DAY
        return self.amount


class RemoteTask(BaseModel):
    """A task item returned by an incremental pull."""

    model_config = {"extra": "ignore"}

    id: str = Field(default=..., description="Remote task identifier")
    content: str = Field(default="", description="Task text")
    checked: bool = Field(default=False, description="Completion state")
    is_deleted: bool = Field(default=False, description="Whether the task was deleted")
    updated_at: str | None = Field(default=None, description="Last modification (RFC3339, UTC)")
    due: RemoteDue | None = None
    priority: int = Field(default=DEFAULT_REMOTE_PRIORITY, ge=1, le=4)
    labels: list[str] = Field(default_factory=list)
    parent_id: str | None = None
    project_id: str | None = None
    duration: RemoteDuration | None = None

    @field_validator("id", "parent_id", "project_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        """The remote service has used both numeric and string identifiers."""
        if v is None:
            return None
        return str(v)

    def to_fields(self, sync_label: str) -> TaskFields:
        """Convert to task fields, dropping the sync marker label."""
        due_date = None
        due_time = None
        due_datetime = None
        if self.due is not None:
            due_date = self.due.date[:10]
            timed = self.due.datetime or (self.due.date if "T" in self.due.date else None)
            if timed and len(timed) >= 16:
                due_time = timed[11:16]
                due_datetime = f"{due_date}T{due_time}:00"

        priority = self.priority if self.priority != DEFAULT_REMOTE_PRIORITY else None

        return TaskFields(
            content=self.content,
            completed=self.checked,
            due_date=due_date,
            due_time=due_time,
            due_datetime=due_datetime,
            priority=priority,
            duration_minutes=self.duration.to_minutes() if self.duration else None,
            labels=[label for label in self.labels if label.lower() != sync_label.lower()],
        )

    def updated_at_millis(self, default: int) -> int:
        """Remote update time in epoch milliseconds, ``default`` if absent or unparseable."""
        if not self.updated_at:
            return default
        try:
            parsed = datetime.fromisoformat(self.updated_at.replace("Z", "+00:00"))
        except ValueError:
            return default
        return int(parsed.timestamp() * 1000)


class PullResult(BaseModel):
    """Result of an incremental pull."""

    items: list[RemoteTask] = Field(default_factory=list)
    sync_cursor: str = Field(default=..., description="Cursor for the next incremental pull")
    full_sync: bool = Field(default=False, description="True when the server sent everything")


class TaskCreate(BaseModel):
    """One task to create remotely."""

    temp_id: str = Field(default=..., description="Client-side placeholder id")
    fields: TaskFields
    parent_id: str | None = Field(default=None, description="Existing remote parent, None = root")


class TaskUpdate(BaseModel):
    """Field and/or completion update for one remote task."""

    id: str
    fields: TaskFields
    update_fields: bool = Field(default=True, description="Send an item update command")
    update_completion: bool = Field(default=False, description="Send a complete/uncomplete command")


class TaskMove(BaseModel):
    """Reparent one remote task; ``parent_id=None`` detaches it to the root container."""

    id: str
    parent_id: str | None = None


class CreateResult(BaseModel):
    """Result of a batch create."""

    temp_id_mapping: dict[str, str] = Field(default_factory=dict)
    sync_cursor: str | None = None
    failures: dict[str, str] = Field(
        default_factory=dict, description="temp_id -> error for commands the server rejected"
    )


class CommandResult(BaseModel):
    """Result of a batch update, move or delete."""

    sync_cursor: str | None = None
    failures: dict[str, str] = Field(
        default_factory=dict, description="task id -> error for commands the server rejected"
    )

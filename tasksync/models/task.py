"""Pydantic models for task records, pending changes and scanned task lines."""

from enum import Enum

from pydantic import BaseModel, Field


class ChangeOrigin(str, Enum):
    """Side of the sync that produced a pending change."""

    LOCAL = "local"
    REMOTE = "remote"


class TaskFields(BaseModel):
    """The mutable, user-visible fields of a task."""

    content: str = Field(default=..., description="Task text without metadata")
    completed: bool = Field(default=False, description="Checkbox state")
    due_date: str | None = Field(default=None, description="Due date (YYYY-MM-DD)")
    due_time: str | None = Field(default=None, description="Due time (HH:MM)")
    due_datetime: str | None = Field(
        default=None, description="Combined due date and time (YYYY-MM-DDTHH:MM:SS)"
    )
    priority: int | None = Field(default=None, ge=1, le=4, description="Priority (1-4)")
    duration_minutes: int | None = Field(default=None, ge=1, description="Duration in minutes")
    labels: list[str] = Field(default_factory=list, description="Labels, order is not significant")

    model_config = {
        "json_schema_extra": {
            "example": {
                "content": "Write quarterly report",
                "completed": False,
                "due_date": "2024-05-01",
                "due_time": "09:30",
                "due_datetime": "2024-05-01T09:30:00",
                "priority": 3,
                "duration_minutes": 90,
                "labels": ["work"],
            }
        }
    }

    def same_as(self, other: "TaskFields") -> bool:
        """Compare field by field, treating labels as an unordered set."""
        return not self.differing_fields(other)

    def differing_fields(self, other: "TaskFields") -> list[str]:
        """Names of the fields whose values differ from ``other``."""
        differing: list[str] = []
        for name in (
            "content",
            "completed",
            "due_date",
            "due_time",
            "due_datetime",
            "priority",
            "duration_minutes",
        ):
            if getattr(self, name) != getattr(other, name):
                differing.append(name)
        if set(self.labels) != set(other.labels):
            differing.append("labels")
        return differing


class ChangeFields(BaseModel):
    """Changeset carried by a pending change.

    ``task`` holds the full set of field values observed on the originating side.
    ``parent_id`` is only meaningful when ``parent_changed`` is set, since ``None``
    is itself a valid target (the task becomes a root task).
    """

    task: TaskFields | None = Field(default=None, description="Observed field values")
    deleted: bool = Field(default=False, description="True when the task was deleted")
    parent_id: str | None = Field(default=None, description="New parent id (None = root)")
    parent_changed: bool = Field(default=False, description="True when parent_id is part of the change")


class PendingChange(BaseModel):
    """A detected divergence awaiting conflict resolution."""

    origin: ChangeOrigin = Field(default=..., description="Which side produced the change")
    timestamp: int = Field(
        default=...,
        description="Epoch milliseconds: document mtime (local) or remote update time (remote)",
    )
    changes: ChangeFields = Field(default_factory=ChangeFields)


class TaskRecord(BaseModel):
    """Authoritative cached state of one remote task, keyed by its remote id."""

    id: str = Field(default=..., min_length=1, description="Remote task identifier")
    document_path: str = Field(default=..., description="Document that last owned the task")
    fields: TaskFields
    parent_id: str | None = Field(default=None, description="Remote id of the parent task")
    last_synced_at: int = Field(default=0, ge=0, description="Epoch milliseconds of last sync")
    pending_changes: list[PendingChange] = Field(default_factory=list)

    @property
    def has_pending_changes(self) -> bool:
        return bool(self.pending_changes)


class ParsedTaskLine(BaseModel):
    """One task line found while scanning a document.

    Parent linkage is exactly one of: a resolved ``parent_id``, an unresolved
    ``parent_content`` placeholder (the parent is a brand-new task without an id
    yet), or neither (root task). ``parent_skipped`` marks a parent line that
    could not be used (malformed or a duplicate id); such a task keeps its
    stored parent.
    """

    line_index: int = Field(default=..., ge=0)
    text: str = Field(default=..., description="Raw line text, indentation included")
    fields: TaskFields
    task_id: str | None = Field(default=None, description="Embedded remote id, if any")
    parent_line_index: int | None = Field(default=None, description="Line of the structural parent")
    parent_id: str | None = Field(default=None)
    parent_content: str | None = Field(default=None)
    parent_skipped: bool = Field(
        default=False, description="Structural parent is a task line that was skipped while scanning"
    )

    @property
    def is_new(self) -> bool:
        return self.task_id is None

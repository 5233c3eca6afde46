"""Data models for synchronization cycles."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SyncPhase(str, Enum):
    """States of the sync orchestrator."""

    IDLE = "idle"
    PULLING = "pulling"
    SELECTING_DOCUMENTS = "selecting_documents"
    PROCESSING_DOCUMENTS = "processing_documents"
    PERSISTING = "persisting"


class DocumentReport(BaseModel):
    """What one document's reconciliation pass did."""

    document_path: str = Field(..., description="Document that was reconciled")
    tasks_created: int = Field(default=0, ge=0, description="New tasks created remotely")
    ghost_tasks_deleted: int = Field(
        default=0, ge=0, description="Created tasks deleted again because their line vanished"
    )
    remote_updates: int = Field(default=0, ge=0, description="Local changes pushed to the remote")
    local_updates: int = Field(default=0, ge=0, description="Remote changes written into the document")
    remote_deletions: int = Field(default=0, ge=0, description="Tasks deleted on the remote")
    local_deletions: int = Field(default=0, ge=0, description="Task lines removed from the document")
    moves: int = Field(default=0, ge=0, description="Tasks reparented on either side")
    relocated_tasks: int = Field(default=0, ge=0, description="Tasks found in another document")
    relocated_to: list[str] = Field(
        default_factory=list, description="Documents that now own relocated tasks"
    )
    anomalies: list[str] = Field(default_factory=list, description="Non-fatal irregularities")
    errors: list[str] = Field(default_factory=list, description="Failed batches or writes")


class SyncReport(BaseModel):
    """Report of one synchronization cycle."""

    documents_processed: int = Field(default=0, ge=0, description="Documents reconciled")
    tasks_created: int = Field(default=0, ge=0)
    remote_updates: int = Field(default=0, ge=0)
    local_updates: int = Field(default=0, ge=0)
    remote_deletions: int = Field(default=0, ge=0)
    local_deletions: int = Field(default=0, ge=0)
    moves: int = Field(default=0, ge=0)
    relocated_tasks: int = Field(default=0, ge=0)
    pulled_items: int = Field(default=0, ge=0, description="Items received from the remote pull")
    full_resync: bool = Field(default=False, description="True when the pull was a full resync")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Cycle duration in seconds")
    start_time: datetime = Field(..., description="Cycle start timestamp")
    end_time: datetime | None = Field(default=None, description="Cycle end timestamp")
    anomalies: list[str] = Field(default_factory=list)
    errors: list[str] = Field(
        default_factory=list, description="List of errors encountered during the cycle"
    )
    aborted: bool = Field(default=False, description="True when the cycle stopped early")

    @property
    def total_changes(self) -> int:
        """Get total number of changes applied on either side."""
        return (
            self.tasks_created
            + self.remote_updates
            + self.local_updates
            + self.remote_deletions
            + self.local_deletions
            + self.moves
        )

    @property
    def success(self) -> bool:
        """Check if the cycle completed without errors."""
        return not self.aborted and len(self.errors) == 0

    def add_document(self, document: DocumentReport) -> None:
        """Fold one document's results into the cycle totals."""
        self.documents_processed += 1
        self.tasks_created += document.tasks_created
        self.remote_updates += document.remote_updates
        self.local_updates += document.local_updates
        self.remote_deletions += document.remote_deletions + document.ghost_tasks_deleted
        self.local_deletions += document.local_deletions
        self.moves += document.moves
        self.relocated_tasks += document.relocated_tasks
        self.anomalies.extend(document.anomalies)
        self.errors.extend(document.errors)

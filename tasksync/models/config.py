"""Configuration models for the task sync engine."""

from pydantic import BaseModel, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

# Remote batch commands are capped at this many items per request
MAX_BATCH_SIZE = 100


class RemoteConfig(BaseModel):
    """Configuration for the remote task service."""

    api_url: HttpUrl = Field(
        default="https://api.todoist.com/sync/v9/sync", description="Sync endpoint URL"
    )
    api_token: str = Field(default=..., description="API authentication token")
    default_project_id: str | None = Field(
        default=None,
        description="Container for root tasks. The inbox project is discovered when unset.",
    )
    sync_label: str = Field(default="tdsync", description="Label marking tasks managed by this system")
    timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP request timeout")


class SyncConfig(BaseModel):
    """Configuration for the reconciliation cycle."""

    conflict_window_seconds: float = Field(
        default=60.0,
        ge=-3600.0,
        le=3600.0,
        description="Signed window: positive = remote wins ties within window, otherwise local wins",
    )
    self_write_window_seconds: float = Field(
        default=5.0, ge=0.0, le=60.0, description="Ignore local edits this close to the last sync"
    )
    batch_size: int = Field(
        default=MAX_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE, description="Items per remote batch"
    )
    max_hierarchy_depth: int = Field(default=10, ge=1, le=50, description="Depth cap for parent chains")
    search_chunk_size: int = Field(
        default=30, ge=1, description="Documents scanned between yields during the id search"
    )
    document_pause_seconds: float = Field(
        default=0.1, ge=0.0, description="Pause after each document to keep the host responsive"
    )
    interval_seconds: int = Field(default=60, ge=20, description="Scheduled cycle interval")
    skip_active_document: bool = Field(
        default=False, description="Scheduled cycles leave the document being edited alone"
    )


class RetryConfig(BaseModel):
    """Backoff settings for rate-limited remote requests."""

    base_delay_seconds: float = Field(default=5.0, gt=0)
    max_delay_seconds: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=3, ge=0, le=10)


class DocumentsConfig(BaseModel):
    """Where the plain-text task documents live."""

    root: str = Field(default=..., description="Directory containing the documents")
    pattern: str = Field(default="**/*.md", description="Glob selecting candidate documents")
    sync_marker: str = Field(
        default="todoist-sync", description="Frontmatter key that enables sync for a document"
    )
    state_file: str = Field(
        default=".tasksync/state.json", description="Persisted task store and cursor"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the TASKSYNC_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    remote: RemoteConfig
    documents: DocumentsConfig
    sync: SyncConfig = Field(default_factory=SyncConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

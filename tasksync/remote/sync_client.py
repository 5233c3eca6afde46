"""Client for the remote task service's token-cursor sync API."""

import json
import uuid
from typing import Any, Callable, Sequence

import requests
import structlog
from pydantic import ValidationError
from requests.exceptions import RequestException

from tasksync.models.config import MAX_BATCH_SIZE, RetryConfig
from tasksync.models.remote import (
    CommandResult,
    CreateResult,
    PullResult,
    RemoteTask,
    TaskCreate,
    TaskMove,
    TaskUpdate,
)
from tasksync.models.state import FULL_SYNC_CURSOR
from tasksync.models.task import TaskFields
from tasksync.remote.errors import InvalidCursorError, RateLimitedError, RemoteSyncError
from tasksync.utils.batching import chunked
from tasksync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

DEFAULT_API_URL = "https://api.todoist.com/sync/v9/sync"

INVALID_CURSOR_TAG = "INVALID_SYNC_TOKEN"


def _is_invalid_cursor(payload: dict[str, Any]) -> bool:
    if payload.get("error_tag") == INVALID_CURSOR_TAG:
        return True
    message = str(payload.get("error", "")).lower()
    return "sync token" in message and "invalid" in message


class TaskSyncClient:
    """Incremental pull and batched create/update/move/delete against the sync endpoint.

    Rate-limited requests (HTTP 429) are retried with exponential backoff.
    Every other failure raises :class:`RemoteSyncError` immediately so the
    caller can fail just that batch.
    """

    def __init__(
        self,
        api_token: str,
        api_url: str = DEFAULT_API_URL,
        sync_label: str = "tdsync",
        default_project_id: str | None = None,
        retry_config: RetryConfig | None = None,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
        notify: Callable[[str], None] | None = None,
    ):
        """
        Initialize the sync client.

        Args:
            api_token: Bearer token for the remote service
            api_url: Sync endpoint URL
            sync_label: Label attached to every task this system creates
            default_project_id: Container for root tasks (inbox discovered when None)
            retry_config: Backoff settings for rate-limited requests
            timeout_seconds: Per-request timeout
            session: Optional preconfigured requests session
            notify: Optional callback surfacing user-visible messages
        """
        self._api_url = str(api_url)
        self._sync_label = sync_label
        self._default_project_id = default_project_id
        self._timeout = timeout_seconds
        self._notify = notify
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {api_token}"})

        retry_config = retry_config or RetryConfig()
        self._request = exponential_backoff_retry(
            max_retries=retry_config.max_retries,
            base_delay=retry_config.base_delay_seconds,
            max_delay=retry_config.max_delay_seconds,
            exceptions=(RateLimitedError,),
            on_retry=self._report_rate_limit,
        )(self._request_once)

        log.info("sync_client_initialized", api_url=self._api_url, sync_label=sync_label)

    @property
    def sync_label(self) -> str:
        return self._sync_label

    def pull(self, cursor: str) -> PullResult:
        """
        Pull task items changed since ``cursor``.

        An invalid or expired cursor falls back once to a full resync.

        Args:
            cursor: Cursor from the previous pull, or "*" for everything

        Returns:
            PullResult with changed items and the cursor for the next pull

        Raises:
            RemoteSyncError: If the pull (or the fallback full resync) fails
        """
        log.info("pulling_remote_changes", full=cursor == FULL_SYNC_CURSOR)

        try:
            data = self._request({"sync_token": cursor, "resource_types": json.dumps(["items"])})
            full_sync = bool(data.get("full_sync", cursor == FULL_SYNC_CURSOR))
        except InvalidCursorError:
            if cursor == FULL_SYNC_CURSOR:
                raise
            log.warning("sync_cursor_rejected_falling_back_to_full_sync")
            self._emit("Sync cursor expired, performing full resync")
            data = self._request(
                {"sync_token": FULL_SYNC_CURSOR, "resource_types": json.dumps(["items"])}
            )
            full_sync = True

        items: list[RemoteTask] = []
        for raw_item in data.get("items") or []:
            try:
                items.append(RemoteTask.model_validate(raw_item))
            except ValidationError as e:
                log.warning("malformed_remote_item", item_id=raw_item.get("id"), error=str(e))

        new_cursor = data.get("sync_token")
        if not new_cursor:
            raise RemoteSyncError("Pull response carried no sync token")

        log.info("remote_changes_pulled", item_count=len(items), full_sync=full_sync)
        return PullResult(items=items, sync_cursor=new_cursor, full_sync=full_sync)

    def batch_create(self, items: Sequence[TaskCreate]) -> CreateResult:
        """
        Create up to 100 tasks in one request.

        Root tasks go to the default project; tasks with a parent inherit it
        remotely.

        Returns:
            CreateResult mapping each accepted temp_id to its new remote id
        """
        self._check_batch(items)

        commands = []
        uuid_to_temp_id: dict[str, str] = {}
        for item in items:
            args = self._field_args(item.fields)
            if item.parent_id is not None:
                args["parent_id"] = item.parent_id
            elif self._default_project_id:
                args["project_id"] = self._default_project_id
            command = self._command("item_add", args, temp_id=item.temp_id)
            uuid_to_temp_id[command["uuid"]] = item.temp_id
            commands.append(command)

        data = self._send_commands(commands)
        failures = self._failures(data, uuid_to_temp_id)
        mapping = {
            temp_id: str(real_id)
            for temp_id, real_id in (data.get("temp_id_mapping") or {}).items()
            if temp_id not in failures
        }

        log.info("remote_tasks_created", requested=len(items), created=len(mapping), failed=len(failures))
        return CreateResult(
            temp_id_mapping=mapping, sync_cursor=data.get("sync_token"), failures=failures
        )

    def batch_update(self, items: Sequence[TaskUpdate]) -> CommandResult:
        """
        Update up to 100 tasks.

        Field changes and completion-state changes are separate remote
        commands; both are issued when both are requested.
        """
        self._check_batch(items)

        commands = []
        uuid_to_task: dict[str, str] = {}
        for item in items:
            if item.update_fields:
                args = self._field_args(item.fields)
                args["id"] = item.id
                commands.append(self._command("item_update", args))
                uuid_to_task[commands[-1]["uuid"]] = item.id
            if item.update_completion:
                command_type = "item_complete" if item.fields.completed else "item_uncomplete"
                commands.append(self._command(command_type, {"id": item.id}))
                uuid_to_task[commands[-1]["uuid"]] = item.id

        result = self._send_in_chunks(commands, uuid_to_task)
        log.info("remote_tasks_updated", requested=len(items), failed=len(result.failures))
        return result

    def batch_move(self, items: Sequence[TaskMove]) -> CommandResult:
        """
        Reparent up to 100 tasks.

        The remote service has no "no parent" value, so detaching a task to
        the root means moving it into the default project.
        """
        self._check_batch(items)

        commands = []
        uuid_to_task: dict[str, str] = {}
        for item in items:
            if item.parent_id is not None:
                args = {"id": item.id, "parent_id": item.parent_id}
            else:
                args = {"id": item.id, "project_id": self.root_project_id()}
            commands.append(self._command("item_move", args))
            uuid_to_task[commands[-1]["uuid"]] = item.id

        result = self._send_in_chunks(commands, uuid_to_task)
        log.info("remote_tasks_moved", requested=len(items), failed=len(result.failures))
        return result

    def batch_delete(self, task_ids: Sequence[str]) -> CommandResult:
        """Delete up to 100 tasks."""
        self._check_batch(task_ids)

        commands = []
        uuid_to_task: dict[str, str] = {}
        for task_id in task_ids:
            commands.append(self._command("item_delete", {"id": task_id}))
            uuid_to_task[commands[-1]["uuid"]] = task_id

        result = self._send_in_chunks(commands, uuid_to_task)
        log.info("remote_tasks_deleted", requested=len(task_ids), failed=len(result.failures))
        return result

    def root_project_id(self) -> str:
        """
        Container used for root tasks.

        Returns the configured default project, otherwise discovers and caches
        the inbox project.

        Raises:
            RemoteSyncError: If no inbox project can be found
        """
        if self._default_project_id:
            return self._default_project_id

        data = self._request(
            {"sync_token": FULL_SYNC_CURSOR, "resource_types": json.dumps(["projects"])}
        )
        for project in data.get("projects") or []:
            if project.get("inbox_project") and not project.get("is_deleted"):
                self._default_project_id = str(project["id"])
                log.info("inbox_project_discovered", project_id=self._default_project_id)
                return self._default_project_id

        raise RemoteSyncError("No default project configured and no inbox project found")

    def _field_args(self, fields: TaskFields) -> dict[str, Any]:
        labels = [label for label in fields.labels if label.lower() != self._sync_label.lower()]
        args: dict[str, Any] = {
            "content": fields.content,
            "labels": labels + [self._sync_label],
            "priority": fields.priority or 1,
        }

        if fields.due_datetime:
            args["due"] = {"date": fields.due_datetime}
        elif fields.due_date:
            args["due"] = {"date": fields.due_date}
        else:
            args["due"] = None

        if fields.duration_minutes:
            args["duration"] = {"amount": fields.duration_minutes, "unit": "minute"}
        else:
            args["duration"] = None

        return args

    @staticmethod
    def _command(command_type: str, args: dict[str, Any], temp_id: str | None = None) -> dict[str, Any]:
        command: dict[str, Any] = {"type": command_type, "uuid": str(uuid.uuid4()), "args": args}
        if temp_id is not None:
            command["temp_id"] = temp_id
        return command

    @staticmethod
    def _check_batch(items: Sequence[Any]) -> None:
        if not items:
            raise ValueError("Batch is empty")
        if len(items) > MAX_BATCH_SIZE:
            raise ValueError(
                f"Cannot send more than {MAX_BATCH_SIZE} items in a single batch, got {len(items)}"
            )

    @staticmethod
    def _failures(data: dict[str, Any], uuid_to_key: dict[str, str]) -> dict[str, str]:
        failures: dict[str, str] = {}
        for command_uuid, status in (data.get("sync_status") or {}).items():
            if status == "ok" or command_uuid not in uuid_to_key:
                continue
            error = status.get("error", str(status)) if isinstance(status, dict) else str(status)
            failures[uuid_to_key[command_uuid]] = error
            log.warning("remote_command_failed", key=uuid_to_key[command_uuid], error=error)
        return failures

    def _send_commands(self, commands: list[dict[str, Any]]) -> dict[str, Any]:
        return self._request({"commands": json.dumps(commands)})

    def _send_in_chunks(
        self, commands: list[dict[str, Any]], uuid_to_task: dict[str, str]
    ) -> CommandResult:
        # One task may need two commands, so requests are split by command count
        cursor: str | None = None
        failures: dict[str, str] = {}
        for command_chunk in chunked(commands, MAX_BATCH_SIZE):
            data = self._send_commands(command_chunk)
            cursor = data.get("sync_token") or cursor
            failures.update(self._failures(data, uuid_to_task))
        return CommandResult(sync_cursor=cursor, failures=failures)

    def _request_once(self, payload: dict[str, str]) -> dict[str, Any]:
        try:
            response = self._session.post(self._api_url, data=payload, timeout=self._timeout)
        except RequestException as e:
            log.error("remote_request_failed", error=str(e))
            raise RemoteSyncError(f"Remote request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitedError("Rate limited by remote service", status_code=429)

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            if isinstance(data, dict) and _is_invalid_cursor(data):
                raise InvalidCursorError("Invalid sync token", status_code=response.status_code)
            raise RemoteSyncError(
                f"Remote API error ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

        if not isinstance(data, dict):
            raise RemoteSyncError("Remote API returned a non-JSON response")

        if data.get("error"):
            if _is_invalid_cursor(data):
                raise InvalidCursorError("Invalid sync token")
            raise RemoteSyncError(f"Remote API error: {data['error']}")

        return data

    def _report_rate_limit(self, attempt: int, delay: float, error: Exception) -> None:
        self._emit(f"Rate limited by remote service, waiting {delay:.0f}s (retry {attempt})")

    def _emit(self, message: str) -> None:
        if self._notify is not None:
            self._notify(message)

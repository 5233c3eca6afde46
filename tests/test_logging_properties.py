"""Property-based tests for logging configuration.

Every log entry rendered as JSON carries a timestamp, a level, the event
name and its context fields.
"""

import json
import logging
from datetime import datetime
from io import StringIO

import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from tasksync.models.config import LoggingConfig
from tasksync.utils.logging_config import configure_logging, configure_logging_from_config


def _capture() -> tuple[StringIO, logging.Handler]:
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.root.addHandler(handler)
    logging.root.setLevel(logging.DEBUG)
    return buffer, handler


@given(
    log_level=st.sampled_from(["debug", "info", "warning", "error", "critical"]),
    error_message=st.text(min_size=1, max_size=200),
    task_id=st.text(alphabet="0123456789", min_size=1, max_size=12),
)
@settings(max_examples=50, deadline=None)
def test_json_log_entries_carry_required_fields(log_level: str, error_message: str, task_id: str) -> None:
    configure_logging(log_level="DEBUG", json_logs=True)
    buffer, handler = _capture()
    try:
        log = structlog.stdlib.get_logger("tasksync.test")
        getattr(log, log_level)("remote_command_failed", error=error_message, task_id=task_id)
    finally:
        logging.root.removeHandler(handler)

    entry = json.loads(buffer.getvalue().strip().splitlines()[-1])

    datetime.fromisoformat(entry["timestamp"].replace("Z", "+00:00"))
    assert entry["level"] == log_level
    assert entry["event"] == "remote_command_failed"
    assert entry["error"] == error_message
    assert entry["task_id"] == task_id
    assert "func_name" in entry


def test_console_rendering_is_not_json() -> None:
    configure_logging(log_level="INFO", json_logs=False)
    buffer, handler = _capture()
    try:
        structlog.stdlib.get_logger("tasksync.console").info("sync_cycle_started", full_resync=True)
    finally:
        logging.root.removeHandler(handler)

    output = buffer.getvalue()
    assert "sync_cycle_started" in output
    assert not output.lstrip().startswith("{")


def test_configure_from_config_writes_log_file(tmp_path) -> None:
    log_file = tmp_path / "tasksync.log"
    configure_logging_from_config(LoggingConfig(log_level="INFO", json_logs=True, log_file=str(log_file)))
    try:
        structlog.stdlib.get_logger("tasksync.file").info("sync_state_saved", path="state.json")
    finally:
        for handler in list(logging.root.handlers):
            if getattr(handler, "baseFilename", None) == str(log_file):
                handler.close()
                logging.root.removeHandler(handler)

    assert "sync_state_saved" in log_file.read_text(encoding="utf-8")

"""Structured logging setup for the sync engine."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog

from tasksync.models.config import LoggingConfig

# Rotating log file: 10MB per file, five backups
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

CALLSITE = [
    structlog.processors.CallsiteParameter.FILENAME,
    structlog.processors.CallsiteParameter.LINENO,
    structlog.processors.CallsiteParameter.FUNC_NAME,
]


def _renderer(json_logs: bool) -> Any:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Route structlog events through the standard library root logger.

    Scheduled runs use JSON lines, interactive runs the console renderer.
    Every event carries an ISO UTC timestamp, its level and its call site.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines instead of console output
        log_file: Optional rotating log file in addition to stdout
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=level, stream=sys.stdout)
    # basicConfig leaves an already configured root logger alone
    logging.root.setLevel(level)

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS)
        file_handler.setLevel(level)
        logging.root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.CallsiteParameterAdder(parameters=CALLSITE),
            _renderer(json_logs),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_config(config: LoggingConfig) -> None:
    """Apply the ``logging`` section of the application configuration."""
    configure_logging(
        log_level=config.log_level,
        json_logs=config.json_logs,
        log_file=config.log_file,
    )

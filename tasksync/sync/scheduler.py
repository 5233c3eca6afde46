"""Cooperative yield points and user-visible notices for a sync cycle."""

import time
from typing import Protocol

import structlog

log = structlog.stdlib.get_logger()


class CooperativeScheduler:
    """Explicit yield points of a cycle.

    The cycle is single-threaded; it gives the host a chance to run after
    each document and every ``search_chunk_size`` documents of a long id
    search.
    """

    def __init__(self, document_pause_seconds: float = 0.1, search_chunk_size: int = 30):
        self.document_pause_seconds = document_pause_seconds
        self.search_chunk_size = search_chunk_size

    def after_document(self) -> None:
        time.sleep(self.document_pause_seconds)

    def during_search(self) -> None:
        time.sleep(0)


class Notifier(Protocol):
    """Surfaces messages to the user."""

    def notify(self, message: str) -> None: ...


class LogNotifier:
    """Notifier for unattended runs: notices go to the log."""

    def notify(self, message: str) -> None:
        log.info("user_notice", message=message)

"""Shared utilities for configuration, logging, batching and error handling"""

from tasksync.utils.batching import chunked
from tasksync.utils.clock import epoch_millis
from tasksync.utils.retry import exponential_backoff_retry

__all__ = ["chunked", "epoch_millis", "exponential_backoff_retry"]

"""Utility modules for retries and logging."""
from .connection import (
    with_retry,
    retrying,
    RetryPolicy,
    SHORT_RETRY,
    DEFAULT_RETRY,
    NO_RETRY,
    RETRYABLE_EXCEPTIONS,
)
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    get_task_logger,
    perf_logger,
)

__all__ = [
    "with_retry",
    "retrying",
    "RetryPolicy",
    "SHORT_RETRY",
    "DEFAULT_RETRY",
    "NO_RETRY",
    "RETRYABLE_EXCEPTIONS",
    "setup_logging",
    "timed",
    "timed_section",
    "get_task_logger",
    "perf_logger",
]

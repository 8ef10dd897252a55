"""Logging configuration for the onboarding engine.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- Performance timing helpers for device reads and diffing
- Task-scoped loggers that prefix every message with the task id

Environment Variables:
    ONBOARDCRAFT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    ONBOARDCRAFT_LOG_FILE: Path to log file (default: ~/.onboardcraft/onboardcraft.log)
    ONBOARDCRAFT_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    ONBOARDCRAFT_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from mcp_device_onboarding.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("read_current")
    async def get(self, declaration, state):
        ...

    async with timed_section("inspect", device_id="bigip-1"):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("onboardcraft.perf")


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("ONBOARDCRAFT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".onboardcraft" / "onboardcraft.log"
    path_str = os.environ.get("ONBOARDCRAFT_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects ONBOARDCRAFT_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for timing metrics
    """
    log_level = get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("ONBOARDCRAFT_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("ONBOARDCRAFT_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-25s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # stderr: stdout belongs to the MCP stdio transport
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    perf_log_file = log_file.parent / "onboardcraft-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    package_logger = logging.getLogger("mcp_device_onboarding")
    package_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    package_logger.addHandler(console_handler)
    package_logger.addHandler(file_handler)

    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(perf_handler)
    perf_logger.addHandler(console_handler)

    package_logger.info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )
    perf_logger.info(f"Performance logging to: {perf_log_file}")


class TaskLoggerAdapter(logging.LoggerAdapter):
    """Prefixes log messages with the owning task id."""

    def process(self, msg, kwargs):
        task_id = self.extra.get("task_id") if self.extra else None
        if task_id:
            return f"[task {task_id}] {msg}", kwargs
        return msg, kwargs


def get_task_logger(name: str, task_id: Optional[str] = None) -> TaskLoggerAdapter:
    """Get a logger whose messages carry the task id.

    Args:
        name: Logger name, usually __name__
        task_id: Identifier of the request/task being processed
    """
    return TaskLoggerAdapter(logging.getLogger(name), {"task_id": task_id})


def _format_timing(operation: str, device_id: Optional[str], elapsed: float, outcome: str) -> str:
    return f"{operation:20s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | {outcome}"


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator to log execution time of sync/async functions.

    Args:
        operation: Name of the operation (e.g., "read_current", "parse")
        device_id: Optional device identifier (can also be inferred from self.device_id)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            dev_id = device_id
            if dev_id is None and args and hasattr(args[0], 'device_id'):
                dev_id = args[0].device_id

            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format_timing(operation, dev_id, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_format_timing(operation, dev_id, elapsed, "OK"))
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            dev_id = device_id
            if dev_id is None and args and hasattr(args[0], 'device_id'):
                dev_id = args[0].device_id

            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format_timing(operation, dev_id, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_format_timing(operation, dev_id, elapsed, "OK"))
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Args:
        operation: Name of the operation
        device_id: Device identifier
        **extra: Additional context to log

    Usage:
        async with timed_section("tool:inspect_device", device_id="bigip-1"):
            ...
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = _format_timing(operation, device_id, elapsed, f"FAIL: {e}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise
    elapsed = (time.perf_counter() - start) * 1000
    msg = _format_timing(operation, device_id, elapsed, "OK")
    if extra_str:
        msg += f" | {extra_str}"
    perf_logger.info(msg)

"""Trace collaborator for debugging reconciliations.

Writes masked copies of the current config, desired config and diff to a
trace directory, and/or hands them to a listener. Tracing never fails the
operation being traced.
"""
import inspect
import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Optional

from ..utils.logging_config import get_task_logger
from .schema import Change

logger = logging.getLogger(__name__)

MASK_REGEX = re.compile(r"pass(word|phrase)|secret", re.IGNORECASE)
MASK = "********"

TRACE_FILES = {
    "current": "DO_current.json",
    "desired": "DO_desired.json",
    "diff": "DO_diff.json",
}


def mask(value: Any) -> Any:
    """Copy of `value` with secret-looking keys blanked out, recursively."""
    if isinstance(value, dict):
        return {
            key: MASK if MASK_REGEX.search(str(key)) and not isinstance(item, (dict, list)) else mask(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [mask(item) for item in value]
    return value


class DiffTracer:
    """Optionally persists and/or emits configs and diffs."""

    def __init__(
        self,
        trace: bool = False,
        trace_response: bool = False,
        trace_dir: Optional[Path] = None,
        listener: Optional[Callable[[str, Optional[str], Any], Any]] = None,
        task_id: Optional[str] = None,
    ):
        """
        Initialize the tracer.

        Args:
            trace: Write trace files
            trace_response: Hand traces to the listener
            trace_dir: Where trace files go (default: /tmp)
            listener: Called as listener(kind, task_id, masked_payload)
            task_id: Task the traces belong to
        """
        self.trace_enabled = trace
        self.trace_response = trace_response
        self.trace_dir = Path(trace_dir) if trace_dir else Path("/tmp")
        self.listener = listener
        self.task_id = task_id
        self.log = get_task_logger(__name__, task_id)

    async def trace_config(self, kind: str, data: Any) -> None:
        """Trace the "current" or "desired" config."""
        await self._emit(kind, mask(data))

    async def trace(self, changes: list[Change]) -> None:
        """Trace the list of changes a diff acted upon."""
        await self._emit("diff", mask([change.to_dict() for change in changes]))

    async def _emit(self, kind: str, payload: Any) -> None:
        if self.trace_response and self.listener is not None:
            try:
                result = self.listener(kind, self.task_id, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.log.warning(f"Trace listener failed for {kind}: {e}")

        if self.trace_enabled:
            path = self.trace_dir / TRACE_FILES.get(kind, f"DO_{kind}.json")
            try:
                path.write_text(json.dumps(payload, indent=2, default=str))
            except OSError as e:
                self.log.error(f"Error writing trace file {path}: {e}")

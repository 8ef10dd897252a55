"""Schema definitions for the Config Engine.

Defines the result objects passed between parser, reader, diff and inspection.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ChangeType(str, Enum):
    """Type of change in a diff."""
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


# --- Validation Results ---

@dataclass
class ValidationResult:
    """Result of declaration validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.valid

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


# --- Parse Results ---

@dataclass
class ParseResult:
    """Declaration flattened to tenant -> class -> object."""
    tenants: list[str] = field(default_factory=list)
    parsed_declaration: dict[str, Any] = field(default_factory=dict)


# --- Device State ---

@dataclass
class DeviceState:
    """Mutable per-device state threaded through repeated reads.

    `current_config` is replaced on each successful read. `original_config`
    mirrors the baseline for the device and is also the source a legacy
    baseline is migrated from.
    """
    task_id: Optional[str] = None
    current_config: dict[str, Any] = field(default_factory=dict)
    original_config: Optional[dict[str, Any]] = None


# --- Diff Results ---

@dataclass
class Change:
    """A single primitive difference between two documents."""
    kind: ChangeType
    path: tuple[str, ...]
    lhs: Any = None
    rhs: Any = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"kind": self.kind.value, "path": list(self.path)}
        if self.kind != ChangeType.CREATE:
            data["lhs"] = self.lhs
        if self.kind != ChangeType.DELETE:
            data["rhs"] = self.rhs
        return data


@dataclass
class DiffResult:
    """Result of diffing desired vs current state."""
    to_update: dict[str, Any] = field(default_factory=dict)
    to_delete: dict[str, Any] = field(default_factory=dict)
    changes: list[Change] = field(default_factory=list)

    @property
    def no_change(self) -> bool:
        """Check if there are any changes."""
        return len(self.changes) == 0

    @property
    def total_changes(self) -> int:
        """Total number of changes."""
        return len(self.changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "toUpdate": self.to_update,
            "toDelete": self.to_delete,
            "changes": [change.to_dict() for change in self.changes],
        }


# --- Inspection Results ---

@dataclass
class InspectResult:
    """Declaration rebuilt from live device state."""
    declaration: dict[str, Any] = field(default_factory=dict)
    valid: bool = True
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "valid": self.valid,
            "errors": self.errors,
            "declaration": {"class": "DO", "declaration": self.declaration},
        }


# --- Plan Results ---

@dataclass
class PlanResult:
    """Result of planning a declaration against a device."""
    device_id: str
    success: bool = False
    tenants: list[str] = field(default_factory=list)
    diff: Optional[DiffResult] = None
    summary: str = ""
    warnings: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "device_id": self.device_id,
            "tenants": self.tenants,
            "diff": self.diff.to_dict() if self.diff else None,
            "summary": self.summary,
            "warnings": self.warnings,
            "error": self.error,
        }

"""Config Engine - bidirectional mapping between declarations and device config.

The Config Engine turns onboarding declarations and live device state into
one normalized representation (tenant -> class -> object):
- Declarations are parsed and renamed to device-native ids
- Device containers are read, mapped and merged per the catalog
- Diffs respect a per-class source-of-truth policy
- Live state can be rebuilt into a declaration (inspection)

Usage:
    from mcp_device_onboarding.config_engine import ConfigEngine

    engine = ConfigEngine()
    async with device:
        result = await engine.plan({
            "class": "Device",
            "Common": {
                "class": "Tenant",
                "myNtp": {"class": "NTP", "servers": ["0.pool.ntp.org"], "timezone": "UTC"},
            },
        }, device)
"""

from .engine import ConfigEngine
from .schema import (
    ChangeType,
    Change,
    DeviceState,
    DiffResult,
    InspectResult,
    ParseResult,
    PlanResult,
    ValidationResult,
)
from .paths import PropertyPath, dereference_pointer
from .mapper import PropertyMapper, map_to_declaration, map_to_device
from .parser import DeclarationParser, ParseError
from .reader import ConfigManager, MergeConflictError, merge_schema
from .diff import DiffEngine, DEFAULT_CLASSES_OF_TRUTH, summarize_diff
from .inspection import InspectionMapper
from .trace import DiffTracer
from .validator import DeclarationValidator, run_validators

__all__ = [
    # Main engine
    "ConfigEngine",
    # Schema classes
    "ChangeType",
    "Change",
    "DeviceState",
    "DiffResult",
    "InspectResult",
    "ParseResult",
    "PlanResult",
    "ValidationResult",
    # Mapping
    "PropertyPath",
    "dereference_pointer",
    "PropertyMapper",
    "map_to_declaration",
    "map_to_device",
    # Parser
    "DeclarationParser",
    "ParseError",
    # Components (for advanced use)
    "ConfigManager",
    "MergeConflictError",
    "merge_schema",
    "DiffEngine",
    "DEFAULT_CLASSES_OF_TRUTH",
    "summarize_diff",
    "InspectionMapper",
    "DiffTracer",
    "DeclarationValidator",
    "run_validators",
]

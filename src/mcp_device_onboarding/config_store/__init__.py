"""Baseline storage for device onboarding.

Usage:
    from mcp_device_onboarding.config_store import FileBaselineStore

    store = FileBaselineStore()
    baseline = store.get_baseline(machine_id)
"""
from .store import (
    BaselineStore,
    BaselineStoreError,
    MemoryBaselineStore,
    FileBaselineStore,
    StoredBaseline,
    compute_checksum,
    DEFAULT_CONFIG_DIR,
)

__all__ = [
    "BaselineStore",
    "BaselineStoreError",
    "MemoryBaselineStore",
    "FileBaselineStore",
    "StoredBaseline",
    "compute_checksum",
    "DEFAULT_CONFIG_DIR",
]

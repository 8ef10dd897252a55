"""Baseline store for per-device original configuration.

The baseline is the device's configuration as first observed, later widened
with new DB variables, a larger application-data disk and provisioning
placeholders. It is keyed by the device's machine id so it survives hostname
changes.

Handles:
- An in-memory store for tests and one-off inspections
- A YAML file store under ~/.onboardcraft/baselines/
- Checksums to notice hand-edited baseline files
"""
import copy
import hashlib
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

# Default config directory
DEFAULT_CONFIG_DIR = Path.home() / ".onboardcraft"


class BaselineStoreError(Exception):
    """A recorded baseline exists but cannot be read."""
    pass


def compute_checksum(config: dict[str, Any]) -> str:
    """Stable short checksum of a config document."""
    config_str = json.dumps(config, sort_keys=True)
    return f"sha256:{hashlib.sha256(config_str.encode()).hexdigest()[:16]}"


@dataclass
class StoredBaseline:
    """A stored baseline with metadata."""
    device_id: str
    config: dict[str, Any]
    checksum: str = ""
    updated_at: Optional[datetime] = None

    def to_yaml(self) -> str:
        """Convert to YAML string with metadata header."""
        document = {
            "device_id": self.device_id,
            "checksum": self.checksum,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "baseline": self.config,
        }
        return yaml.dump(document, default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, yaml_str: str, device_id: str) -> "StoredBaseline":
        """Parse from YAML string."""
        data = yaml.safe_load(yaml_str) or {}
        if not isinstance(data, dict):
            raise ValueError(f"expected a mapping, got {type(data).__name__}")

        updated_at = None
        updated_at_str = data.get("updated_at")
        if updated_at_str:
            try:
                updated_at = datetime.fromisoformat(updated_at_str)
            except (ValueError, TypeError):
                updated_at = None

        return cls(
            device_id=device_id,
            config=data.get("baseline") or {},
            checksum=data.get("checksum", ""),
            updated_at=updated_at,
        )


class BaselineStore(ABC):
    """Keyed storage of per-device baselines."""

    @abstractmethod
    def get_baseline(self, device_id: str) -> Optional[dict[str, Any]]:
        """Baseline for a device, or None when none was recorded."""
        pass

    @abstractmethod
    def set_baseline(self, device_id: str, config: dict[str, Any]) -> None:
        """Record (or replace) the baseline for a device."""
        pass

    @abstractmethod
    def delete_baseline(self, device_id: str) -> bool:
        """Forget a device's baseline; True if one existed."""
        pass

    @abstractmethod
    def list_baselines(self) -> list[str]:
        """Device ids with a recorded baseline."""
        pass


class MemoryBaselineStore(BaselineStore):
    """Baselines held in a dict for the life of the process."""

    def __init__(self):
        self._baselines: dict[str, dict[str, Any]] = {}

    def get_baseline(self, device_id: str) -> Optional[dict[str, Any]]:
        baseline = self._baselines.get(device_id)
        return copy.deepcopy(baseline) if baseline is not None else None

    def set_baseline(self, device_id: str, config: dict[str, Any]) -> None:
        self._baselines[device_id] = copy.deepcopy(config)

    def delete_baseline(self, device_id: str) -> bool:
        return self._baselines.pop(device_id, None) is not None

    def list_baselines(self) -> list[str]:
        return list(self._baselines)


class FileBaselineStore(BaselineStore):
    """
    Baselines persisted as YAML files.

    Directory structure:
        ~/.onboardcraft/
        └── baselines/
            └── <machine-id>.yaml
    """

    def __init__(self, base_dir: Optional[Path] = None):
        """
        Initialize the baseline store.

        Args:
            base_dir: Base directory (default: ~/.onboardcraft)
        """
        self.base_dir = Path(base_dir) if base_dir else DEFAULT_CONFIG_DIR
        self.baselines_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Baseline store initialized at {self.baselines_dir}")

    @property
    def baselines_dir(self) -> Path:
        return self.base_dir / "baselines"

    def _path(self, device_id: str) -> Path:
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", device_id)
        return self.baselines_dir / f"{safe_id}.yaml"

    def get_baseline(self, device_id: str) -> Optional[dict[str, Any]]:
        """
        Get the baseline for a device.

        Returns None if no baseline exists.

        Raises:
            BaselineStoreError: If the baseline file cannot be read or parsed
        """
        path = self._path(device_id)
        if not path.exists():
            return None

        try:
            stored = StoredBaseline.from_yaml(path.read_text(), device_id)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Failed to read baseline for {device_id}: {e}")
            raise BaselineStoreError(f"Unreadable baseline for {device_id} at {path}: {e}") from e

        if stored.checksum and stored.checksum != compute_checksum(stored.config):
            logger.warning(f"Baseline for {device_id} was modified outside the store")
        return stored.config

    def set_baseline(self, device_id: str, config: dict[str, Any]) -> None:
        stored = StoredBaseline(
            device_id=device_id,
            config=config,
            checksum=compute_checksum(config),
            updated_at=datetime.now(timezone.utc),
        )
        self._path(device_id).write_text(stored.to_yaml())
        logger.info(f"Saved baseline for {device_id} ({stored.checksum})")

    def delete_baseline(self, device_id: str) -> bool:
        path = self._path(device_id)
        if path.exists():
            path.unlink()
            logger.info(f"Deleted baseline for {device_id}")
            return True
        return False

    def list_baselines(self) -> list[str]:
        return [p.stem for p in self.baselines_dir.glob("*.yaml")]

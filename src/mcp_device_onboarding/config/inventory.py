"""Device inventory management from YAML configuration."""
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from ..devices import create_device, ManagedDevice

logger = logging.getLogger(__name__)


class DeviceInventory:
    """Manages the device inventory loaded from YAML config.

    ```yaml
    defaults:
      username: admin
      password_env: ONBOARDCRAFT_PASSWORD
      verify_ssl: false

    devices:
      bigip-1:
        type: bigip
        name: Lab BIG-IP
        host: 192.0.2.10

    groups:
      lab:
        - bigip-1
    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._devices: dict[str, ManagedDevice] = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the devices.yaml config file."""
        env_path = os.environ.get("ONBOARDCRAFT_CONFIG")
        if env_path:
            return env_path

        search_paths = [
            Path.cwd() / "configs" / "devices.yaml",
            Path.cwd() / "devices.yaml",
            Path.home() / ".config" / "onboardcraft" / "devices.yaml",
            Path("/etc/onboardcraft/devices.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find devices.yaml. Create one in ./configs/devices.yaml "
            "or set ONBOARDCRAFT_CONFIG"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}

        # Apply defaults
        defaults = self._config.get("defaults", {})
        for device_id, device_config in self._config.get("devices", {}).items():
            for key, value in defaults.items():
                if key not in device_config:
                    device_config[key] = value

        self._validate_groups()
        logger.debug(f"Loaded {len(self.get_device_ids())} devices from {self.config_path}")

    def get_device_ids(self) -> list[str]:
        """Get all device IDs."""
        return list(self._config.get("devices", {}).keys())

    def get_device_config(self, device_id: str) -> dict:
        """Get raw config for a device."""
        devices = self._config.get("devices", {})
        if device_id not in devices:
            raise KeyError(f"Unknown device: {device_id}")
        return devices[device_id]

    def get_device(self, device_id: str) -> ManagedDevice:
        """Get or create a device instance."""
        if device_id not in self._devices:
            config = self.get_device_config(device_id)
            self._devices[device_id] = create_device(device_id, config)
        return self._devices[device_id]

    async def close_all(self) -> None:
        """Close all device connections."""
        for device in self._devices.values():
            if device.is_connected:
                await device.disconnect()
        self._devices.clear()

    # === Group Management ===

    def _validate_groups(self) -> None:
        """Validate that all group members reference valid devices."""
        groups = self._config.get("groups", {})
        devices = self._config.get("devices", {})

        for group_name, members in groups.items():
            if not isinstance(members, list):
                logger.warning(f"Group '{group_name}' should be a list of device IDs")
                continue
            for device_id in members:
                if device_id not in devices:
                    logger.warning(
                        f"Group '{group_name}' references unknown device: {device_id}"
                    )

    def get_group_names(self) -> list[str]:
        """Get list of all group names."""
        return list(self._config.get("groups", {}).keys())

    def get_group_members(self, group_name: str) -> list[str]:
        """Get device IDs in a group.

        Raises:
            KeyError: If group doesn't exist
        """
        groups = self._config.get("groups", {})
        if group_name not in groups:
            raise KeyError(f"Unknown group: {group_name}")
        return list(groups[group_name])

    def get_device_groups(self, device_id: str) -> list[str]:
        """Get all groups a device belongs to."""
        return [
            group_name
            for group_name, members in self._config.get("groups", {}).items()
            if isinstance(members, list) and device_id in members
        ]

"""Device handlers for onboarded appliances."""
from .base import (
    ManagedDevice,
    DeviceConfig,
    DeviceIdentity,
    DeviceStatus,
    QueryOptions,
    DeviceReadError,
    DeviceNameError,
    ReferenceResolutionError,
    DEVICE_LIST_PATH,
)
from .rest import RestDevice

__all__ = [
    "ManagedDevice",
    "DeviceConfig",
    "DeviceIdentity",
    "DeviceStatus",
    "QueryOptions",
    "DeviceReadError",
    "DeviceNameError",
    "ReferenceResolutionError",
    "DEVICE_LIST_PATH",
    "RestDevice",
    "create_device",
]

# Device type registry
DEVICE_TYPES = {
    "bigip": RestDevice,
    "rest": RestDevice,
}


def create_device(device_id: str, config: dict) -> ManagedDevice:
    """Factory function to create device instances."""
    device_type = config.get("type", "").lower()
    if device_type not in DEVICE_TYPES:
        raise ValueError(f"Unknown device type: {device_type}")

    device_class = DEVICE_TYPES[device_type]
    return device_class(device_id, DeviceConfig(**config))

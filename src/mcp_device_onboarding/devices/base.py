"""Base device abstraction for onboarded appliances."""
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..utils.connection import RetryPolicy, SHORT_RETRY

logger = logging.getLogger(__name__)

DEVICE_LIST_PATH = "/tm/cm/device"


class DeviceReadError(Exception):
    """A device query failed."""
    pass


class DeviceNameError(DeviceReadError):
    """The device's own name could not be resolved."""
    pass


class ReferenceResolutionError(DeviceReadError):
    """A follow-up fetch for a referenced collection failed."""
    pass


@dataclass
class DeviceConfig:
    """Configuration for a managed device."""
    type: str
    name: str
    host: str
    protocol: str = "https"
    port: int = 443
    username: str = "admin"
    password: Optional[str] = None
    password_env: str = "ONBOARDCRAFT_PASSWORD"
    timeout: int = 30
    retries: int = 3
    retry_delay: float = 2
    verify_ssl: bool = True

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")


@dataclass
class DeviceIdentity:
    """Who the device says it is."""
    hostname: str
    version: Optional[str] = None
    machine_id: Optional[str] = None


@dataclass
class QueryOptions:
    """Per-query knobs for list_objects."""
    partition_filter: Optional[str] = "Common"
    params: dict[str, str] = field(default_factory=dict)
    silent: bool = False


@dataclass
class DeviceStatus:
    """Device reachability and identity."""
    reachable: bool
    hostname: Optional[str] = None
    version: Optional[str] = None
    error: Optional[str] = None


class ManagedDevice(ABC):
    """Abstract base class for devices the config manager can read."""

    def __init__(self, device_id: str, config: DeviceConfig):
        self.device_id = device_id
        self.config = config
        self._connected = False

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def is_connected(self) -> bool:
        return self._connected

    # Connection management
    @abstractmethod
    async def connect(self) -> bool:
        """Establish connection to the device."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the device."""
        pass

    # Queries
    @abstractmethod
    async def list_objects(
        self,
        path: str,
        select_fields: Optional[list[str]] = None,
        retry_policy: RetryPolicy = SHORT_RETRY,
        options: Optional[QueryOptions] = None,
    ) -> Any:
        """Read a config container.

        Args:
            path: Container path, e.g. /tm/net/vlan
            select_fields: Property names to request
            retry_policy: How hard to retry transport failures
            options: Partition filter, extra query params, log level

        Returns:
            A list of items for collections, a dict for single objects

        Raises:
            DeviceReadError: If the query fails
        """
        pass

    @abstractmethod
    async def get_device_identity(self) -> DeviceIdentity:
        """Hostname, software version and machine id of the device."""
        pass

    async def resolve_device_name(self, hostname: str) -> str:
        """Find this device's own entry in the device list by hostname.

        Raises:
            DeviceNameError: If zero or several devices match
        """
        devices = await self.list_objects(
            DEVICE_LIST_PATH,
            select_fields=["name", "hostname"],
            retry_policy=SHORT_RETRY,
        )
        matches = [d for d in devices or [] if d.get("hostname") == hostname]
        if len(matches) == 1:
            return matches[0]["name"]
        if len(matches) > 1:
            raise DeviceNameError("Too many devices match our name")
        raise DeviceNameError("No device matches our name")

    async def check_health(self) -> DeviceStatus:
        """Check reachability by asking the device who it is."""
        try:
            if not self._connected:
                await self.connect()
            identity = await self.get_device_identity()
            return DeviceStatus(
                reachable=True,
                hostname=identity.hostname,
                version=identity.version,
            )
        except Exception as e:
            return DeviceStatus(reachable=False, error=str(e))

    # Context manager support
    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False

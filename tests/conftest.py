"""Shared fixtures: an in-memory device and small catalogs."""
import copy
from typing import Any, Optional

import pytest

from mcp_device_onboarding.config.catalog import Catalog
from mcp_device_onboarding.devices.base import (
    DEVICE_LIST_PATH,
    DeviceConfig,
    DeviceIdentity,
    DeviceReadError,
    ManagedDevice,
    QueryOptions,
)
from mcp_device_onboarding.utils.connection import RetryPolicy, SHORT_RETRY


class FakeDevice(ManagedDevice):
    """Device answering list_objects from a path -> response dict.

    Unknown paths answer with an empty collection. The device list answers
    with a single device matching our hostname unless overridden.
    """

    def __init__(
        self,
        responses: Optional[dict[str, Any]] = None,
        hostname: str = "bigip1.example.com",
        version: str = "15.1.0",
        machine_id: Optional[str] = "machine-1",
        failures: tuple[str, ...] = (),
    ):
        super().__init__("fake-1", DeviceConfig(type="bigip", name="Fake", host="192.0.2.1"))
        self.responses = {DEVICE_LIST_PATH: [{"name": "bigip1", "hostname": hostname}]}
        self.responses.update(responses or {})
        self.identity = DeviceIdentity(hostname=hostname, version=version, machine_id=machine_id)
        self.failures = failures
        self.calls: list[tuple[str, Optional[list[str]], QueryOptions]] = []

    async def connect(self) -> bool:
        self._connected = True
        return True

    async def disconnect(self) -> None:
        self._connected = False

    async def list_objects(
        self,
        path: str,
        select_fields: Optional[list[str]] = None,
        retry_policy: RetryPolicy = SHORT_RETRY,
        options: Optional[QueryOptions] = None,
    ) -> Any:
        self.calls.append((path, select_fields, options or QueryOptions()))
        if path in self.failures:
            raise DeviceReadError(f"Failed to read {path}")
        return copy.deepcopy(self.responses.get(path, []))

    async def get_device_identity(self) -> DeviceIdentity:
        return self.identity

    def paths_called(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def ntp_catalog():
    """Catalog with only the NTP entry."""
    return Catalog.from_list([
        {
            "path": "/tm/sys/ntp",
            "schemaClass": "NTP",
            "nameless": True,
            "properties": [{"id": "servers"}, {"id": "timezone"}],
        },
    ])


@pytest.fixture
def vlan_catalog():
    """Catalog with a named class that carries a reference."""
    return Catalog.from_list([
        {
            "path": "/tm/net/vlan",
            "schemaClass": "VLAN",
            "properties": [
                {"id": "mtu"},
                {"id": "tag"},
                {"id": "interfacesReference", "dereferenceId": "interfaces"},
                {"id": "failsafe", "newId": "failsafeEnabled", "truth": "enabled", "falsehood": "disabled"},
            ],
            "references": {
                "interfacesReference": [{"id": "name"}, {"id": "tagged"}],
            },
        },
    ])

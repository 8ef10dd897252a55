"""Tests for device base classes and the REST device."""
import json

import httpx
import pytest

from mcp_device_onboarding.devices import create_device, RestDevice
from mcp_device_onboarding.devices.base import (
    DEVICE_LIST_PATH,
    DeviceConfig,
    DeviceNameError,
    DeviceReadError,
    DeviceStatus,
    QueryOptions,
)
from mcp_device_onboarding.devices.rest import IDENTITY_PATH, _unwrap
from mcp_device_onboarding.utils.connection import NO_RETRY

from conftest import FakeDevice


class TestDeviceConfig:
    """Tests for DeviceConfig dataclass."""

    def test_defaults(self):
        """Default values are applied."""
        config = DeviceConfig(type="bigip", name="Test", host="192.0.2.1")
        assert config.protocol == "https"
        assert config.port == 443
        assert config.username == "admin"
        assert config.password is None
        assert config.password_env == "ONBOARDCRAFT_PASSWORD"
        assert config.verify_ssl is True

    def test_get_password_from_config(self):
        """Password from config takes precedence."""
        config = DeviceConfig(type="bigip", name="Test", host="192.0.2.1", password="secret123")
        assert config.get_password() == "secret123"

    def test_get_password_from_env(self, monkeypatch):
        """Password falls back to environment variable."""
        monkeypatch.setenv("ONBOARDCRAFT_PASSWORD", "env_secret")
        config = DeviceConfig(type="bigip", name="Test", host="192.0.2.1")
        assert config.get_password() == "env_secret"


class TestCreateDevice:
    """Tests for the device factory."""

    def test_create_bigip(self):
        """bigip devices are REST devices."""
        device = create_device("bigip-1", {"type": "bigip", "name": "Lab", "host": "192.0.2.1"})
        assert isinstance(device, RestDevice)
        assert device.host == "192.0.2.1"

    def test_unknown_type(self):
        """Unknown device types are rejected."""
        with pytest.raises(ValueError, match="Unknown device type"):
            create_device("x", {"type": "toaster", "name": "X", "host": "192.0.2.1"})


class TestResolveDeviceName:
    """Tests for finding the device's own name."""

    @pytest.mark.asyncio
    async def test_single_match(self):
        """The device whose hostname matches is ours."""
        device = FakeDevice({DEVICE_LIST_PATH: [
            {"name": "other", "hostname": "peer.example.com"},
            {"name": "bigip1", "hostname": "bigip1.example.com"},
        ]})
        assert await device.resolve_device_name("bigip1.example.com") == "bigip1"

    @pytest.mark.asyncio
    async def test_no_match(self):
        """No matching hostname is an error."""
        device = FakeDevice({DEVICE_LIST_PATH: [{"name": "other", "hostname": "peer"}]})
        with pytest.raises(DeviceNameError, match="No device matches our name"):
            await device.resolve_device_name("bigip1.example.com")

    @pytest.mark.asyncio
    async def test_several_matches(self):
        """Several matching hostnames are an error."""
        device = FakeDevice({DEVICE_LIST_PATH: [
            {"name": "a", "hostname": "dup"},
            {"name": "b", "hostname": "dup"},
        ]})
        with pytest.raises(DeviceNameError, match="Too many devices match our name"):
            await device.resolve_device_name("dup")


class TestCheckHealth:
    """Tests for check_health."""

    @pytest.mark.asyncio
    async def test_reachable(self):
        """A device that answers reports its identity."""
        status = await FakeDevice().check_health()
        assert status == DeviceStatus(reachable=True, hostname="bigip1.example.com", version="15.1.0")

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """Failures are reported, not raised."""
        class Broken(FakeDevice):
            async def get_device_identity(self):
                raise DeviceReadError("boom")

        status = await Broken().check_health()
        assert status.reachable is False
        assert status.error == "boom"


class TestUnwrap:
    """Tests for REST body unwrapping."""

    def test_collection(self):
        """Collections become their items."""
        assert _unwrap({"kind": "tm:net:vlan:vlancollectionstate", "items": [{"name": "a"}]}) == [{"name": "a"}]

    def test_empty_collection(self):
        """Empty collections omit items."""
        assert _unwrap({"kind": "tm:net:vlan:vlancollectionstate"}) == []

    def test_single_object(self):
        """Single objects pass through."""
        body = {"kind": "tm:sys:ntp:ntpstate", "timezone": "UTC"}
        assert _unwrap(body) == body


class TestRestDevice:
    """Tests for RestDevice over a mock transport."""

    @pytest.fixture
    def requests(self):
        return []

    @pytest.fixture
    def device(self, requests):
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            path = request.url.path
            if path == f"/mgmt{IDENTITY_PATH}":
                return httpx.Response(200, json={
                    "hostname": "bigip1.example.com",
                    "version": "15.1.0",
                    "machineId": "abc-123",
                })
            if path == "/mgmt/tm/net/vlan":
                return httpx.Response(200, json={
                    "kind": "tm:net:vlan:vlancollectionstate",
                    "items": [{"name": "external", "tag": 4094}],
                })
            if path == "/mgmt/tm/missing":
                return httpx.Response(404, json={"code": 404})
            return httpx.Response(200, json={"kind": "tm:sys:ntp:ntpstate", "timezone": "UTC"})

        config = DeviceConfig(type="bigip", name="Lab", host="192.0.2.1", password="pw")
        return RestDevice("bigip-1", config, transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_identity(self, device):
        """Identity comes from the device-info endpoint."""
        async with device:
            identity = await device.get_device_identity()
        assert identity.hostname == "bigip1.example.com"
        assert identity.version == "15.1.0"
        assert identity.machine_id == "abc-123"

    @pytest.mark.asyncio
    async def test_list_collection(self, device, requests):
        """Collections are unwrapped and queries carry select and filter."""
        async with device:
            items = await device.list_objects("/tm/net/vlan", ["name", "tag"])
        assert items == [{"name": "external", "tag": 4094}]
        params = requests[-1].url.params
        assert params["$select"] == "name,tag"
        assert params["$filter"] == "partition eq Common"

    @pytest.mark.asyncio
    async def test_list_without_partition_filter(self, device, requests):
        """No partition filter and extra params are passed through."""
        async with device:
            await device.list_objects(
                "/tm/sys/ntp",
                options=QueryOptions(partition_filter=None, params={"ver": "15.1.0"}),
            )
        params = requests[-1].url.params
        assert "$filter" not in params
        assert params["ver"] == "15.1.0"

    @pytest.mark.asyncio
    async def test_http_error_becomes_read_error(self, device):
        """HTTP errors are raised as DeviceReadError."""
        async with device:
            with pytest.raises(DeviceReadError, match="/tm/missing"):
                await device.list_objects("/tm/missing", retry_policy=NO_RETRY)

    @pytest.mark.asyncio
    async def test_not_connected(self, device):
        """Queries before connect fail."""
        with pytest.raises(DeviceReadError, match="Not connected"):
            await device.list_objects("/tm/net/vlan")

    @pytest.mark.asyncio
    async def test_auth_failure(self):
        """401 on connect is reported as an authentication failure."""
        transport = httpx.MockTransport(lambda request: httpx.Response(401, content=json.dumps({}).encode()))
        device = RestDevice(
            "bigip-1",
            DeviceConfig(type="bigip", name="Lab", host="192.0.2.1"),
            transport=transport,
        )
        with pytest.raises(DeviceReadError, match="Authentication failed"):
            await device.connect()
        assert not device.is_connected

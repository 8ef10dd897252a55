"""REST device handler.

Reads configuration containers over the appliance's iControl REST API.
Collections come back as {"items": [...]}; single objects as a plain body.
"""
import logging
from typing import Any, Optional

import httpx

from .base import (
    DeviceConfig,
    DeviceIdentity,
    DeviceReadError,
    ManagedDevice,
    QueryOptions,
)
from ..utils.connection import RetryPolicy, SHORT_RETRY, retrying, with_retry

logger = logging.getLogger(__name__)

IDENTITY_PATH = "/shared/identified-devices/config/device-info"


class RestDevice(ManagedDevice):
    """Appliance reachable over its REST management API."""

    def __init__(
        self,
        device_id: str,
        config: DeviceConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(device_id, config)
        self._http: Optional[httpx.AsyncClient] = None
        self._transport = transport
        self._base_url = f"{config.protocol}://{config.host}:{config.port}/mgmt"

    @with_retry(max_attempts=3, min_wait=1, max_wait=10)
    async def connect(self) -> bool:
        """Open the HTTP session and confirm credentials."""
        logger.info(f"Connecting to {self.device_id} at {self.host}")
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                auth=(self.config.username, self.config.get_password()),
                timeout=httpx.Timeout(self.config.timeout),
                verify=self.config.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )

        response = await self._http.get(IDENTITY_PATH)
        if response.status_code in (401, 403):
            await self.disconnect()
            raise DeviceReadError(f"Authentication failed for {self.device_id}")
        response.raise_for_status()

        self._connected = True
        logger.info(f"Connected to {self.device_id}")
        return True

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._http:
            await self._http.aclose()
            self._http = None
        self._connected = False
        logger.info(f"Disconnected from {self.device_id}")

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            raise DeviceReadError(f"Not connected to {self.device_id}")
        return self._http

    async def _get(self, path: str, params: dict[str, str], policy: RetryPolicy, silent: bool) -> Any:
        try:
            async for attempt in retrying(policy):
                with attempt:
                    response = await self._client().get(path, params=params)
                    response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.TransportError) as e:
            log = logger.debug if silent else logger.warning
            log(f"Query {path} on {self.device_id} failed: {e}")
            raise DeviceReadError(f"Failed to read {path}: {e}") from e
        return response.json()

    async def list_objects(
        self,
        path: str,
        select_fields: Optional[list[str]] = None,
        retry_policy: RetryPolicy = SHORT_RETRY,
        options: Optional[QueryOptions] = None,
    ) -> Any:
        options = options or QueryOptions()
        params = dict(options.params)
        if select_fields:
            params["$select"] = ",".join(select_fields)
        if options.partition_filter:
            params["$filter"] = f"partition eq {options.partition_filter}"

        logger.debug(f"GET {path} params={params}")
        body = await self._get(path, params, retry_policy, options.silent)
        return _unwrap(body)

    async def get_device_identity(self) -> DeviceIdentity:
        body = await self._get(IDENTITY_PATH, {}, SHORT_RETRY, silent=False)
        return DeviceIdentity(
            hostname=body.get("hostname", ""),
            version=body.get("version"),
            machine_id=body.get("machineId"),
        )


def _unwrap(body: Any) -> Any:
    """Collections become lists; single objects are returned as-is."""
    if not isinstance(body, dict):
        return body
    if "items" in body:
        return body["items"]
    if str(body.get("kind", "")).endswith("collectionstate"):
        # empty collections omit items entirely
        return []
    return body

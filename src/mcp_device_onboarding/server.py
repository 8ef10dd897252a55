"""MCP Server for declarative device onboarding.

Maps onboarding declarations to and from the live configuration of
appliances managed over their REST API.

Tools exposed:
- list_devices: List all configured devices
- device_status: Get reachability and identity of a device
- validate_declaration: Check a declaration's structure
- parse_declaration: Show the normalized form of a declaration
- get_current_config: Read a device's normalized current config
- plan_declaration: Diff a declaration against a device (dry run)
- inspect_device: Rebuild a declaration from a device's live config

Resources:
- onboard://<device_id>/declaration: Declaration rebuilt from live config
"""
import asyncio
import json
import logging
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
    Resource,
)
from pydantic import AnyUrl

from .config.catalog import load_catalog
from .config.inventory import DeviceInventory
from .config_engine import ConfigEngine, DeviceState, DiffTracer
from .config_store import FileBaselineStore
from .utils.logging_config import setup_logging, timed_section

# Configure logging - with file output and performance tracking
setup_logging()
logger = logging.getLogger(__name__)

# Globals (initialized on first use)
inventory: Optional[DeviceInventory] = None
engine: Optional[ConfigEngine] = None

# Reads of one device must not interleave: they share its DeviceState
_device_states: dict[str, DeviceState] = {}
_device_locks: dict[str, asyncio.Lock] = {}


def get_inventory() -> DeviceInventory:
    """Get or create the device inventory."""
    global inventory
    if inventory is None:
        inventory = DeviceInventory()
    return inventory


def get_engine() -> ConfigEngine:
    """Get or create the config engine."""
    global engine
    if engine is None:
        engine = ConfigEngine(load_catalog(), FileBaselineStore())
    return engine


def get_device_state(device_id: str) -> DeviceState:
    if device_id not in _device_states:
        _device_states[device_id] = DeviceState(task_id=device_id)
    return _device_states[device_id]


def get_device_lock(device_id: str) -> asyncio.Lock:
    if device_id not in _device_locks:
        _device_locks[device_id] = asyncio.Lock()
    return _device_locks[device_id]


def _json(data: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data, indent=2, default=str))]


# Create MCP server
server = Server("onboardcraft")


# === TOOLS ===

_DEVICE_ID = {
    "type": "string",
    "description": "Device ID from devices.yaml (e.g., 'bigip-1')"
}

_DECLARATION = {
    "type": "object",
    "description": "Declaration body: {class: Device, schemaVersion, Common: {class: Tenant, ...}}"
}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="list_devices",
            description="List all configured devices with their types and connection info",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="device_status",
            description="Get reachability, hostname and software version of a device",
            inputSchema={
                "type": "object",
                "properties": {"device_id": _DEVICE_ID},
                "required": ["device_id"]
            }
        ),
        Tool(
            name="validate_declaration",
            description="Validate the structure of a declaration without contacting any device",
            inputSchema={
                "type": "object",
                "properties": {"declaration": _DECLARATION},
                "required": ["declaration"]
            }
        ),
        Tool(
            name="parse_declaration",
            description="Parse a declaration into its normalized tenant/class/object form",
            inputSchema={
                "type": "object",
                "properties": {"declaration": _DECLARATION},
                "required": ["declaration"]
            }
        ),
        Tool(
            name="get_current_config",
            description=(
                "Read the current configuration of a device in normalized form. "
                "Also records the device baseline on first contact."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": _DEVICE_ID,
                    "declaration": {
                        **_DECLARATION,
                        "description": "Optional declaration; selects DB variables and gated classes of interest",
                    },
                },
                "required": ["device_id"]
            }
        ),
        Tool(
            name="plan_declaration",
            description=(
                "Diff a declaration against a device's current config. "
                "Returns what would be updated and deleted; changes nothing on the device."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": _DEVICE_ID,
                    "declaration": _DECLARATION,
                    "trace": {
                        "type": "boolean",
                        "description": "Write masked current/desired/diff trace files",
                        "default": False
                    }
                },
                "required": ["device_id", "declaration"]
            }
        ),
        Tool(
            name="inspect_device",
            description="Rebuild a declaration from a device's live configuration",
            inputSchema={
                "type": "object",
                "properties": {"device_id": _DEVICE_ID},
                "required": ["device_id"]
            }
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    device_id = arguments.get("device_id", "N/A")

    async with timed_section(f"tool:{name}", device_id=device_id):
        try:
            if name == "list_devices":
                return await handle_list_devices(get_inventory())

            elif name == "device_status":
                return await handle_device_status(get_inventory(), arguments["device_id"])

            elif name == "validate_declaration":
                return await handle_validate_declaration(arguments["declaration"])

            elif name == "parse_declaration":
                return await handle_parse_declaration(arguments["declaration"])

            elif name == "get_current_config":
                return await handle_get_current_config(
                    get_inventory(),
                    arguments["device_id"],
                    arguments.get("declaration") or {}
                )

            elif name == "plan_declaration":
                return await handle_plan_declaration(
                    get_inventory(),
                    arguments["device_id"],
                    arguments["declaration"],
                    arguments.get("trace", False)
                )

            elif name == "inspect_device":
                return await handle_inspect_device(get_inventory(), arguments["device_id"])

            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return [TextContent(type="text", text=f"Error: {str(e)}")]


# === TOOL HANDLERS ===

async def handle_list_devices(inv: DeviceInventory) -> list[TextContent]:
    """List all configured devices."""
    devices = []
    for device_id in inv.get_device_ids():
        config = inv.get_device_config(device_id)
        devices.append({
            "id": device_id,
            "name": config.get("name", device_id),
            "type": config.get("type"),
            "host": config.get("host"),
            "port": config.get("port"),
            "groups": inv.get_device_groups(device_id),
        })

    return _json({"devices": devices})


async def handle_device_status(inv: DeviceInventory, device_id: str) -> list[TextContent]:
    """Get device reachability and identity."""
    device = inv.get_device(device_id)
    status = await device.check_health()
    await device.disconnect()

    return _json({
        "device_id": device_id,
        "reachable": status.reachable,
        "hostname": status.hostname,
        "version": status.version,
        "error": status.error,
    })


async def handle_validate_declaration(declaration: dict) -> list[TextContent]:
    """Validate a declaration."""
    result = get_engine().validate(declaration)
    return _json(result.to_dict())


async def handle_parse_declaration(declaration: dict) -> list[TextContent]:
    """Parse a declaration into normalized form."""
    eng = get_engine()
    validation = eng.validate(declaration)
    if not validation.valid:
        return _json({"success": False, **validation.to_dict()})

    parsed = eng.parse(declaration)
    return _json({
        "success": True,
        "tenants": parsed.tenants,
        "parsed": parsed.parsed_declaration,
        "warnings": validation.warnings,
    })


async def handle_get_current_config(
    inv: DeviceInventory,
    device_id: str,
    declaration: dict
) -> list[TextContent]:
    """Read the device's normalized current config."""
    device = inv.get_device(device_id)
    state = get_device_state(device_id)

    async with get_device_lock(device_id):
        async with device:
            await get_engine().read_current(declaration, state, device)

    return _json({
        "device_id": device_id,
        "current": state.current_config,
    })


async def handle_plan_declaration(
    inv: DeviceInventory,
    device_id: str,
    declaration: dict,
    trace: bool
) -> list[TextContent]:
    """
    Plan a declaration against a device.

    It:
    1. Validates the declaration
    2. Parses it
    3. Reads the device's current config and baseline
    4. Diffs desired against current

    Nothing is written to the device.
    """
    eng = get_engine()
    if trace:
        eng = ConfigEngine(
            eng.catalog,
            eng.baseline_store,
            tracer=DiffTracer(trace=True, task_id=device_id),
        )

    device = inv.get_device(device_id)
    state = get_device_state(device_id)

    async with get_device_lock(device_id):
        async with device:
            result = await eng.plan(declaration, device, state)

    return _json(result.to_dict())


async def handle_inspect_device(inv: DeviceInventory, device_id: str) -> list[TextContent]:
    """Rebuild a declaration from live config."""
    device = inv.get_device(device_id)

    async with get_device_lock(device_id):
        async with device:
            result = await get_engine().inspect(device)

    return _json(result.to_dict())


# === RESOURCES ===

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    inv = get_inventory()
    resources = []

    for device_id in inv.get_device_ids():
        config = inv.get_device_config(device_id)
        resources.append(Resource(
            uri=AnyUrl(f"onboard://{device_id}/declaration"),
            name=f"{config.get('name', device_id)} Declaration",
            description=f"Declaration rebuilt from the live configuration of {device_id}",
            mimeType="application/json",
        ))

    return resources


@server.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    # Parse URI: onboard://device_id/declaration
    uri_str = str(uri)
    if uri_str.startswith("onboard://"):
        parts = uri_str[len("onboard://"):].split("/")
        if len(parts) >= 2 and parts[1] == "declaration":
            result = await handle_inspect_device(get_inventory(), parts[0])
            return result[0].text

    return json.dumps({"error": f"Unknown resource: {uri}"})


def main():
    """Run the MCP server."""

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    finally:
        # Cleanup
        if inventory:
            asyncio.run(inventory.close_all())


if __name__ == "__main__":
    main()

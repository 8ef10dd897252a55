"""Per-class normalization of device items.

Some device containers need shaping that the generic property rules cannot
express. Those fixups live here, registered by schema class and phase:

- RAW: on the raw device item, before bookkeeping keys are stripped
- ITEM: on a mapped collection item, before it is stored by name
- OBJECT: on a mapped single-object response, before it is stored or merged
- FINALIZE: on the whole class once reference data has been spliced in

Fixups read and write fields through FixupContext.field() so they work in
both reconcile mode (device ids) and translate mode (declaration ids).
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from ..config.catalog import (
    MappingDescriptor,
    PropertyRule,
    RADIUS_PRIMARY_SERVER,
    RADIUS_SECONDARY_SERVER,
    RADIUS_SERVER_PREFIX,
)

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """When a fixup runs."""
    RAW = "raw"
    ITEM = "item"
    OBJECT = "object"
    FINALIZE = "finalize"


@dataclass
class FixupContext:
    """What a fixup needs to know about the item being processed."""
    descriptor: MappingDescriptor
    translate_to_new_id: bool = False
    name: Optional[str] = None

    def field(self, rule_id: str, rules: Optional[Sequence[PropertyRule]] = None) -> str:
        """Key a rule's value is stored under in the current mode."""
        if not self.translate_to_new_id:
            return rule_id
        for rule in (rules if rules is not None else self.descriptor.properties):
            if rule.id == rule_id:
                return rule.new_id or rule.id
        return rule_id

    def reference_rules(self, reference: str) -> tuple[PropertyRule, ...]:
        return self.descriptor.references.get(reference, ())


Fixup = Callable[[Any, FixupContext], Any]

FIXUPS: dict[tuple[str, Phase], Fixup] = {}


def fixup(schema_class: str, phase: Phase) -> Callable[[Fixup], Fixup]:
    """Register a fixup for a schema class and phase."""
    def decorator(func: Fixup) -> Fixup:
        FIXUPS[(schema_class, phase)] = func
        return func
    return decorator


def apply_fixup(schema_class: Optional[str], phase: Phase, value: Any, ctx: FixupContext) -> Any:
    """Run the registered fixup, if any; returns the (possibly replaced) value."""
    func = FIXUPS.get((schema_class, phase)) if schema_class else None
    if func is None:
        return value
    return func(value, ctx)


# --- Shared helpers ---

def is_enabled_gtm_object(obj: dict) -> bool:
    """GTM objects carry enabled and/or disabled in several encodings."""
    enabled = obj.get("enabled")
    disabled = obj.get("disabled")
    if isinstance(enabled, bool):
        return enabled
    if isinstance(disabled, bool):
        return not disabled
    if isinstance(enabled, str):
        return enabled.lower() == "true"
    if isinstance(disabled, str):
        return disabled.lower() == "false"
    return True


def gtm_monitor_list(monitors: Any) -> list:
    """'/Common/http and /Common/https' -> ['/Common/http', '/Common/https']"""
    if isinstance(monitors, list):
        return monitors
    return monitors.split(" and ") if monitors else []


def normalize_allow_service(value: Any) -> Any:
    """Device omits allowService for 'none' and wraps 'default' in a list."""
    if value is None or value == "":
        return "none"
    if isinstance(value, list) and value == ["default"]:
        return "default"
    return value


def parse_sshd_include(include: str) -> dict:
    """Pick known sshd options out of the free-form include text."""
    parsed: dict[str, Any] = {}
    for line in include.split("\n"):
        parts = line.split(" ")
        if len(parts) < 2:
            continue
        option, value = parts[0], parts[1]
        if option == "Ciphers":
            parsed["ciphers"] = value.split(",")
        elif option == "MACs":
            parsed["MACS"] = value.split(",")
        elif option == "LoginGraceTime":
            parsed["loginGraceTime"] = int(value)
        elif option == "MaxAuthTries":
            parsed["maxAuthTries"] = int(value)
        elif option == "MaxStartups":
            parsed["maxStartups"] = value
        elif option == "Protocol":
            parsed["protocol"] = int(value)
    return parsed


# --- RAW ---

@fixup("Route", Phase.RAW)
def _route_local_only(item: dict, ctx: FixupContext) -> dict:
    if item.get("partition") == "LOCAL_ONLY":
        item["localOnly"] = True
    return item


@fixup("GSLBMonitor", Phase.RAW)
def _gslb_monitor_type(item: dict, ctx: FixupContext) -> dict:
    # kind looks like tm:gtm:monitor:http:httpstate
    kind = item.get("kind", "")
    parts = kind.split(":")
    if len(parts) > 3:
        item["monitorType"] = parts[3]
    return item


@fixup("RoutingBGP", Phase.RAW)
def _bgp_redistribute(item: dict, ctx: FixupContext) -> dict:
    for family in item.get("addressFamily") or []:
        for redist in family.get("redistribute") or []:
            if redist.get("name"):
                redist["routingProtocol"] = redist.pop("name")
    return item


# --- ITEM ---

@fixup("SelfIp", Phase.ITEM)
def _self_ip(patched: dict, ctx: FixupContext) -> dict:
    key = ctx.field("allowService")
    patched[key] = normalize_allow_service(patched.get(key))
    return patched


@fixup("MAC_Masquerade", Phase.ITEM)
def _mac_masquerade(patched: dict, ctx: FixupContext) -> dict:
    patched["trafficGroup"] = ctx.name
    return patched


@fixup("GSLBServer", Phase.ITEM)
def _gslb_server(patched: dict, ctx: FixupContext) -> dict:
    key = ctx.field("monitor")
    patched[key] = gtm_monitor_list(patched.get(key))
    patched["enabled"] = is_enabled_gtm_object(patched)
    patched.pop("disabled", None)
    return patched


@fixup("GSLBProberPool", Phase.ITEM)
def _gslb_prober_pool(patched: dict, ctx: FixupContext) -> dict:
    patched["enabled"] = is_enabled_gtm_object(patched)
    patched.pop("disabled", None)
    return patched


@fixup("SecurityWaf", Phase.ITEM)
def _waf_advanced_setting(patched: dict, ctx: FixupContext) -> dict:
    # key each setting by name so settings merge side by side
    return {ctx.name: {"value": patched.get(ctx.field("value"))}}


@fixup("Authentication", Phase.ITEM)
@fixup("Authentication", Phase.OBJECT)
def _authentication(patched: dict, ctx: FixupContext) -> Optional[dict]:
    if ctx.descriptor.schema_merge is None:
        source_type = patched.pop("type", None)
        if source_type == "active-directory":
            source_type = "activeDirectory"
        if source_type is not None:
            patched["enabledSourceType"] = source_type
        return patched

    ciphers = ctx.field("sslCiphers")
    if isinstance(patched.get(ciphers), str):
        patched[ciphers] = patched[ciphers].split(":")

    name = patched.get("name")
    if name and RADIUS_SERVER_PREFIX in name:
        server = {k: v for k, v in patched.items() if k != "name"}
        if name == RADIUS_PRIMARY_SERVER:
            return {"primary": server}
        if name == RADIUS_SECONDARY_SERVER:
            return {"secondary": server}
        logger.debug(f"Ignoring unexpected RADIUS server {name}")
        return None
    return patched


# --- OBJECT ---

@fixup("SyslogRemoteServer", Phase.OBJECT)
def _syslog_remote_servers(patched: dict, ctx: FixupContext) -> dict:
    key = ctx.field("remoteServers")
    servers: dict[str, dict] = {}
    for server in patched.get(key) or []:
        server = dict(server)
        name = server.get("name", "")
        if name.startswith("/Common/"):
            name = name[len("/Common/"):]
        server["name"] = name
        servers[name] = server
    return servers


@fixup("SSHD", Phase.OBJECT)
def _sshd(patched: dict, ctx: FixupContext) -> dict:
    include = patched.pop("include", None)
    if isinstance(include, str):
        patched.update(parse_sshd_include(include))
    return patched


@fixup("HTTPD", Phase.OBJECT)
def _httpd(patched: dict, ctx: FixupContext) -> dict:
    if isinstance(patched.get("sslCiphersuite"), str):
        patched["sslCiphersuite"] = patched["sslCiphersuite"].split(":")
    allow = patched.get("allow")
    if not allow:
        patched["allow"] = "none"
    elif isinstance(allow, list):
        patched["allow"] = ["all" if entry == "All" else entry for entry in allow]
    return patched


@fixup("Disk", Phase.OBJECT)
def _disk(patched: dict, ctx: FixupContext) -> dict:
    raw_values = patched.get("apiRawValues")
    if not isinstance(raw_values, dict):
        return patched
    return {
        key: int(value) if isinstance(value, str) and value.isdigit() else value
        for key, value in raw_values.items()
    }


# --- FINALIZE ---

@fixup("GSLBProberPool", Phase.FINALIZE)
def _finalize_prober_pools(pools: dict, ctx: FixupContext) -> None:
    members_key = ctx.field("members")
    for pool in pools.values():
        members = pool.get(members_key)
        if not isinstance(members, list):
            continue
        for member in members:
            member["enabled"] = is_enabled_gtm_object(member)
            member.pop("disabled", None)
        members.sort(key=lambda m: m.get("order", 0))


@fixup("RoutingBGP", Phase.FINALIZE)
def _finalize_bgp(routers: dict, ctx: FixupContext) -> None:
    address = ctx.field("name", ctx.reference_rules("neighborReference"))
    for router in routers.values():
        if "neighbor" in router:
            neighbors = router.pop("neighbor") or []
            router["neighbors"] = sorted(neighbors, key=lambda n: str(n.get(address, "")))
        if "peerGroup" in router:
            router["peerGroups"] = router.pop("peerGroup") or []


_DESTINATION_SPLIT = re.compile(r"(\.|:)(?=[^.:]*$)")


@fixup("GSLBServer", Phase.FINALIZE)
def _finalize_gslb_servers(servers: dict, ctx: FixupContext) -> None:
    rules = ctx.reference_rules("virtualServersReference")
    monitor = ctx.field("monitor", rules)
    translation = ctx.field("translationAddress", rules)
    for server in servers.values():
        for virtual_server in server.get("virtualServers") or []:
            destination = virtual_server.pop("destination", None)
            if isinstance(destination, str):
                # ipv4 uses 1.2.3.4:80, ipv6 uses a:b::c.80
                parts = _DESTINATION_SPLIT.split(destination)
                virtual_server["address"] = parts[0]
                port = parts[-1] if len(parts) > 1 else ""
                virtual_server["port"] = int(port) if port.isdigit() else 0
            virtual_server[monitor] = gtm_monitor_list(virtual_server.get(monitor))
            virtual_server["enabled"] = is_enabled_gtm_object(virtual_server)
            virtual_server.pop("disabled", None)
            if virtual_server.get(translation) == "none":
                del virtual_server[translation]


@fixup("FirewallPolicy", Phase.FINALIZE)
def _finalize_firewall_policies(policies: dict, ctx: FixupContext) -> None:
    for policy in policies.values():
        for rule in policy.get("rules") or []:
            source = rule.get("source")
            if isinstance(source, dict):
                rule["source"] = {"vlans": source["vlans"]} if "vlans" in source else {}

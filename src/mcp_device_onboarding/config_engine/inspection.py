"""Inspection mapper: rebuilds a declaration from live device state.

Takes a config already read by the config manager in declaration-id mode and
walks the catalog in reverse. Each class (or each object of a named class)
becomes a declaration entry. Entries from different catalog items that land on
the same key are kept, renamed with an _INVALID_<n> suffix, and the result is
flagged invalid.

Usage:
    mapper = InspectionMapper(load_catalog())
    result = mapper.build_declaration(state.current_config)
    if not result.valid:
        print(result.errors)
"""
import copy
import logging
from typing import Any, Callable, Optional

from ..config.catalog import SCHEMA_VERSION, Catalog, DeclarationRule, MappingDescriptor
from .schema import InspectResult

logger = logging.getLogger(__name__)

DUPLICATES_ERROR = "Declaration contains INVALID items (suffixed with INVALID_X)"

# Post-processing run on an entry after its property rules:
# fn(key, obj) -> (key, obj or None to drop the entry)
CustomFunction = Callable[[str, Any], tuple[str, Any]]

CUSTOM_FUNCTIONS: dict[str, CustomFunction] = {}


def custom_function(name: str) -> Callable[[CustomFunction], CustomFunction]:
    """Register a declaration custom function by catalog id."""
    def decorator(func: CustomFunction) -> CustomFunction:
        CUSTOM_FUNCTIONS[name] = func
        return func
    return decorator


@custom_function("remapManagementIp")
def remap_management_ip(key: str, obj: Any) -> tuple[str, Any]:
    return "currentManagementIp", obj


@custom_function("remapNameservers")
def remap_nameservers(key: str, obj: Any) -> tuple[str, Any]:
    for zone in obj.get("forwardZones") or []:
        if isinstance(zone, dict) and isinstance(zone.get("nameservers"), list):
            zone["nameservers"] = [
                ns["name"] if isinstance(ns, dict) else ns for ns in zone["nameservers"]
            ]
    return key, obj


@custom_function("formatFailoverUnicast")
def format_failover_unicast(key: str, obj: Any) -> tuple[str, Any]:
    if obj.get("addressPorts") == "none":
        return key, None
    return key, obj


@custom_function("removeIncompleteAuthMethods")
def remove_incomplete_auth_methods(key: str, obj: Any) -> tuple[str, Any]:
    # auth methods without servers cannot be declared
    radius = obj.get("radius")
    if radius is not None and not (radius.get("servers") or {}).get("primary"):
        del obj["radius"]
    if "ldap" in obj and not obj["ldap"].get("servers"):
        del obj["ldap"]
    if "tacacs" in obj and not obj["tacacs"].get("servers"):
        del obj["tacacs"]
    return key, obj


@custom_function("removeLdapCertAndKey")
def remove_ldap_cert_and_key(key: str, obj: Any) -> tuple[str, Any]:
    ldap = obj.get("ldap")
    if isinstance(ldap, dict):
        for field_name in ("sslCaCert", "sslClientCert", "sslClientKey"):
            ldap.pop(field_name, None)
    return key, obj


@custom_function("renameDefaultRouteDomain")
def rename_default_route_domain(key: str, obj: Any) -> tuple[str, Any]:
    if obj.get("id") is not None and str(obj["id"]) == "0":
        return "rd0", obj
    return key, obj


@custom_function("formatGSLBProberPool")
def format_gslb_prober_pool(key: str, obj: Any) -> tuple[str, Any]:
    # array order already encodes member order
    for member in obj.get("members") or []:
        member.pop("order", None)
    return key, obj


@custom_function("remapStaleRules")
def remap_stale_rules(key: str, obj: Any) -> tuple[str, Any]:
    stale_rules = obj.get("collectStaleRulesEnabled")
    if isinstance(stale_rules, dict):
        obj["collectStaleRulesEnabled"] = stale_rules.get("collect")
    return key, obj


@custom_function("convertAdvancedSettings")
def convert_advanced_settings(key: str, obj: Any) -> tuple[str, Any]:
    settings = obj.get("advancedSettings")
    if isinstance(settings, dict):
        obj["advancedSettings"] = [
            {"name": name, "value": setting.get("value") if isinstance(setting, dict) else setting}
            for name, setting in settings.items()
        ]
    return key, obj


@custom_function("remapItemWithSchemaMerge")
def remap_item_with_schema_merge(key: str, obj: Any) -> tuple[str, Any]:
    # lets a schema-merge entry through to the regular processing
    return key, obj


def apply_declaration_rule(rule: DeclarationRule, obj: dict) -> None:
    """Apply one declaration property rule to an entry in place."""
    if rule.remove_if_value is not None and obj.get(rule.id) in rule.remove_if_value:
        obj.pop(rule.id, None)
    if rule.truth is not None:
        value = obj.get(rule.id)
        obj[rule.id] = bool(value) and value == rule.truth
    if rule.remove:
        obj.pop(rule.id, None)
    if rule.replace_if_value is not None and rule.id in obj:
        value = obj[rule.id]
        if isinstance(value, list):
            obj[rule.id] = [rule.new_value if v == rule.replace_if_value else v for v in value]
        elif value == rule.replace_if_value:
            obj[rule.id] = rule.new_value


class InspectionMapper:
    """Build a declaration from a normalized config."""

    def __init__(self, catalog: Catalog, schema_version: str = SCHEMA_VERSION):
        self.catalog = catalog
        self.schema_version = schema_version
        self.nameless_classes = catalog.nameless_classes

    def build_declaration(self, config: dict[str, Any]) -> InspectResult:
        """
        Convert a config into a declaration.

        Args:
            config: tenant -> class -> object, read in declaration-id mode

        Returns:
            InspectResult with the declaration, a validity flag and errors
        """
        declaration: dict[str, Any] = {"class": "Device", "schemaVersion": self.schema_version}
        has_duplicates = False

        for tenant, tenant_config in config.items():
            if not isinstance(tenant_config, dict):
                continue
            tenant_declaration: dict[str, Any] = {"class": "Tenant"}
            duplicates: dict[str, int] = {}

            for descriptor in self.catalog:
                for key, value in self._entries(descriptor, tenant_config):
                    if value is None:
                        continue
                    target_key = key
                    if key in tenant_declaration:
                        has_duplicates = True
                        duplicates[key] = duplicates.get(key, 0) + 1
                        target_key = f"{key}_INVALID_{duplicates[key]}"
                        logger.warning(f"Duplicate declaration key {key} in {tenant}, stored as {target_key}")
                    tenant_declaration[target_key] = value

            declaration[tenant] = tenant_declaration

        errors = [DUPLICATES_ERROR] if has_duplicates else []
        return InspectResult(declaration=declaration, valid=not has_duplicates, errors=errors)

    def _entries(self, descriptor: MappingDescriptor, tenant_config: dict):
        """Declaration (key, value) pairs produced by one catalog entry."""
        options = descriptor.declaration
        if not descriptor.path or not options.enabled:
            return
        # merged sub-parts are emitted with their parent class
        if descriptor.schema_merge is not None and not options.custom_functions:
            return

        config_name = options.name or descriptor.schema_class
        if not config_name or config_name not in tenant_config:
            return
        item = tenant_config[config_name]

        if config_name in self.nameless_classes or not isinstance(item, dict):
            key = options.name or f"current{descriptor.schema_class}"
            yield self._process(descriptor, key, item)
            return

        for name, obj in item.items():
            yield self._process(descriptor, name, obj)

    def _process(self, descriptor: MappingDescriptor, key: str, obj: Any) -> tuple[str, Any]:
        options = descriptor.declaration
        if isinstance(obj, dict):
            obj = copy.deepcopy(obj)
            obj["class"] = descriptor.schema_class
            if not descriptor.has_name_override:
                obj.pop("name", None)
            for rule in options.properties:
                apply_declaration_rule(rule, obj)

        for function_name in options.custom_functions:
            func = CUSTOM_FUNCTIONS.get(function_name)
            if func is None:
                logger.warning(f"Unknown declaration function {function_name}")
                continue
            if obj is None:
                break
            key, obj = func(key, obj)
        return key, obj

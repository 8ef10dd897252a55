"""Mapping catalog: data-driven descriptors of device config containers.

Each catalog entry describes one device-native configuration container (an
iControl REST path) and how it maps to and from one declaration schema class.
The catalog is ordered; later schema-merge entries rely on earlier base
entries of the same class having been merged first.

Usage:
    from mcp_device_onboarding.config.catalog import load_catalog

    catalog = load_catalog()
    for descriptor in catalog:
        print(descriptor.path, descriptor.schema_class)
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "config_items.yaml"

SCHEMA_VERSION = "1.36.0"

PROVISION_PATH = "/tm/sys/provision"

# Modules that receive a provisioning default when a declaration omits them
KNOWN_MODULES = (
    "afm", "am", "apm", "asm", "avr", "cgnat", "dos", "fps",
    "gtm", "ilx", "lc", "ltm", "pem", "sslo", "swg", "urldb",
)

RADIUS_SERVER_PREFIX = "system_auth_name"
RADIUS_PRIMARY_SERVER = "system_auth_name1"
RADIUS_SECONDARY_SERVER = "system_auth_name2"

_NO_DEFAULT = object()


class CatalogError(ValueError):
    """Malformed catalog entry."""
    pass


def _check_keys(data: dict, allowed: set[str], where: str) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise CatalogError(f"Unknown keys in {where}: {', '.join(sorted(unknown))}")


@dataclass(frozen=True)
class PropertyRule:
    """How one device-native property maps to its declaration form."""
    id: str
    new_id: Optional[str] = None
    truth: Any = None
    falsehood: Any = None
    skip_when_omitted: bool = False
    default_when_omitted: Any = _NO_DEFAULT
    string_to_int: bool = False
    transform: tuple["PropertyRule", ...] = ()
    capture: Optional[str] = None
    capture_property: Optional[str] = None
    remove_keys: tuple[str, ...] = ()
    up_level: int = 0
    dereference_id: Optional[str] = None
    retain_common: bool = False
    min_version: Optional[str] = None
    multiplier: Optional[int] = None
    zero_value: Any = None

    _KEYS = {
        "id", "newId", "truth", "falsehood", "skipWhenOmitted", "defaultWhenOmitted",
        "stringToInt", "transform", "capture", "captureProperty", "removeKeys",
        "upLevel", "dereferenceId", "retainCommon", "minVersion", "multiplier", "zeroValue",
    }

    @property
    def declaration_id(self) -> str:
        """Name of the property on the declaration side."""
        return self.new_id or self.id

    @property
    def has_default(self) -> bool:
        return self.default_when_omitted is not _NO_DEFAULT

    @classmethod
    def from_dict(cls, data: dict) -> "PropertyRule":
        """Build a rule from its camelCase catalog form."""
        if "id" not in data:
            raise CatalogError(f"Property rule without id: {data}")
        _check_keys(data, cls._KEYS, f"property rule '{data['id']}'")
        return cls(
            id=data["id"],
            new_id=data.get("newId"),
            truth=data.get("truth"),
            falsehood=data.get("falsehood"),
            skip_when_omitted=bool(data.get("skipWhenOmitted", False)),
            default_when_omitted=data.get("defaultWhenOmitted", _NO_DEFAULT),
            string_to_int=bool(data.get("stringToInt", False)),
            transform=tuple(cls.from_dict(t) for t in data.get("transform", [])),
            capture=data.get("capture"),
            capture_property=data.get("captureProperty"),
            remove_keys=tuple(data.get("removeKeys", [])),
            up_level=int(data.get("upLevel", 0)),
            dereference_id=data.get("dereferenceId"),
            retain_common=bool(data.get("retainCommon", False)),
            min_version=data.get("minVersion"),
            multiplier=data.get("multiplier"),
            zero_value=data.get("zeroValue"),
        )


@dataclass(frozen=True)
class SchemaMerge:
    """Folds a device container into its parent class at a sub-path."""
    path: tuple[str, ...] = ()
    action: Optional[str] = None  # None replaces, "add" merges
    skip_when_omitted: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "SchemaMerge":
        _check_keys(data, {"path", "action", "skipWhenOmitted"}, "schemaMerge")
        return cls(
            path=tuple(data.get("path", [])),
            action=data.get("action"),
            skip_when_omitted=bool(data.get("skipWhenOmitted", False)),
        )


@dataclass(frozen=True)
class DeclarationRule:
    """Post-processing applied to a property when building a declaration."""
    id: str
    remove: bool = False
    remove_if_value: Optional[tuple] = None
    truth: Any = None
    replace_if_value: Any = None
    new_value: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "DeclarationRule":
        _check_keys(
            data,
            {"id", "remove", "removeIfValue", "truth", "replaceIfValue", "newValue"},
            f"declaration property '{data.get('id')}'",
        )
        remove_if_value = None
        if "removeIfValue" in data:
            value = data["removeIfValue"]
            remove_if_value = tuple(value) if isinstance(value, list) else (value,)
        return cls(
            id=data["id"],
            remove=bool(data.get("remove", False)),
            remove_if_value=remove_if_value,
            truth=data.get("truth"),
            replace_if_value=data.get("replaceIfValue"),
            new_value=data.get("newValue"),
        )


@dataclass(frozen=True)
class DeclarationOptions:
    """How a catalog entry is rendered back into a declaration."""
    enabled: bool = True
    name: Optional[str] = None
    properties: tuple[DeclarationRule, ...] = ()
    custom_functions: tuple[str, ...] = ()

    @classmethod
    def from_value(cls, value: Any) -> "DeclarationOptions":
        """Accepts `false`, a mapping, or nothing."""
        if value is None or value is True:
            return cls()
        if value is False:
            return cls(enabled=False)
        _check_keys(value, {"name", "properties", "customFunctions"}, "declaration")
        return cls(
            name=value.get("name"),
            properties=tuple(DeclarationRule.from_dict(p) for p in value.get("properties", [])),
            custom_functions=tuple(
                f["id"] if isinstance(f, dict) else f
                for f in value.get("customFunctions", [])
            ),
        )


@dataclass(frozen=True)
class MappingDescriptor:
    """One catalog entry."""
    path: str
    schema_class: Optional[str] = None
    properties: tuple[PropertyRule, ...] = ()
    references: dict[str, tuple[PropertyRule, ...]] = field(default_factory=dict)
    single_value: bool = False
    nameless: bool = False
    silent: bool = False
    ignore: tuple[tuple[str, str], ...] = ()
    schema_merge: Optional[SchemaMerge] = None
    partitions: Optional[tuple[str, ...]] = None
    required_module: Optional[str] = None
    declaration: DeclarationOptions = field(default_factory=DeclarationOptions)

    _KEYS = {
        "path", "schemaClass", "properties", "references", "singleValue", "nameless",
        "silent", "ignore", "schemaMerge", "partitions", "requiredModule", "declaration",
    }

    @classmethod
    def from_dict(cls, data: dict) -> "MappingDescriptor":
        """Build a descriptor from its camelCase catalog form."""
        if "path" not in data:
            raise CatalogError(f"Catalog entry without path: {data}")
        _check_keys(data, cls._KEYS, f"catalog entry '{data['path']}'")

        ignore = []
        for entry in data.get("ignore", []):
            if not isinstance(entry, dict) or len(entry) != 1:
                raise CatalogError(f"Ignore rules take exactly one key: {entry}")
            (key, regex), = entry.items()
            ignore.append((key, regex))

        merge = data.get("schemaMerge")
        partitions = data.get("partitions")
        return cls(
            path=data["path"],
            schema_class=data.get("schemaClass"),
            properties=tuple(PropertyRule.from_dict(p) for p in data.get("properties", [])),
            references={
                name: tuple(PropertyRule.from_dict(p) for p in rules)
                for name, rules in (data.get("references") or {}).items()
            },
            single_value=bool(data.get("singleValue", False)),
            nameless=bool(data.get("nameless", False)),
            silent=bool(data.get("silent", False)),
            ignore=tuple(ignore),
            schema_merge=SchemaMerge.from_dict(merge) if merge is not None else None,
            partitions=tuple(partitions) if partitions else None,
            required_module=data.get("requiredModule"),
            declaration=DeclarationOptions.from_value(data.get("declaration")),
        )

    @property
    def has_name_override(self) -> bool:
        """True when some rule maps another device field onto `name`."""
        return any(rule.new_id == "name" for rule in self.properties)

    @property
    def needs_device_name(self) -> bool:
        return "{{deviceName}}" in self.path

    def select_fields(self) -> list[str]:
        """Property ids to request from the device, always including name."""
        fields = [rule.id for rule in self.properties]
        if "name" not in fields:
            fields.append("name")
        if self.partitions:
            fields.append("partition")
        return fields

    def rule(self, rule_id: str) -> Optional[PropertyRule]:
        for rule in self.properties:
            if rule.id == rule_id:
                return rule
        return None


class Catalog:
    """Ordered collection of mapping descriptors."""

    def __init__(self, descriptors: list[MappingDescriptor]):
        self._descriptors = tuple(descriptors)
        self._by_class: dict[str, list[MappingDescriptor]] = {}
        for descriptor in self._descriptors:
            if descriptor.schema_class:
                self._by_class.setdefault(descriptor.schema_class, []).append(descriptor)

    @classmethod
    def from_list(cls, entries: list[dict]) -> "Catalog":
        """Build a catalog from a list of camelCase entry dicts."""
        return cls([MappingDescriptor.from_dict(entry) for entry in entries])

    def __iter__(self) -> Iterator[MappingDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def for_class(self, schema_class: str) -> tuple[MappingDescriptor, ...]:
        """All descriptors for a schema class, in catalog order."""
        return tuple(self._by_class.get(schema_class, ()))

    @property
    def classes(self) -> frozenset[str]:
        return frozenset(self._by_class)

    @property
    def nameless_classes(self) -> frozenset[str]:
        """Classes stored without a user-chosen object name."""
        return frozenset(
            schema_class
            for schema_class, descriptors in self._by_class.items()
            if any(d.nameless or d.single_value for d in descriptors)
        )

    def has_name_override(self, schema_class: str) -> bool:
        return any(d.has_name_override for d in self.for_class(schema_class))


_default_catalog: Optional[Catalog] = None


def load_catalog(path: Optional[str | Path] = None) -> Catalog:
    """Load a catalog from YAML.

    Args:
        path: Catalog file; the packaged catalog when omitted

    Returns:
        Catalog instance (the packaged one is cached)

    Raises:
        CatalogError: If an entry is malformed
    """
    global _default_catalog
    if path is None and _default_catalog is not None:
        return _default_catalog

    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    with open(catalog_path) as f:
        entries = yaml.safe_load(f) or []

    if not isinstance(entries, list):
        raise CatalogError(f"Catalog {catalog_path} must be a list of entries")

    catalog = Catalog.from_list(entries)
    logger.debug(f"Loaded {len(catalog)} catalog entries from {catalog_path}")

    if path is None:
        _default_catalog = catalog
    return catalog

"""Mapping catalog and device inventory."""
from .catalog import (
    Catalog,
    CatalogError,
    MappingDescriptor,
    PropertyRule,
    SchemaMerge,
    DeclarationOptions,
    DeclarationRule,
    load_catalog,
    SCHEMA_VERSION,
)
from .inventory import DeviceInventory

__all__ = [
    "Catalog",
    "CatalogError",
    "MappingDescriptor",
    "PropertyRule",
    "SchemaMerge",
    "DeclarationOptions",
    "DeclarationRule",
    "load_catalog",
    "SCHEMA_VERSION",
    "DeviceInventory",
]

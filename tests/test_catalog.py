"""Tests for the mapping catalog."""
import pytest

from mcp_device_onboarding.config.catalog import (
    Catalog,
    CatalogError,
    MappingDescriptor,
    PropertyRule,
    load_catalog,
)


class TestPropertyRule:
    """Tests for PropertyRule parsing."""

    def test_from_dict(self):
        """camelCase keys map onto rule fields."""
        rule = PropertyRule.from_dict({
            "id": "failsafe",
            "newId": "failsafeEnabled",
            "truth": "enabled",
            "falsehood": "disabled",
            "skipWhenOmitted": True,
        })
        assert rule.declaration_id == "failsafeEnabled"
        assert rule.skip_when_omitted is True
        assert rule.has_default is False

    def test_default_when_omitted_none(self):
        """An explicit null default is still a default."""
        rule = PropertyRule.from_dict({"id": "x", "defaultWhenOmitted": None})
        assert rule.has_default is True
        assert rule.default_when_omitted is None

    def test_missing_id(self):
        """Rules need an id."""
        with pytest.raises(CatalogError):
            PropertyRule.from_dict({"newId": "x"})

    def test_unknown_key(self):
        """Misspelled keys are rejected."""
        with pytest.raises(CatalogError, match="truthy"):
            PropertyRule.from_dict({"id": "x", "truthy": "yes"})


class TestMappingDescriptor:
    """Tests for MappingDescriptor."""

    def test_select_fields(self):
        """Select always includes name, and partition when filtering partitions."""
        descriptor = MappingDescriptor.from_dict({
            "path": "/tm/net/route",
            "schemaClass": "Route",
            "partitions": ["Common", "LOCAL_ONLY"],
            "properties": [{"id": "gw"}, {"id": "network"}],
        })
        assert descriptor.select_fields() == ["gw", "network", "name", "partition"]

    def test_name_override(self):
        """A rule renamed onto name is a name override."""
        descriptor = MappingDescriptor.from_dict({
            "path": "/tm/sys/management-ip",
            "schemaClass": "ManagementIp",
            "properties": [{"id": "name", "newId": "address"}, {"id": "description", "newId": "name"}],
        })
        assert descriptor.has_name_override

    def test_declaration_false(self):
        """declaration: false disables the reverse mapping."""
        descriptor = MappingDescriptor.from_dict({"path": "/x", "declaration": False})
        assert descriptor.declaration.enabled is False

    def test_bad_ignore(self):
        """Ignore rules take exactly one key."""
        with pytest.raises(CatalogError):
            MappingDescriptor.from_dict({"path": "/x", "ignore": [{"a": "1", "b": "2"}]})

    def test_needs_device_name(self):
        """Paths with the deviceName token need the device name."""
        descriptor = MappingDescriptor.from_dict({"path": "/tm/cm/device/~Common~{{deviceName}}"})
        assert descriptor.needs_device_name


class TestCatalog:
    """Tests for Catalog and the packaged catalog."""

    def test_for_class_keeps_order(self):
        """Descriptors of a class come back in catalog order."""
        catalog = Catalog.from_list([
            {"path": "/a", "schemaClass": "System", "nameless": True},
            {"path": "/b", "schemaClass": "NTP", "nameless": True},
            {"path": "/c", "schemaClass": "System", "nameless": True, "schemaMerge": {"action": "add"}},
        ])
        assert [d.path for d in catalog.for_class("System")] == ["/a", "/c"]
        assert catalog.for_class("Nope") == ()

    def test_nameless_classes(self):
        """Nameless and single-value classes are nameless."""
        catalog = Catalog.from_list([
            {"path": "/a", "schemaClass": "NTP", "nameless": True},
            {"path": "/b", "schemaClass": "Provision", "singleValue": True},
            {"path": "/c", "schemaClass": "VLAN"},
        ])
        assert catalog.nameless_classes == frozenset({"NTP", "Provision"})

    def test_packaged_catalog_loads(self):
        """The packaged catalog parses and is cached."""
        catalog = load_catalog()
        assert catalog is load_catalog()
        assert len(catalog) > 40
        assert {"VLAN", "SelfIp", "Authentication", "Provision"} <= catalog.classes

    def test_packaged_nameless_classes(self):
        """Well-known singletons are nameless in the packaged catalog."""
        nameless = load_catalog().nameless_classes
        assert {"NTP", "DNS", "System", "Provision", "DbVariables", "Authentication"} <= nameless
        assert "VLAN" not in nameless

    def test_packaged_sentinels_are_strings(self):
        """Truth sentinels survive YAML loading as strings."""
        for descriptor in load_catalog():
            for rule in descriptor.properties:
                if rule.truth is not None:
                    assert isinstance(rule.truth, str), (descriptor.path, rule.id)

    def test_load_from_path(self, tmp_path):
        """A catalog can be loaded from any file."""
        path = tmp_path / "catalog.yaml"
        path.write_text("- path: /tm/sys/ntp\n  schemaClass: NTP\n  nameless: true\n")
        catalog = load_catalog(path)
        assert catalog.classes == frozenset({"NTP"})

    def test_load_not_a_list(self, tmp_path):
        """Catalog files hold a list."""
        path = tmp_path / "catalog.yaml"
        path.write_text("path: /tm/sys/ntp\n")
        with pytest.raises(CatalogError):
            load_catalog(path)

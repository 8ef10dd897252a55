"""Tests for property paths and declaration pointers."""
from mcp_device_onboarding.config_engine.paths import PropertyPath, dereference_pointer


class TestPropertyPath:
    """Tests for PropertyPath."""

    def test_get_nested(self):
        """Dotted paths reach into nested dicts."""
        path = PropertyPath.from_dotted("authentication.password")
        assert path.get({"authentication": {"password": "x"}}) == "x"

    def test_get_missing(self):
        """Missing segments return the default."""
        path = PropertyPath.from_dotted("a.b")
        assert path.get({"a": 1}) is None
        assert path.get({}, default="d") == "d"

    def test_set_creates_parents(self):
        """Intermediate dicts are created."""
        obj: dict = {}
        PropertyPath.from_dotted("a.b.c").set(obj, 1)
        assert obj == {"a": {"b": {"c": 1}}}

    def test_delete(self):
        """Delete reports whether anything was removed."""
        obj = {"a": {"b": 1, "c": 2}}
        assert PropertyPath.from_dotted("a.b").delete(obj) is True
        assert obj == {"a": {"c": 2}}
        assert PropertyPath.from_dotted("a.x.y").delete(obj) is False

    def test_drop_and_child(self):
        """Paths can be shortened and extended."""
        path = PropertyPath(("servers", "primary", "port"))
        assert path.drop(1) == PropertyPath(("primary", "port"))
        assert path.child("x") == PropertyPath(("servers", "primary", "port", "x"))
        assert str(path) == "servers.primary.port"


class TestDereferencePointer:
    """Tests for dereference_pointer."""

    DECLARATION = {
        "Common": {
            "class": "Tenant",
            "myVlan": {"class": "VLAN", "tag": 100},
            "servers": ["a", "b"],
        }
    }

    def test_resolves(self):
        """Pointers walk the declaration."""
        assert dereference_pointer(self.DECLARATION, "/Common/myVlan/tag") == 100

    def test_list_index(self):
        """Numeric segments index lists."""
        assert dereference_pointer(self.DECLARATION, "/Common/servers/1") == "b"

    def test_empty_segments_skipped(self):
        """Leading and doubled slashes are ignored."""
        assert dereference_pointer(self.DECLARATION, "Common//myVlan/tag") == 100

    def test_unresolved(self):
        """Unresolvable pointers give None."""
        assert dereference_pointer(self.DECLARATION, "/Common/nothing/here") is None
        assert dereference_pointer(self.DECLARATION, "/Common/servers/9") is None

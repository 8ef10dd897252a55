"""Tests for the baseline store."""
import pytest
from datetime import datetime, timezone

from mcp_device_onboarding.config_store import (
    BaselineStoreError,
    FileBaselineStore,
    MemoryBaselineStore,
    StoredBaseline,
    compute_checksum,
)


BASELINE = {"Common": {"NTP": {"servers": ["0.pool.ntp.org"], "timezone": "UTC"}}}


class TestStoredBaseline:
    """Tests for StoredBaseline dataclass."""

    def test_to_yaml(self):
        """Test serialization to YAML."""
        stored = StoredBaseline(
            device_id="machine-1",
            config=BASELINE,
            checksum="sha256:abc123",
            updated_at=datetime(2026, 1, 13, 10, 0, 0),
        )

        yaml_str = stored.to_yaml()

        assert "device_id: machine-1" in yaml_str
        assert "sha256:abc123" in yaml_str
        assert "baseline:" in yaml_str
        assert "timezone: UTC" in yaml_str

    def test_from_yaml(self):
        """Test parsing from YAML."""
        yaml_str = """
device_id: machine-1
checksum: sha256:def456
updated_at: '2026-01-13T10:00:00'
baseline:
  Common:
    DNS:
      search: [example.com]
"""

        stored = StoredBaseline.from_yaml(yaml_str, "machine-1")

        assert stored.device_id == "machine-1"
        assert stored.checksum == "sha256:def456"
        assert stored.updated_at == datetime(2026, 1, 13, 10, 0, 0)
        assert stored.config["Common"]["DNS"]["search"] == ["example.com"]

    def test_from_yaml_bad_timestamp(self):
        """Unparseable timestamps are dropped."""
        stored = StoredBaseline.from_yaml("updated_at: yesterday\nbaseline: {}\n", "m")
        assert stored.updated_at is None
        assert stored.config == {}


class TestChecksum:
    """Tests for compute_checksum."""

    def test_key_order_independent(self):
        """Checksums ignore key order."""
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_prefix(self):
        """Checksums are tagged with their algorithm."""
        assert compute_checksum({}).startswith("sha256:")


class TestMemoryBaselineStore:
    """Tests for the in-memory store."""

    def test_missing(self):
        """Unknown devices have no baseline."""
        assert MemoryBaselineStore().get_baseline("nope") is None

    def test_set_get(self):
        """Baselines round through the store."""
        store = MemoryBaselineStore()
        store.set_baseline("machine-1", BASELINE)
        assert store.get_baseline("machine-1") == BASELINE
        assert store.list_baselines() == ["machine-1"]

    def test_isolated_copies(self):
        """Mutating a returned baseline does not change the stored one."""
        store = MemoryBaselineStore()
        config = {"Common": {"DbVariables": {}}}
        store.set_baseline("machine-1", config)
        config["Common"]["DbVariables"]["ui.advisory.enabled"] = "true"

        fetched = store.get_baseline("machine-1")
        fetched["Common"]["NTP"] = {}
        assert store.get_baseline("machine-1") == {"Common": {"DbVariables": {}}}

    def test_delete(self):
        """Deleting reports whether a baseline existed."""
        store = MemoryBaselineStore()
        store.set_baseline("machine-1", BASELINE)
        assert store.delete_baseline("machine-1") is True
        assert store.delete_baseline("machine-1") is False


class TestFileBaselineStore:
    """Tests for the YAML file store."""

    @pytest.fixture
    def store(self, tmp_path):
        return FileBaselineStore(tmp_path)

    def test_creates_directory(self, tmp_path):
        """The baselines directory is created on init."""
        FileBaselineStore(tmp_path / "nested")
        assert (tmp_path / "nested" / "baselines").is_dir()

    def test_set_get(self, store):
        """Baselines persist to disk."""
        store.set_baseline("machine-1", BASELINE)
        assert (store.baselines_dir / "machine-1.yaml").exists()
        assert store.get_baseline("machine-1") == BASELINE

    def test_reopen(self, store, tmp_path):
        """A new store sees baselines written by an old one."""
        store.set_baseline("machine-1", BASELINE)
        assert FileBaselineStore(tmp_path).get_baseline("machine-1") == BASELINE

    def test_unsafe_id(self, store):
        """Device ids are made filesystem safe."""
        store.set_baseline("a/b c", BASELINE)
        assert (store.baselines_dir / "a_b_c.yaml").exists()
        assert store.get_baseline("a/b c") == BASELINE

    def test_missing(self, store):
        """Unknown devices have no baseline."""
        assert store.get_baseline("nope") is None

    def test_hand_edited_warns(self, store, caplog):
        """A checksum mismatch is logged but the baseline is still returned."""
        store.set_baseline("machine-1", BASELINE)
        path = store.baselines_dir / "machine-1.yaml"
        path.write_text(path.read_text().replace("timezone: UTC", "timezone: CET"))

        config = store.get_baseline("machine-1")
        assert config["Common"]["NTP"]["timezone"] == "CET"
        assert "modified outside the store" in caplog.text

    def test_list_and_delete(self, store):
        """Stored baselines can be listed and removed."""
        store.set_baseline("machine-1", BASELINE)
        store.set_baseline("machine-2", {})
        assert sorted(store.list_baselines()) == ["machine-1", "machine-2"]
        assert store.delete_baseline("machine-1") is True
        assert store.list_baselines() == ["machine-2"]

    def test_updated_at_is_utc(self, store):
        """Writes stamp a UTC timestamp."""
        store.set_baseline("machine-1", BASELINE)
        stored = StoredBaseline.from_yaml(
            (store.baselines_dir / "machine-1.yaml").read_text(), "machine-1"
        )
        assert stored.updated_at.tzinfo == timezone.utc

    def test_corrupted_file_raises(self, store, caplog):
        """An unparseable baseline is an error, not a missing baseline."""
        store.set_baseline("machine-1", BASELINE)
        path = store.baselines_dir / "machine-1.yaml"
        path.write_text(path.read_text() + "  - [unclosed\n")

        with pytest.raises(BaselineStoreError, match="machine-1"):
            store.get_baseline("machine-1")
        assert "Failed to read baseline for machine-1" in caplog.text

    def test_non_mapping_file_raises(self, store):
        """A baseline file that is not a mapping is rejected."""
        (store.baselines_dir / "machine-1.yaml").write_text("- just\n- a list\n")
        with pytest.raises(BaselineStoreError):
            store.get_baseline("machine-1")

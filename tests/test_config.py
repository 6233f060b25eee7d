"""Tests for the per-connection config store."""

import pytest
import yaml

from microseg_planner.analysis.gateway import GatewayMode
from microseg_planner.config.store import (
    DEFAULT_EXCLUDE_PATTERNS,
    ConfigState,
    ConfigStore,
    MemoryConfigBackend,
    MicrosegConfig,
    YamlConfigBackend,
)
from microseg_planner.errors import ValidationError


class TestMicrosegConfig:
    def test_defaults(self):
        config = MicrosegConfig()
        assert config.gateway_mode is GatewayMode.LAST
        assert config.gateway_offset == 254
        assert config.create_gateways and config.create_base_sgs
        assert config.exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
        assert config.show_excluded

    def test_custom_offset(self):
        config = MicrosegConfig(gateway_mode="custom", custom_offset=10)
        assert config.gateway_mode is GatewayMode.CUSTOM
        assert config.gateway_offset == 10

    def test_invalid_offset_rejected(self):
        with pytest.raises(ValidationError):
            MicrosegConfig(gateway_mode="custom", custom_offset=300)

    @pytest.mark.parametrize("mode", ["first", "last"])
    def test_offset_ignored_outside_custom_mode(self, mode):
        config = MicrosegConfig.from_dict(
            {"gateway_mode": mode, "custom_offset": 0, "exclude_patterns": ["nfs"]}
        )
        assert config.exclude_patterns == ("nfs",)
        assert config.custom_offset == 254

    def test_invalid_mode_rejected(self):
        with pytest.raises(ValidationError):
            MicrosegConfig(gateway_mode="random")

    def test_from_dict_normalizes_patterns(self):
        config = MicrosegConfig.from_dict({"exclude_patterns": [" Ceph", "ceph", "", "NFS"]})
        assert config.exclude_patterns == ("ceph", "nfs")

    def test_from_dict_rejects_string_patterns(self):
        with pytest.raises(ValidationError):
            MicrosegConfig.from_dict({"exclude_patterns": "ceph"})

    def test_roundtrip_keeps_settings(self):
        config = MicrosegConfig(gateway_mode="first", create_gateways=False)
        restored = MicrosegConfig.from_dict(config.to_dict())
        assert restored == config


class TestConfigStore:
    def test_lazy_defaults(self, store):
        assert store.state("lab") is ConfigState.UNINITIALIZED
        assert store.get("lab") == MicrosegConfig()
        assert store.state("lab") is ConfigState.LOADED

    def test_update_persists_whole_config(self):
        backend = MemoryConfigBackend()
        store = ConfigStore(backend)
        store.update("lab", {"gateway_mode": "custom", "custom_offset": 10})
        assert store.state("lab") is ConfigState.PERSISTED
        saved = backend.data["lab"]
        assert saved["custom_offset"] == 10
        assert saved["exclude_patterns"] == list(DEFAULT_EXCLUDE_PATTERNS)

    def test_update_validates(self, store):
        with pytest.raises(ValidationError):
            store.update("lab", {"gateway_mode": "custom", "custom_offset": 0})
        with pytest.raises(ValidationError):
            store.update("lab", {"colour": "blue"})
        assert store.get("lab").gateway_offset == 254

    def test_connections_are_independent(self, store):
        store.update("a", {"gateway_mode": "first"})
        assert store.get("a").gateway_offset == 1
        assert store.get("b").gateway_offset == 254

    def test_add_pattern(self, store):
        config = store.add_pattern("lab", "  NFS ")
        assert config.exclude_patterns[-1] == "nfs"

    @pytest.mark.parametrize("pattern", ["", "   ", "ceph", "CEPH "])
    def test_add_pattern_rejects_blank_and_duplicate(self, store, pattern):
        with pytest.raises(ValidationError):
            store.add_pattern("lab", pattern)

    def test_remove_and_reset(self, store):
        config = store.remove_pattern("lab", "Ceph")
        assert "ceph" not in config.exclude_patterns
        with pytest.raises(ValidationError):
            store.remove_pattern("lab", "ceph")
        assert store.reset_patterns("lab").exclude_patterns == DEFAULT_EXCLUDE_PATTERNS

    def test_invalid_stored_data_falls_back(self):
        store = ConfigStore(MemoryConfigBackend({"lab": {"custom_offset": 999,
                                                         "gateway_mode": "custom"}}))
        assert store.get("lab") == MicrosegConfig()

    def test_stored_offset_unused_in_last_mode(self):
        store = ConfigStore(MemoryConfigBackend({"lab": {
            "gateway_mode": "last", "custom_offset": 0, "exclude_patterns": ["nfs"],
        }}))
        config = store.get("lab")
        assert config.exclude_patterns == ("nfs",)
        assert config.gateway_offset == 254


class TestYamlBackend:
    def test_persist_and_reload(self, tmp_path):
        ConfigStore(YamlConfigBackend(tmp_path)).update("pve/lab", {"show_excluded": False})
        path = tmp_path / "pve_lab.yaml"
        assert path.exists()
        assert yaml.safe_load(path.read_text())["show_excluded"] is False

        reloaded = ConfigStore(YamlConfigBackend(tmp_path)).get("pve/lab")
        assert reloaded.show_excluded is False

    def test_missing_file_gives_defaults(self, tmp_path):
        assert ConfigStore(YamlConfigBackend(tmp_path / "none")).get("lab") == MicrosegConfig()

    def test_corrupt_file_gives_defaults(self, tmp_path):
        (tmp_path / "lab.yaml").write_text("- just\n- a list\n")
        assert ConfigStore(YamlConfigBackend(tmp_path)).get("lab") == MicrosegConfig()

    def test_unparsable_file_gives_defaults(self, tmp_path):
        (tmp_path / "lab.yaml").write_text("gateway_mode: [unclosed\n")
        assert ConfigStore(YamlConfigBackend(tmp_path)).get("lab") == MicrosegConfig()

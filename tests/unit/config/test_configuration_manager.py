"""Unit tests for layered configuration."""

import json

import pytest

from pyclouds.config.manager import ConfigurationManager
from pyclouds.config.schemas import BlobStoreConfig, ComputeConfig, HttpConfig, PyCloudsConfig
from pyclouds.domain.base.exceptions import ConfigurationError


@pytest.mark.unit
class TestConfigurationManager:
    """Test cases for ConfigurationManager."""

    def setup_method(self):
        self.manager = ConfigurationManager(use_environment=False)

    def test_defaults_when_nothing_loaded(self):
        config = self.manager.get_app_config()

        assert isinstance(config, PyCloudsConfig)
        assert config.http.max_retries == 5
        assert config.http.retry_delay_start == 0.05
        assert config.blobstore.default_max_results == 1000
        assert config.compute.provisioning_threads == 1

    def test_load_from_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"http": {"max_retries": 2}, "user_threads": 4}))

        manager = ConfigurationManager(config_file=str(path), use_environment=False)

        assert manager.get("http.max_retries") == 2
        assert manager.get_app_config().user_threads == 4

    def test_load_from_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("blobstore:\n  max_parallel_deletes: 3\n  base_dir: /data\n")

        self.manager.load_from_file(str(path))

        typed = self.manager.get_typed(BlobStoreConfig)
        assert typed.max_parallel_deletes == 3
        assert typed.base_dir == "/data"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            self.manager.load_from_file(str(tmp_path / "absent.yaml"))

    def test_non_mapping_root_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="must be a mapping"):
            self.manager.load_from_file(str(path))

    def test_overrides_win_over_file_and_defaults_lose_to_both(self):
        self.manager.set_defaults({"http.max_retries": 9, "http.max_redirects": 7})
        self.manager.load_from_dict({"http": {"max_retries": 3}})
        self.manager.set("http.read_timeout", 5)

        http = self.manager.get_typed(HttpConfig)

        assert http.max_retries == 3
        assert http.max_redirects == 7
        assert http.read_timeout == 5

    def test_environment_wins_over_overrides(self, monkeypatch):
        manager = ConfigurationManager(use_environment=True)
        manager.set("http.max_retries", 1)
        monkeypatch.setenv("PYCLOUDS_HTTP__MAX_RETRIES", "8")
        monkeypatch.setenv("PYCLOUDS_BLOBSTORE__BASE_DIR", "/tmp/blobs")

        assert manager.get("http.max_retries") == 8
        assert manager.get("blobstore.base_dir") == "/tmp/blobs"

    def test_get_returns_default_for_unknown_key(self):
        assert self.manager.get("no.such.key", "fallback") == "fallback"

    def test_typed_config_is_cached_until_changed(self):
        first = self.manager.get_typed(ComputeConfig)
        assert self.manager.get_typed(ComputeConfig) is first

        self.manager.set("compute.poll_timeout", 30)

        assert self.manager.get_typed(ComputeConfig).poll_timeout == 30

    def test_invalid_section_raises_configuration_error(self):
        self.manager.load_from_dict({"http": {"connect_timeout": -1}})

        with pytest.raises(ConfigurationError, match="Invalid HttpConfig"):
            self.manager.get_typed(HttpConfig)

    def test_poll_period_order_validated(self):
        self.manager.load_from_dict({"compute": {"poll_initial_period": 2, "poll_max_period": 1}})

        with pytest.raises(ConfigurationError):
            self.manager.get_typed(ComputeConfig)

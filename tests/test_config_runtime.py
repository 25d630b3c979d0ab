"""Tests for runtime configuration loading."""

import json

from pastoralist.config_runtime import DEFAULTS, load_runtime_config
from pastoralist.security.types import ProviderConfig


def write_config(root, data):
    config_dir = root / ".pastoralist"
    config_dir.mkdir(exist_ok=True)
    (config_dir / "config.json").write_text(json.dumps(data))


class TestLoadRuntimeConfig:

    def test_defaults_without_file(self, tmp_path):
        assert load_runtime_config(str(tmp_path)) == DEFAULTS

    def test_file_overrides_known_numeric_keys(self, tmp_path):
        write_config(
            tmp_path,
            {
                "timeouts": {"scan": 300, "unknown": 5},
                "limits": {"osv_concurrency": 4, "cache_max": "lots"},
                "retry": {"retries": True},
            },
        )

        cfg = load_runtime_config(str(tmp_path))

        assert cfg["timeouts"]["scan"] == 300
        assert "unknown" not in cfg["timeouts"]
        assert cfg["limits"]["osv_concurrency"] == 4
        assert cfg["limits"]["cache_max"] == DEFAULTS["limits"]["cache_max"]
        assert cfg["retry"]["retries"] == DEFAULTS["retry"]["retries"]

    def test_malformed_file_keeps_defaults(self, tmp_path):
        (tmp_path / ".pastoralist").mkdir()
        (tmp_path / ".pastoralist" / "config.json").write_text("{nope")

        assert load_runtime_config(str(tmp_path)) == DEFAULTS

    def test_environment_beats_file(self, tmp_path, monkeypatch):
        write_config(tmp_path, {"timeouts": {"cli": 10}})
        monkeypatch.setenv("PASTORALIST_TIMEOUTS_CLI", "45")

        assert load_runtime_config(str(tmp_path))["timeouts"]["cli"] == 45

    def test_invalid_environment_value_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PASTORALIST_RETRY_RETRIES", "many")

        assert load_runtime_config(str(tmp_path))["retry"]["retries"] == DEFAULTS["retry"]["retries"]

    def test_defaults_are_not_mutated(self, tmp_path):
        write_config(tmp_path, {"timeouts": {"cli": 1}})
        load_runtime_config(str(tmp_path))

        assert DEFAULTS["timeouts"]["cli"] == 30


class TestProviderConfigFromRuntime:

    def test_runtime_values_flow_into_provider_config(self, tmp_path):
        write_config(tmp_path, {"timeouts": {"gh_cli": 90}, "limits": {"osv_concurrency": 2}, "retry": {"retries": 1}})

        config = ProviderConfig.from_runtime(load_runtime_config(str(tmp_path)), token="t", strict=True)

        assert config.gh_timeout == 90
        assert config.concurrency == 2
        assert config.retries == 1
        assert config.token == "t"
        assert config.strict is True

    def test_without_runtime(self):
        config = ProviderConfig.from_runtime(None, owner="acme")

        assert config.owner == "acme"
        assert config.retries == ProviderConfig().retries

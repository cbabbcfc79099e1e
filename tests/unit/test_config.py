"""Unit tests for config.py.

Covers:
- load_settings: defaults, YAML values, blank token variable name,
  invalid YAML, non-mapping documents, invalid values
- load_settings_file: missing file
- PluginSettings.cache_policy
- RunConfig.from_environ: token lookup, BUILDKITE detection, run identity
"""
from __future__ import annotations

from pathlib import Path

import pytest

from bep_buildkite_bridge.config import (
    DEFAULT_TOKEN_ENV_NAME,
    PluginSettings,
    RunConfig,
    load_settings,
    load_settings_file,
)
from bep_buildkite_bridge.errors import ConfigError
from bep_buildkite_bridge.events.aggregator import CachePolicy


class TestLoadSettings:
    @pytest.mark.parametrize("text", [None, "", "# nothing here\n"])
    def test_defaults(self, text: str | None) -> None:
        settings = load_settings(text)
        assert settings == PluginSettings()
        assert settings.buildkite_analytics_env_name == DEFAULT_TOKEN_ENV_NAME
        assert not settings.pretend

    def test_values(self) -> None:
        settings = load_settings(
            "buildkite_agent_path: /usr/local/bin/buildkite-agent\n"
            "pretend: true\n"
            "buildkite_analytics_env_name: MY_TOKEN\n"
            "label_prefix: 'linux/'\n"
            "junit_labels: ['//a:test', '//b:test']\n"
            "request_timeout: 5\n"
        )
        assert settings.buildkite_agent_path == "/usr/local/bin/buildkite-agent"
        assert settings.pretend
        assert settings.buildkite_analytics_env_name == "MY_TOKEN"
        assert settings.label_prefix == "linux/"
        assert settings.junit_labels == ("//a:test", "//b:test")
        assert settings.request_timeout == 5.0

    def test_blank_token_name_uses_default(self) -> None:
        settings = load_settings("buildkite_analytics_env_name: ''\n")
        assert settings.buildkite_analytics_env_name == DEFAULT_TOKEN_ENV_NAME

    def test_unknown_keys_ignored(self) -> None:
        assert load_settings("something_else: 1\n") == PluginSettings()

    def test_invalid_yaml(self) -> None:
        with pytest.raises(ConfigError):
            load_settings("pretend: [unclosed\n")

    def test_non_mapping(self) -> None:
        with pytest.raises(ConfigError):
            load_settings("- a\n- b\n")

    def test_invalid_value(self) -> None:
        with pytest.raises(ConfigError):
            load_settings("request_timeout: -1\n")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_settings_file(tmp_path / "missing.yaml")

    def test_file(self, tmp_path: Path) -> None:
        path = tmp_path / "props.yaml"
        path.write_text("dry_run: true\n")
        assert load_settings_file(path).dry_run

    def test_cache_policy(self) -> None:
        assert PluginSettings().cache_policy is CachePolicy.EXCLUDE_CACHED
        assert PluginSettings(include_cached=True).cache_policy is CachePolicy.INCLUDE_CACHED


class TestRunConfig:
    def test_from_environ(self) -> None:
        settings = PluginSettings(buildkite_analytics_env_name="MY_TOKEN")
        config = RunConfig.from_environ(
            settings,
            {"MY_TOKEN": "t0k", "BUILDKITE": "true", "BUILDKITE_BRANCH": "main"},
        )
        assert config.token == "t0k"
        assert config.in_buildkite
        assert config.run_env.branch == "main"
        assert config.settings is settings

    def test_outside_buildkite(self) -> None:
        config = RunConfig.from_environ(PluginSettings(), {"BUILDKITE": "false"})
        assert not config.in_buildkite
        assert config.token == ""

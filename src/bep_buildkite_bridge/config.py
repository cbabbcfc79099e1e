"""Plugin configuration.

Settings come from two places, both read once at setup:

* YAML properties handed over by the host (:class:`PluginSettings`);
* environment variables of the Buildkite job (:class:`RunConfig`).

The rest of the package receives plain values and never re-reads either.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError

from bep_buildkite_bridge.analytics.run_env import RunEnvironment
from bep_buildkite_bridge.analytics.uploader import ANALYTICS_ENDPOINT
from bep_buildkite_bridge.errors import ConfigError
from bep_buildkite_bridge.events.aggregator import CachePolicy

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_ENV_NAME = "BUILDKITE_ANALYTICS_TOKEN"


class PluginSettings(BaseModel):
    """Properties accepted in the plugin's YAML configuration.

    Attributes
    ----------
    buildkite_agent_path:
        Path of the ``buildkite-agent`` binary; looked up on ``$PATH``
        when empty.
    pretend:
        Print ``buildkite-agent`` commands instead of running them.
    buildkite_analytics_env_name:
        Environment variable holding the analytics token.
    label_prefix:
        Prefix added to test names sent to analytics.
    junit_labels:
        Test labels whose ``test.xml`` is uploaded as a JUnit report.
    include_cached:
        Send cache-hit test results to analytics as well.
    dry_run:
        Write ``testresults.json`` instead of calling the analytics API.
    analytics_endpoint:
        Analytics upload URL.
    request_timeout:
        Seconds allowed for each network request or remote transfer.
    """

    model_config = {"frozen": True, "extra": "ignore"}

    buildkite_agent_path: str = ""
    pretend: bool = False
    buildkite_analytics_env_name: str = DEFAULT_TOKEN_ENV_NAME
    label_prefix: str = ""
    junit_labels: tuple[str, ...] = ()
    include_cached: bool = False
    dry_run: bool = False
    analytics_endpoint: str = ANALYTICS_ENDPOINT
    request_timeout: float = Field(default=30.0, gt=0)

    @property
    def cache_policy(self) -> CachePolicy:
        if self.include_cached:
            return CachePolicy.INCLUDE_CACHED
        return CachePolicy.EXCLUDE_CACHED


def load_settings(text: str | bytes | None) -> PluginSettings:
    """Parse YAML plugin properties.

    Empty or missing input yields the defaults.

    Raises
    ------
    ConfigError
        If the YAML is invalid or a property has the wrong type.
    """
    if not text:
        return PluginSettings()
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse properties: {exc}") from exc
    if data is None:
        return PluginSettings()
    if not isinstance(data, dict):
        raise ConfigError(
            f"failed to parse properties: expected a mapping, got {type(data).__name__}"
        )
    # An explicitly blank token variable name falls back to the default.
    if not data.get("buildkite_analytics_env_name"):
        data.pop("buildkite_analytics_env_name", None)
    try:
        return PluginSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid properties: {exc}") from exc


def load_settings_file(path: str | Path) -> PluginSettings:
    """Read and parse a YAML properties file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    return load_settings(text)


class RunConfig(BaseModel):
    """Values resolved from plugin settings and the job environment."""

    model_config = {"frozen": True}

    settings: PluginSettings = Field(default_factory=PluginSettings)
    token: str = ""
    in_buildkite: bool = False
    run_env: RunEnvironment = Field(default_factory=RunEnvironment)

    @classmethod
    def from_environ(
        cls,
        settings: PluginSettings,
        environ: Mapping[str, str] | None = None,
    ) -> "RunConfig":
        """Resolve the token and run identity from *environ* (``os.environ``)."""
        env = os.environ if environ is None else environ
        token = env.get(settings.buildkite_analytics_env_name, "")
        if not token:
            logger.info(
                "No analytics token in $%s; analytics upload disabled.",
                settings.buildkite_analytics_env_name,
            )
        return cls(
            settings=settings,
            token=token,
            in_buildkite=env.get("BUILDKITE") == "true",
            run_env=RunEnvironment.from_environ(env),
        )

"""Test analytics upload.

Submodules
----------
- ``run_env``   RunEnvironment (``run_env[...]`` fields)
- ``uploader``  AnalyticsUploader, partition, MAX_CHUNK
"""
from __future__ import annotations

from bep_buildkite_bridge.analytics.run_env import RunEnvironment
from bep_buildkite_bridge.analytics.uploader import (
    ANALYTICS_ENDPOINT,
    MAX_CHUNK,
    AnalyticsUploader,
    partition,
)

__all__ = [
    "ANALYTICS_ENDPOINT",
    "MAX_CHUNK",
    "AnalyticsUploader",
    "RunEnvironment",
    "partition",
]

"""bep-buildkite-bridge: report Bazel build events to Buildkite.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Quick-start example
-------------------
>>> import bep_buildkite_bridge as bbb
>>> bbb.__version__
'0.1.0'

Subpackages
-----------
events:
    Build event variants, the BEP JSON decoder, and the EventAggregator.
artifacts:
    URI resolution over local files and remote ByteStream services.
analytics:
    Chunked multipart upload of test outcomes and JUnit reports.
report:
    Buildkite annotations for failed tests and actions.
"""
from __future__ import annotations

__version__: str = "0.1.0"

# -- Errors ---------------------------------------------------------------
from bep_buildkite_bridge.errors import (
    AgentError,
    ConfigError,
    ResolutionError,
    ResolutionErrorKind,
    UploadError,
)

# -- Events ---------------------------------------------------------------
from bep_buildkite_bridge.events import (
    ActionCompletedEvent,
    BuildEvent,
    CachePolicy,
    EventAggregator,
    FailedAction,
    FailureReason,
    OutputFile,
    TestOutcome,
    TestRecord,
    TestResult,
    TestResultEvent,
    TestStatus,
    iter_build_events,
    parse_build_event,
)

# -- Artifacts ------------------------------------------------------------
from bep_buildkite_bridge.artifacts import (
    ArtifactResolver,
    ArtifactURI,
    ByteStreamConnection,
    ConnectionPool,
)

# -- Analytics ------------------------------------------------------------
from bep_buildkite_bridge.analytics import (
    MAX_CHUNK,
    AnalyticsUploader,
    RunEnvironment,
    partition,
)

# -- Report ---------------------------------------------------------------
from bep_buildkite_bridge.report import (
    BuildkiteAgent,
    CommandAgent,
    PretendAgent,
    ReportEmitter,
)

# -- Run ------------------------------------------------------------------
from bep_buildkite_bridge.config import PluginSettings, RunConfig, load_settings
from bep_buildkite_bridge.run import BuildRun, RunState

__all__: list[str] = [
    "__version__",
    # errors
    "AgentError",
    "ConfigError",
    "ResolutionError",
    "ResolutionErrorKind",
    "UploadError",
    # events
    "ActionCompletedEvent",
    "BuildEvent",
    "CachePolicy",
    "EventAggregator",
    "FailedAction",
    "FailureReason",
    "OutputFile",
    "TestOutcome",
    "TestRecord",
    "TestResult",
    "TestResultEvent",
    "TestStatus",
    "iter_build_events",
    "parse_build_event",
    # artifacts
    "ArtifactResolver",
    "ArtifactURI",
    "ByteStreamConnection",
    "ConnectionPool",
    # analytics
    "MAX_CHUNK",
    "AnalyticsUploader",
    "RunEnvironment",
    "partition",
    # report
    "BuildkiteAgent",
    "CommandAgent",
    "PretendAgent",
    "ReportEmitter",
    # run
    "BuildRun",
    "PluginSettings",
    "RunConfig",
    "RunState",
    "load_settings",
]

"""Build event models, decoding, and aggregation.

Submodules
----------
- ``models``      BuildEvent variants, TestOutcome, FailedAction, enums
- ``bep``         Build Event Protocol JSON decoder
- ``aggregator``  EventAggregator, TestRecord, CachePolicy
"""
from __future__ import annotations

from bep_buildkite_bridge.events.aggregator import (
    CachePolicy,
    EventAggregator,
    TestRecord,
)
from bep_buildkite_bridge.events.bep import iter_build_events, parse_build_event
from bep_buildkite_bridge.events.models import (
    ActionCompletedEvent,
    BuildEvent,
    FailedAction,
    FailureReason,
    OutputFile,
    TestOutcome,
    TestResult,
    TestResultEvent,
    TestStatus,
)

__all__ = [
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
]

"""Build annotations for failed tests and actions.

Submodules
----------
- ``agent``     BuildkiteAgent, CommandAgent, PretendAgent
- ``markdown``  annotation templates
- ``emitter``   ReportEmitter
"""
from __future__ import annotations

from bep_buildkite_bridge.report.agent import BuildkiteAgent, CommandAgent, PretendAgent
from bep_buildkite_bridge.report.emitter import ReportEmitter

__all__ = ["BuildkiteAgent", "CommandAgent", "PretendAgent", "ReportEmitter"]

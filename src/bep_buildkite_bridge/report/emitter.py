"""ReportEmitter: turn accumulated failures into build annotations.

For each failed test the emitter posts a one-line annotation and uploads
the test log as an artifact; for each failed action it posts the action's
captured stdout and stderr.  Logs are read through
:class:`~bep_buildkite_bridge.artifacts.ArtifactResolver`, so they may live
on disk or in a remote cache.
"""
from __future__ import annotations

import logging
from typing import Sequence

from bep_buildkite_bridge.artifacts.resolver import ArtifactResolver
from bep_buildkite_bridge.events.aggregator import TEST_LOG_NAME, TestRecord
from bep_buildkite_bridge.events.models import FailedAction
from bep_buildkite_bridge.report.agent import BuildkiteAgent
from bep_buildkite_bridge.report.markdown import (
    TEST_PREAMBLE,
    render_action_header,
    render_failed_test,
    render_output_section,
)

logger = logging.getLogger(__name__)

ERROR_STYLE = "error"
FAILED_TEST_CONTEXT = "failed_test"
FAILED_ACTIONS_CONTEXT = "failed_actions"


class ReportEmitter:
    """Annotates the build with failed tests and failed actions.

    Parameters
    ----------
    agent:
        The annotation/upload capability.
    resolver:
        Used to read or download referenced logs.
    timeout:
        Deadline in seconds for each remote log transfer.
    """

    def __init__(
        self,
        agent: BuildkiteAgent,
        resolver: ArtifactResolver,
        timeout: float | None = None,
    ) -> None:
        self._agent = agent
        self._resolver = resolver
        self._timeout = timeout
        self._preamble_posted = False

    def emit(
        self,
        failed_tests: Sequence[TestRecord],
        failed_actions: Sequence[FailedAction],
    ) -> None:
        """Post annotations for every failure.  Errors propagate."""
        self.annotate_failed_tests(failed_tests)
        self.annotate_failed_actions(failed_actions)

    def annotate_failed_tests(self, failed_tests: Sequence[TestRecord]) -> None:
        if failed_tests and not self._preamble_posted:
            self._preamble_posted = True
            self._annotate(FAILED_TEST_CONTEXT, TEST_PREAMBLE)

        for record in failed_tests:
            self._annotate(FAILED_TEST_CONTEXT, render_failed_test(record.label))
            if record.log_uri:
                log_path = self._resolver.localize(
                    record.log_uri, TEST_LOG_NAME, timeout=self._timeout
                )
                self._agent.upload_artifact(log_path)
        logger.info("Annotated %d failed tests.", len(failed_tests))

    def annotate_failed_actions(self, failed_actions: Sequence[FailedAction]) -> None:
        for action in failed_actions:
            self._annotate(FAILED_ACTIONS_CONTEXT, self.render_failed_action(action))
        logger.info("Annotated %d failed actions.", len(failed_actions))

    def render_failed_action(self, action: FailedAction) -> str:
        parts = [render_action_header(action.label)]
        for title, uri in (("stdout", action.stdout_uri), ("stderr", action.stderr_uri)):
            if not uri:
                continue
            with self._resolver.open(uri, timeout=self._timeout) as stream:
                parts.append(render_output_section(title, stream))
        return "".join(parts)

    def _annotate(self, context: str, body: str) -> None:
        self._agent.annotate(ERROR_STYLE, context, body.encode("utf-8"))

"""BuildRun: run-scoped state from the first event to the final report.

A run moves through ``IDLE -> ACCUMULATING -> FINALIZING -> DONE``.
Events are folded into an :class:`EventAggregator` while accumulating;
:meth:`BuildRun.finalize` then annotates the build, uploads analytics, and
releases every remote connection.  Nothing is checkpointed: if the process
dies before finalizing, the run's data is gone.
"""
from __future__ import annotations

import io
import logging
from enum import Enum
from pathlib import Path

from bep_buildkite_bridge.analytics.uploader import AnalyticsUploader
from bep_buildkite_bridge.artifacts.resolver import ArtifactResolver
from bep_buildkite_bridge.config import RunConfig
from bep_buildkite_bridge.errors import ResolutionError, ResolutionErrorKind
from bep_buildkite_bridge.events.aggregator import (
    TEST_XML_NAME,
    EventAggregator,
    TestRecord,
)
from bep_buildkite_bridge.events.models import TestOutcome
from bep_buildkite_bridge.report.agent import BuildkiteAgent, CommandAgent, PretendAgent
from bep_buildkite_bridge.report.emitter import ReportEmitter

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FINALIZING = "finalizing"
    DONE = "done"


class BuildRun:
    """Collects build events and reports them once at the end of the run.

    Parameters
    ----------
    config:
        Resolved plugin settings, token, and run identity.
    resolver:
        Artifact resolver; a default one is created when omitted.
    agent:
        ``buildkite-agent`` capability; chosen from ``config.settings.pretend``
        when omitted.
    uploader:
        Analytics uploader; built from *config* when omitted.
    snapshot_path:
        Destination of the dry-run snapshot.
    """

    def __init__(
        self,
        config: RunConfig,
        resolver: ArtifactResolver | None = None,
        agent: BuildkiteAgent | None = None,
        uploader: AnalyticsUploader | None = None,
        snapshot_path: str | Path = "testresults.json",
    ) -> None:
        settings = config.settings
        self._config = config
        self._resolver = resolver or ArtifactResolver()
        if agent is None:
            agent_cls = PretendAgent if settings.pretend else CommandAgent
            agent = agent_cls(settings.buildkite_agent_path)
        self._agent = agent
        self._uploader = uploader or AnalyticsUploader(
            run_env=config.run_env,
            endpoint=settings.analytics_endpoint,
            timeout=settings.request_timeout,
        )
        self._snapshot_path = Path(snapshot_path)
        self._aggregator = EventAggregator(
            label_prefix=settings.label_prefix,
            cache_policy=settings.cache_policy,
        )
        self._emitter = ReportEmitter(
            self._agent, self._resolver, timeout=settings.request_timeout
        )
        self._state = RunState.IDLE

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------

    def observe(self, event: object) -> None:
        """Fold one build event into the run.

        Ignored outside of a Buildkite job.

        Raises
        ------
        RuntimeError
            If the run is already finalizing or done.
        """
        if self._state in (RunState.FINALIZING, RunState.DONE):
            raise RuntimeError(f"Cannot observe events in state {self._state.value}.")
        if not self._config.in_buildkite:
            return
        self._state = RunState.ACCUMULATING
        self._aggregator.observe(event)

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def finalize(self) -> None:
        """Annotate the build and upload analytics.  Runs at most once.

        The resolver is closed whatever the outcome; the first error is
        re-raised for the host to decide whether it is fatal.
        """
        if self._state in (RunState.FINALIZING, RunState.DONE):
            logger.debug("finalize() called again in state %s.", self._state.value)
            return
        if not self._config.in_buildkite:
            self._state = RunState.DONE
            self._resolver.close()
            return

        self._state = RunState.FINALIZING
        try:
            self._emitter.emit(
                self._aggregator.failed_tests, self._aggregator.failed_actions
            )
            self._post_analytics()
            self._post_structured_reports()
        finally:
            self._resolver.close()
            self._state = RunState.DONE
        logger.info("Run finalized: %r", self._aggregator)

    def _post_analytics(self) -> None:
        outcomes = [self._outcome_with_logs(record) for record in self._aggregator.test_records]
        if self._config.settings.dry_run:
            self._uploader.snapshot_to_disk(outcomes, self._snapshot_path)
            return
        self._uploader.upload(self._config.token, outcomes)

    def _outcome_with_logs(self, record: TestRecord) -> TestOutcome:
        if not record.failed or not record.log_uri:
            return record.outcome
        stream = self._resolver.open(
            record.log_uri, timeout=self._config.settings.request_timeout
        )
        with io.TextIOWrapper(stream, encoding="utf-8", errors="replace") as log:
            try:
                lines = log.read().splitlines()
            except OSError as exc:
                raise ResolutionError(
                    ResolutionErrorKind.TRANSFER, record.log_uri, str(exc)
                ) from exc
        return record.outcome.with_log_lines(lines)

    def _post_structured_reports(self) -> None:
        allowed = set(self._config.settings.junit_labels)
        if not allowed or not self._config.token:
            return
        for record in self._aggregator.test_records:
            if record.label not in allowed or not record.xml_uri:
                continue
            path = self._resolver.localize(
                record.xml_uri, TEST_XML_NAME, timeout=self._config.settings.request_timeout
            )
            self._uploader.upload_structured_file(self._config.token, path)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def aggregator(self) -> EventAggregator:
        return self._aggregator

    @property
    def agent(self) -> BuildkiteAgent:
        return self._agent

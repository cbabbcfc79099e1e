"""EventAggregator: accumulate failures and test outcomes from a build run.

The aggregator is fed one build event at a time and keeps, in arrival
order:

* every freshly executed test attempt, as a :class:`TestRecord`;
* the subset of those attempts that failed;
* every action that did not succeed, as a :class:`FailedAction`.

It never raises on input.  Unknown event variants (and ``None``, which the
decoder yields for malformed records) are dropped, so a reporting sidecar
can never abort the build it observes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

from bep_buildkite_bridge.events.models import (
    ActionCompletedEvent,
    FailedAction,
    TestOutcome,
    TestResultEvent,
)

logger = logging.getLogger(__name__)

TEST_LOG_NAME = "test.log"
TEST_XML_NAME = "test.xml"


class CachePolicy(str, Enum):
    """Whether cache-hit test results produce analytics records.

    ``EXCLUDE_CACHED`` is the default: a cached result carries no new timing
    information, and counting it would report one physical execution twice.
    """

    EXCLUDE_CACHED = "exclude_cached"
    INCLUDE_CACHED = "include_cached"


@dataclass(frozen=True)
class TestRecord:
    """A test attempt retained for end-of-run reporting.

    Attributes
    ----------
    label:
        Unprefixed target label.
    outcome:
        The analytics record derived from the event.
    log_uri:
        URI of the attempt's ``test.log``, if reported.
    xml_uri:
        URI of the attempt's ``test.xml``, if reported.
    cached:
        True when the event was a cache hit (only possible under
        :attr:`CachePolicy.INCLUDE_CACHED`).
    """

    __test__ = False

    label: str
    outcome: TestOutcome
    log_uri: str | None = None
    xml_uri: str | None = None
    cached: bool = False

    @property
    def failed(self) -> bool:
        return self.outcome.failure_reason is not None

    def with_outcome(self, outcome: TestOutcome) -> "TestRecord":
        return replace(self, outcome=outcome)


class EventAggregator:
    """In-memory bookkeeping over a sequence of build events.

    Parameters
    ----------
    label_prefix:
        Prepended to every test label in the derived :class:`TestOutcome`.
    cache_policy:
        Whether cache-hit results produce a :class:`TestOutcome`.

    Example
    -------
    ::

        aggregator = EventAggregator()
        for event in iter_build_events(lines):
            aggregator.observe(event)
        outcomes = aggregator.outcomes
    """

    def __init__(
        self,
        label_prefix: str = "",
        cache_policy: CachePolicy = CachePolicy.EXCLUDE_CACHED,
    ) -> None:
        self._label_prefix = label_prefix
        self._cache_policy = cache_policy
        self._test_records: list[TestRecord] = []
        self._failed_tests: list[TestRecord] = []
        self._failed_actions: list[FailedAction] = []
        self._events_seen = 0

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def observe(self, event: object) -> None:
        """Fold one event into the accumulated state.

        Never raises.  Anything other than a :class:`TestResultEvent` or an
        :class:`ActionCompletedEvent` is ignored.
        """
        self._events_seen += 1
        if isinstance(event, TestResultEvent):
            self._observe_test_result(event)
        elif isinstance(event, ActionCompletedEvent):
            self._observe_action(event)
        else:
            logger.debug("Ignoring event of type %s.", type(event).__name__)

    def _observe_test_result(self, event: TestResultEvent) -> None:
        cached = event.cached
        if cached and self._cache_policy is CachePolicy.EXCLUDE_CACHED:
            logger.debug("Skipping cached test result for %s.", event.label)
            return

        record = TestRecord(
            label=event.label,
            outcome=TestOutcome.from_event(event, self._label_prefix),
            log_uri=event.output_uri(TEST_LOG_NAME),
            xml_uri=event.output_uri(TEST_XML_NAME),
            cached=cached,
        )
        self._test_records.append(record)
        if event.failed and not cached:
            self._failed_tests.append(record)
            logger.debug("Recorded failed test %s (%s).", event.label, event.status.value)

    def _observe_action(self, event: ActionCompletedEvent) -> None:
        if event.success:
            return
        self._failed_actions.append(FailedAction.from_event(event))
        logger.debug("Recorded failed action %s.", event.label)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def test_records(self) -> list[TestRecord]:
        """Retained test attempts, in arrival order."""
        return list(self._test_records)

    @property
    def failed_tests(self) -> list[TestRecord]:
        """Failed, non-cached test attempts, in arrival order."""
        return list(self._failed_tests)

    @property
    def failed_actions(self) -> list[FailedAction]:
        """Unsuccessful actions, in arrival order."""
        return list(self._failed_actions)

    @property
    def outcomes(self) -> list[TestOutcome]:
        """One :class:`TestOutcome` per retained test attempt."""
        return [record.outcome for record in self._test_records]

    @property
    def events_seen(self) -> int:
        return self._events_seen

    def __repr__(self) -> str:
        return (
            f"EventAggregator(tests={len(self._test_records)}, "
            f"failed_tests={len(self._failed_tests)}, "
            f"failed_actions={len(self._failed_actions)})"
        )

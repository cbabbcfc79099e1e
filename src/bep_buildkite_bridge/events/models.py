"""Build event payloads and the records derived from them.

The two event variants handled here mirror the parts of Bazel's Build Event
Protocol that matter for reporting: a test finishing and an action
completing.  :data:`BuildEvent` is a closed union discriminated on ``kind``;
consumers match it with ``isinstance`` and ignore everything else.

Derived records
---------------
* :class:`TestOutcome`: one analytics record per executed test attempt.
* :class:`FailedAction`: one record per action that did not succeed.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class TestStatus(str, Enum):
    """Test status codes as reported by the build event stream."""

    # Domain type, not a pytest test class.
    __test__ = False

    NO_STATUS = "NO_STATUS"
    PASSED = "PASSED"
    FLAKY = "FLAKY"
    TIMEOUT = "TIMEOUT"
    FAILED = "FAILED"
    INCOMPLETE = "INCOMPLETE"
    REMOTE_FAILURE = "REMOTE_FAILURE"
    FAILED_TO_BUILD = "FAILED_TO_BUILD"
    TOOL_HALTED_BEFORE_TESTING = "TOOL_HALTED_BEFORE_TESTING"

    @property
    def is_failure(self) -> bool:
        """True for the statuses that count as a failed test run."""
        return self in _FAILING_STATUSES


_FAILING_STATUSES = frozenset(
    {TestStatus.FAILED, TestStatus.REMOTE_FAILURE, TestStatus.TIMEOUT}
)


class FailureReason(str, Enum):
    """Why a test was reported as failed to the analytics sink."""

    NO_STATUS = "no_status"
    FAILED = "failed"
    FLAKY = "flaky"
    TIMEOUT = "timeout"
    REMOTE_FAILURE = "remote_failure"
    FAILED_TO_BUILD = "failed_to_build"
    TOOL_HALTED_BEFORE_TESTING = "tool_halted_before_testing"
    UNKNOWN = "unknown"

    @classmethod
    def from_status(cls, status: TestStatus) -> "FailureReason":
        return _REASON_BY_STATUS.get(status, cls.UNKNOWN)


_REASON_BY_STATUS: dict[TestStatus, FailureReason] = {
    TestStatus.NO_STATUS: FailureReason.NO_STATUS,
    TestStatus.FAILED: FailureReason.FAILED,
    TestStatus.FLAKY: FailureReason.FLAKY,
    TestStatus.TIMEOUT: FailureReason.TIMEOUT,
    TestStatus.REMOTE_FAILURE: FailureReason.REMOTE_FAILURE,
    TestStatus.FAILED_TO_BUILD: FailureReason.FAILED_TO_BUILD,
    TestStatus.TOOL_HALTED_BEFORE_TESTING: FailureReason.TOOL_HALTED_BEFORE_TESTING,
}


class TestResult(str, Enum):
    """Outcome recorded in the analytics payload."""

    __test__ = False

    PASSED = "passed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------------


class OutputFile(BaseModel):
    """A named file produced by a test action, addressed by URI."""

    model_config = {"frozen": True}

    name: str
    uri: str


class TestResultEvent(BaseModel):
    """A test attempt finished.

    Attributes
    ----------
    label:
        Target label of the test, e.g. ``//pkg:my_test``.
    status:
        Status code reported for the attempt.
    cached_locally:
        Result was served from the local action cache.
    cached_remotely:
        Result was served from the remote cache.
    start_epoch_millis:
        Attempt start time in milliseconds since the epoch.
    duration_millis:
        Attempt duration in milliseconds.
    output_files:
        Files produced by the attempt (``test.log``, ``test.xml``...).
    """

    __test__ = False

    model_config = {"frozen": True}

    kind: Literal["test_result"] = "test_result"
    label: str
    status: TestStatus = TestStatus.NO_STATUS
    cached_locally: bool = False
    cached_remotely: bool = False
    start_epoch_millis: int = Field(default=0, ge=0)
    duration_millis: int = Field(default=0, ge=0)
    output_files: tuple[OutputFile, ...] = ()

    @property
    def cached(self) -> bool:
        """True when the result is a cache hit rather than a fresh execution."""
        return self.cached_locally or self.cached_remotely

    @property
    def failed(self) -> bool:
        return self.status.is_failure

    def output_uri(self, name: str) -> str | None:
        """Return the URI of the output file called *name*, if any."""
        for output in self.output_files:
            if output.name == name:
                return output.uri
        return None


class ActionCompletedEvent(BaseModel):
    """A build action completed, successfully or not."""

    model_config = {"frozen": True}

    kind: Literal["action_completed"] = "action_completed"
    label: str = ""
    success: bool
    stdout_uri: str | None = None
    stderr_uri: str | None = None


BuildEvent = Annotated[
    Union[TestResultEvent, ActionCompletedEvent], Field(discriminator="kind")
]
"""Type alias: the closed union of event variants handled by the aggregator."""


# ---------------------------------------------------------------------------
# Derived records
# ---------------------------------------------------------------------------


class TestOutcome(BaseModel):
    """One freshly executed test attempt, as sent to the analytics sink.

    Attributes
    ----------
    id:
        Fresh unique identifier for this record.
    name:
        Test label, optionally prefixed.
    result:
        Passed or failed.
    failure_reason:
        Set only when ``result`` is failed.
    failure_log_lines:
        Lines of the test log, attached at end-of-run for failed tests.
    start_at:
        Start time in epoch milliseconds.
    end_at:
        End time in epoch milliseconds.
    duration_seconds:
        Attempt duration in seconds.
    """

    __test__ = False

    model_config = {"frozen": True}

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    result: TestResult
    failure_reason: FailureReason | None = None
    failure_log_lines: tuple[str, ...] | None = None
    start_at: int
    end_at: int
    duration_seconds: float

    @classmethod
    def from_event(cls, event: TestResultEvent, name_prefix: str = "") -> "TestOutcome":
        """Derive an outcome from a test result event."""
        failed = event.failed
        return cls(
            name=f"{name_prefix}{event.label}",
            result=TestResult.FAILED if failed else TestResult.PASSED,
            failure_reason=FailureReason.from_status(event.status) if failed else None,
            start_at=event.start_epoch_millis,
            end_at=event.start_epoch_millis + event.duration_millis,
            duration_seconds=event.duration_millis / 1000,
        )

    def with_log_lines(self, lines: list[str]) -> "TestOutcome":
        """Return a copy carrying *lines* as the expanded failure log."""
        return self.model_copy(update={"failure_log_lines": tuple(lines)})

    def to_payload(self) -> dict[str, object]:
        """Serialise to the analytics JSON wire shape.

        ``failure_reason`` and ``failure_expanded`` are omitted when empty.
        """
        payload: dict[str, object] = {
            "id": self.id,
            "name": self.name,
            "history": {
                "start_at": self.start_at,
                "end_at": self.end_at,
                "duration": self.duration_seconds,
            },
            "result": self.result.value,
        }
        if self.failure_reason is not None:
            payload["failure_reason"] = self.failure_reason.value
        if self.failure_log_lines:
            payload["failure_expanded"] = [{"expanded": list(self.failure_log_lines)}]
        return payload


@dataclass(frozen=True)
class FailedAction:
    """An action that did not succeed, with URIs of its captured output."""

    label: str
    stdout_uri: str | None = None
    stderr_uri: str | None = None

    @classmethod
    def from_event(cls, event: ActionCompletedEvent) -> "FailedAction":
        return cls(
            label=event.label,
            stdout_uri=event.stdout_uri or None,
            stderr_uri=event.stderr_uri or None,
        )

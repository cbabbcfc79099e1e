"""Unit tests for event models and the BEP JSON decoder.

Covers:
- events/models.py: TestStatus.is_failure, FailureReason.from_status,
  TestResultEvent (cached, output_uri), TestOutcome (from_event, to_payload,
  with_log_lines), FailedAction.from_event
- events/bep.py: parse_build_event (test results, actions, proto3 defaults,
  timestamp/duration forms, unknown and malformed records),
  iter_build_events (blank lines, invalid JSON)
"""
from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from bep_buildkite_bridge.events.aggregator import TestRecord
from bep_buildkite_bridge.events.bep import iter_build_events, parse_build_event
from bep_buildkite_bridge.events.models import (
    ActionCompletedEvent,
    FailedAction,
    FailureReason,
    OutputFile,
    TestOutcome,
    TestResult,
    TestResultEvent,
    TestStatus,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _test_event(**overrides: object) -> TestResultEvent:
    fields: dict[str, object] = {
        "label": "//pkg:unit_test",
        "status": TestStatus.PASSED,
        "start_epoch_millis": 1_700_000_000_000,
        "duration_millis": 1500,
    }
    fields.update(overrides)
    return TestResultEvent(**fields)


def _bep_test_record(**payload: object) -> dict[str, object]:
    return {
        "id": {"testResult": {"label": "//pkg:unit_test", "run": 1, "shard": 1, "attempt": 1}},
        "testResult": payload,
    }


# ---------------------------------------------------------------------------
# Statuses and failure reasons
# ---------------------------------------------------------------------------


class TestStatusClassification:
    @pytest.mark.parametrize(
        "status", [TestStatus.FAILED, TestStatus.REMOTE_FAILURE, TestStatus.TIMEOUT]
    )
    def test_failing_statuses(self, status: TestStatus) -> None:
        assert status.is_failure

    @pytest.mark.parametrize(
        "status",
        [TestStatus.PASSED, TestStatus.FLAKY, TestStatus.NO_STATUS, TestStatus.INCOMPLETE],
    )
    def test_non_failing_statuses(self, status: TestStatus) -> None:
        assert not status.is_failure

    def test_failure_reason_mapping(self) -> None:
        assert FailureReason.from_status(TestStatus.FAILED) is FailureReason.FAILED
        assert FailureReason.from_status(TestStatus.TIMEOUT) is FailureReason.TIMEOUT
        assert (
            FailureReason.from_status(TestStatus.TOOL_HALTED_BEFORE_TESTING)
            is FailureReason.TOOL_HALTED_BEFORE_TESTING
        )

    def test_unmapped_status_is_unknown(self) -> None:
        assert FailureReason.from_status(TestStatus.PASSED) is FailureReason.UNKNOWN
        assert FailureReason.from_status(TestStatus.INCOMPLETE) is FailureReason.UNKNOWN


# ---------------------------------------------------------------------------
# TestResultEvent
# ---------------------------------------------------------------------------


class TestTestResultEvent:
    def test_cached_when_either_flag_set(self) -> None:
        assert _test_event(cached_locally=True).cached
        assert _test_event(cached_remotely=True).cached
        assert not _test_event().cached

    def test_output_uri_lookup(self) -> None:
        event = _test_event(
            output_files=(
                OutputFile(name="test.log", uri="file:///tmp/test.log"),
                OutputFile(name="test.xml", uri="file:///tmp/test.xml"),
            )
        )
        assert event.output_uri("test.xml") == "file:///tmp/test.xml"
        assert event.output_uri("missing") is None

    def test_events_are_immutable(self) -> None:
        event = _test_event()
        with pytest.raises(ValidationError):
            event.label = "//other:test"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# TestOutcome
# ---------------------------------------------------------------------------


class TestTestOutcome:
    def test_passed_outcome(self) -> None:
        outcome = TestOutcome.from_event(_test_event())
        assert outcome.result is TestResult.PASSED
        assert outcome.failure_reason is None
        assert outcome.start_at == 1_700_000_000_000
        assert outcome.end_at == 1_700_000_001_500
        assert outcome.duration_seconds == pytest.approx(1.5)

    def test_failed_outcome_has_reason(self) -> None:
        outcome = TestOutcome.from_event(_test_event(status=TestStatus.REMOTE_FAILURE))
        assert outcome.result is TestResult.FAILED
        assert outcome.failure_reason is FailureReason.REMOTE_FAILURE

    def test_name_prefix(self) -> None:
        outcome = TestOutcome.from_event(_test_event(), name_prefix="linux/")
        assert outcome.name == "linux///pkg:unit_test"

    def test_ids_are_unique(self) -> None:
        event = _test_event()
        assert TestOutcome.from_event(event).id != TestOutcome.from_event(event).id

    def test_payload_of_passed_outcome_omits_failure_fields(self) -> None:
        payload = TestOutcome.from_event(_test_event()).to_payload()
        assert list(payload) == ["id", "name", "history", "result"]
        assert payload["history"] == {
            "start_at": 1_700_000_000_000,
            "end_at": 1_700_000_001_500,
            "duration": 1.5,
        }
        assert payload["result"] == "passed"

    def test_payload_of_failed_outcome_with_logs(self) -> None:
        outcome = TestOutcome.from_event(_test_event(status=TestStatus.FAILED))
        payload = outcome.with_log_lines(["line 1", "line 2"]).to_payload()
        assert payload["failure_reason"] == "failed"
        assert payload["failure_expanded"] == [{"expanded": ["line 1", "line 2"]}]

    def test_with_log_lines_keeps_identity(self) -> None:
        outcome = TestOutcome.from_event(_test_event(status=TestStatus.FAILED))
        updated = outcome.with_log_lines(["x"])
        assert updated.id == outcome.id
        assert outcome.failure_log_lines is None


class TestFailedAction:
    def test_blank_uris_become_none(self) -> None:
        action = FailedAction.from_event(
            ActionCompletedEvent(label="//a:b", success=False, stdout_uri="", stderr_uri="file:///e")
        )
        assert action == FailedAction(label="//a:b", stdout_uri=None, stderr_uri="file:///e")


# ---------------------------------------------------------------------------
# parse_build_event
# ---------------------------------------------------------------------------


class TestParseBuildEvent:
    def test_test_result_record(self) -> None:
        record = _bep_test_record(
            status="FAILED",
            testAttemptStartMillisEpoch="1700000000000",
            testAttemptDurationMillis="250",
            testActionOutput=[
                {"name": "test.log", "uri": "file:///out/test.log"},
                {"name": "test.xml", "uri": "bytestream://cache:443/blobs/abc/10"},
            ],
        )
        event = parse_build_event(record)
        assert isinstance(event, TestResultEvent)
        assert event.label == "//pkg:unit_test"
        assert event.status is TestStatus.FAILED
        assert event.start_epoch_millis == 1_700_000_000_000
        assert event.duration_millis == 250
        assert event.output_uri("test.log") == "file:///out/test.log"
        assert not event.cached

    def test_cache_flags(self) -> None:
        event = parse_build_event(
            _bep_test_record(status="PASSED", cachedLocally=True)
        )
        assert isinstance(event, TestResultEvent)
        assert event.cached_locally

        event = parse_build_event(
            _bep_test_record(status="PASSED", executionInfo={"cachedRemotely": True})
        )
        assert isinstance(event, TestResultEvent)
        assert event.cached_remotely

    def test_timestamp_and_duration_forms(self) -> None:
        event = parse_build_event(
            _bep_test_record(
                status="PASSED",
                testAttemptStart="2023-11-14T22:13:20.123456789Z",
                testAttemptDuration="1.500s",
            )
        )
        assert isinstance(event, TestResultEvent)
        assert event.start_epoch_millis == 1_700_000_000_123
        assert event.duration_millis == 1500

    def test_unknown_status_becomes_no_status(self) -> None:
        event = parse_build_event(_bep_test_record(status="SOMETHING_NEW"))
        assert isinstance(event, TestResultEvent)
        assert event.status is TestStatus.NO_STATUS

    def test_failed_action_record_with_omitted_success(self) -> None:
        record = {
            "id": {"actionCompleted": {"primaryOutput": "bazel-out/x", "label": "//a:gen"}},
            "action": {
                "stdout": {"name": "stdout", "uri": "file:///out/stdout"},
                "stderr": {"name": "stderr", "uri": "file:///out/stderr"},
            },
        }
        event = parse_build_event(record)
        assert isinstance(event, ActionCompletedEvent)
        assert not event.success
        assert event.label == "//a:gen"
        assert event.stderr_uri == "file:///out/stderr"

    def test_successful_action_record(self) -> None:
        record = {
            "id": {"actionCompleted": {"label": "//a:gen"}},
            "action": {"success": True},
        }
        event = parse_build_event(record)
        assert isinstance(event, ActionCompletedEvent)
        assert event.success

    def test_unrelated_record_is_none(self) -> None:
        assert parse_build_event({"id": {"started": {}}, "started": {"uuid": "x"}}) is None

    def test_malformed_records_are_none(self) -> None:
        assert parse_build_event(_bep_test_record(testAttemptDurationMillis="soon")) is None
        assert parse_build_event({"id": {"testResult": {}}, "testResult": {}}) is None
        assert parse_build_event(["not", "a", "dict"]) is None  # type: ignore[arg-type]


class TestIterBuildEvents:
    def test_skips_noise(self) -> None:
        lines = [
            json.dumps({"id": {"started": {}}, "started": {}}),
            "",
            "{not json",
            json.dumps(_bep_test_record(status="PASSED")),
            json.dumps({"id": {"actionCompleted": {"label": "//a"}}, "action": {}}),
        ]
        events = list(iter_build_events(lines))
        assert [type(event) for event in events] == [TestResultEvent, ActionCompletedEvent]


class TestCollectionOptOut:
    @pytest.mark.parametrize(
        "cls", [TestStatus, TestResult, TestResultEvent, TestOutcome, TestRecord]
    )
    def test_domain_types_are_not_collected(self, cls: type) -> None:
        assert cls.__test__ is False

"""Decode Bazel's newline-delimited Build Event Protocol JSON.

Bazel writes one JSON object per line with ``--build_event_json_file``.
Only two record shapes are decoded here; everything else yields ``None``.

Proto3 JSON omits fields holding their default value, so an absent
``success`` or ``cachedLocally`` key means ``false``, and 64-bit integers
arrive as strings.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, Iterator

from pydantic import ValidationError

from bep_buildkite_bridge.events.models import (
    ActionCompletedEvent,
    BuildEvent,
    OutputFile,
    TestResultEvent,
    TestStatus,
)

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^(-?\d+(?:\.\d+)?)s$")
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def _to_millis_from_duration(value: str) -> int:
    match = _DURATION_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Unparseable duration {value!r}.")
    return int(round(float(match.group(1)) * 1000))


def _to_millis_from_timestamp(value: str) -> int:
    # Python's isoformat parser stops at microseconds.
    text = _FRACTION_RE.sub(r".\1", value.strip()).replace("Z", "+00:00")
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _start_millis(payload: dict) -> int:
    if "testAttemptStartMillisEpoch" in payload:
        return int(payload["testAttemptStartMillisEpoch"])
    if "testAttemptStart" in payload:
        return _to_millis_from_timestamp(payload["testAttemptStart"])
    return 0


def _duration_millis(payload: dict) -> int:
    if "testAttemptDurationMillis" in payload:
        return int(payload["testAttemptDurationMillis"])
    if "testAttemptDuration" in payload:
        return _to_millis_from_duration(payload["testAttemptDuration"])
    return 0


def _decode_test_result(event_id: dict, payload: dict) -> TestResultEvent:
    execution_info = payload.get("executionInfo") or {}
    outputs = tuple(
        OutputFile(name=item["name"], uri=item["uri"])
        for item in payload.get("testActionOutput", ())
        if item.get("uri")
    )
    status = payload.get("status", TestStatus.NO_STATUS.value)
    if status not in TestStatus.__members__:
        status = TestStatus.NO_STATUS.value
    return TestResultEvent(
        label=event_id["testResult"]["label"],
        status=TestStatus(status),
        cached_locally=bool(payload.get("cachedLocally", False)),
        cached_remotely=bool(execution_info.get("cachedRemotely", False)),
        start_epoch_millis=_start_millis(payload),
        duration_millis=_duration_millis(payload),
        output_files=outputs,
    )


def _decode_action(event_id: dict, payload: dict) -> ActionCompletedEvent:
    label = event_id["actionCompleted"].get("label") or payload.get("label", "")
    return ActionCompletedEvent(
        label=label,
        success=bool(payload.get("success", False)),
        stdout_uri=(payload.get("stdout") or {}).get("uri"),
        stderr_uri=(payload.get("stderr") or {}).get("uri"),
    )


def parse_build_event(record: dict) -> BuildEvent | None:
    """Decode one BEP JSON record.

    Parameters
    ----------
    record:
        A decoded JSON object from the event stream.

    Returns
    -------
    BuildEvent | None
        The decoded event, or ``None`` for unrecognised or malformed
        records.
    """
    if not isinstance(record, dict):
        return None
    event_id = record.get("id") or {}
    try:
        if "testResult" in record and "testResult" in event_id:
            return _decode_test_result(event_id, record["testResult"])
        if "action" in record and "actionCompleted" in event_id:
            return _decode_action(event_id, record["action"])
    except (KeyError, TypeError, AttributeError, ValueError, ValidationError) as exc:
        logger.warning("Skipping malformed build event: %s", exc)
    return None


def iter_build_events(lines: Iterable[str]) -> Iterator[BuildEvent]:
    """Yield decoded events from newline-delimited BEP JSON.

    Blank lines, invalid JSON and unrecognised records are skipped.
    """
    for line_number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Skipping invalid JSON on line %d.", line_number)
            continue
        event = parse_build_event(record)
        if event is not None:
            yield event

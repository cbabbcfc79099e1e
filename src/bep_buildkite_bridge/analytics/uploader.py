"""AnalyticsUploader: post test outcomes to the test analytics API.

Outcomes are sent as ``multipart/form-data`` with a ``format`` field, the
``run_env[...]`` identity fields, and a ``data`` field.  The endpoint
accepts at most :data:`MAX_CHUNK` records per request, so larger runs are
split into ordered chunks posted one after another.  The first rejected
chunk stops the upload; chunks already accepted stay accepted.

There is exactly one attempt per request.  Callers needing retries wrap
:meth:`AnalyticsUploader.upload` themselves.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Sequence, TypeVar

import requests

from bep_buildkite_bridge.analytics.run_env import RunEnvironment
from bep_buildkite_bridge.errors import UploadError
from bep_buildkite_bridge.events.models import TestOutcome

logger = logging.getLogger(__name__)

ANALYTICS_ENDPOINT = "https://analytics-api.buildkite.com/v1/uploads"
MAX_CHUNK = 5000
SNAPSHOT_FILENAME = "testresults.json"
JUNIT_FILENAME = "test.xml"

_T = TypeVar("_T")


def partition(items: Sequence[_T], size: int = MAX_CHUNK) -> list[Sequence[_T]]:
    """Split *items* into contiguous slices of at most *size* elements.

    Returns ``ceil(len(items) / size)`` slices in original order.
    """
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}.")
    return [items[start:start + size] for start in range(0, len(items), size)]


def authorization_header(token: str) -> dict[str, str]:
    return {"Authorization": f'Token token="{token}"'}


class AnalyticsUploader:
    """Uploads test outcomes and structured report files.

    Parameters
    ----------
    run_env:
        Identity of the current CI run, read once at setup.
    endpoint:
        Upload URL.
    session:
        HTTP session to send requests with.  A new
        :class:`requests.Session` is created when omitted.
    timeout:
        Per-request timeout in seconds.
    chunk_size:
        Maximum records per request.  Cannot exceed :data:`MAX_CHUNK`.
    """

    def __init__(
        self,
        run_env: RunEnvironment | None = None,
        endpoint: str = ANALYTICS_ENDPOINT,
        session: requests.Session | None = None,
        timeout: float | None = 30.0,
        chunk_size: int = MAX_CHUNK,
    ) -> None:
        if not 0 < chunk_size <= MAX_CHUNK:
            raise ValueError(
                f"chunk_size must be in [1, {MAX_CHUNK}], got {chunk_size}."
            )
        self._run_env = run_env or RunEnvironment()
        self._endpoint = endpoint
        self._session = session or requests.Session()
        self._timeout = timeout
        self._chunk_size = chunk_size

    # ------------------------------------------------------------------
    # JSON upload
    # ------------------------------------------------------------------

    def upload(self, token: str, outcomes: Sequence[TestOutcome]) -> None:
        """Post *outcomes* in chunks.

        Does nothing when *token* or *outcomes* is empty.

        Raises
        ------
        UploadError
            On the first chunk that fails; later chunks are not sent.
        """
        if not token or not outcomes:
            logger.debug("Analytics upload skipped (token set: %s).", bool(token))
            return

        chunks = partition(outcomes, self._chunk_size)
        for index, chunk in enumerate(chunks, start=1):
            data = json.dumps([outcome.to_payload() for outcome in chunk])
            files = self._form_fields("json") + [("data", (None, data.encode("utf-8")))]
            self._post(token, files)
            logger.info(
                "Uploaded analytics chunk %d/%d (%d records).", index, len(chunks), len(chunk)
            )

    # ------------------------------------------------------------------
    # Structured file upload
    # ------------------------------------------------------------------

    def upload_structured_file(self, token: str, file_path: str | Path) -> None:
        """Post a JUnit XML report as the ``data`` file field.

        Does nothing when *token* is empty.

        Raises
        ------
        OSError
            If *file_path* cannot be read.
        UploadError
            If the endpoint rejects the upload.
        """
        if not token:
            return
        with open(file_path, "rb") as report:
            files = self._form_fields("junit") + [
                ("data", (JUNIT_FILENAME, report, "application/xml"))
            ]
            self._post(token, files)
        logger.info("Uploaded structured report %s.", file_path)

    # ------------------------------------------------------------------
    # Offline sink
    # ------------------------------------------------------------------

    def snapshot_to_disk(
        self, outcomes: Sequence[TestOutcome], path: str | Path = SNAPSHOT_FILENAME
    ) -> Path:
        """Write all *outcomes* to *path* as one JSON array.

        The file is written next to its destination and renamed into place,
        so readers never observe a partial snapshot.
        """
        destination = Path(path)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.", dir=destination.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump([outcome.to_payload() for outcome in outcomes], handle)
                handle.write("\n")
            os.replace(temp_name, destination)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
        logger.info("Wrote %d test outcomes to %s.", len(outcomes), destination)
        return destination

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _form_fields(self, fmt: str) -> list[tuple[str, tuple[None, bytes]]]:
        fields = [("format", fmt)] + self._run_env.form_fields()
        return [(name, (None, value.encode("utf-8"))) for name, value in fields]

    def _post(self, token: str, files: list) -> None:  # type: ignore[type-arg]
        try:
            response = self._session.post(
                self._endpoint,
                headers=authorization_header(token),
                files=files,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise UploadError(None, str(exc)) from exc

        if not 200 <= response.status_code < 300:
            raise UploadError(response.status_code, response.text[:200])

"""Exception types raised by bep-buildkite-bridge.

Event ingestion never raises; artifact resolution and uploads do.  The
classes here are the ones callers are expected to catch at the end of a
run.
"""
from __future__ import annotations

from enum import Enum


class ResolutionErrorKind(str, Enum):
    """Why an artifact URI could not be read."""

    UNSUPPORTED_SCHEME = "unsupported_scheme"
    TRANSFER = "transfer"
    NOT_FOUND = "not_found"


class ResolutionError(Exception):
    """Raised when an artifact URI cannot be opened or materialised locally.

    Attributes
    ----------
    kind:
        The :class:`ResolutionErrorKind` classifying the failure.
    uri:
        The artifact URI that failed to resolve.
    """

    def __init__(self, kind: ResolutionErrorKind, uri: str, detail: str = "") -> None:
        self.kind = kind
        self.uri = uri
        message = f"Cannot resolve {uri!r} ({kind.value})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class UploadError(Exception):
    """Raised when the analytics endpoint rejects or never receives a payload.

    ``status_code`` is ``None`` when the request failed before a response
    was received (connection refused, timeout).
    """

    def __init__(self, status_code: int | None, detail: str = "") -> None:
        self.status_code = status_code
        if status_code is None:
            message = f"Analytics upload failed: {detail or 'no response'}"
        else:
            message = f"Analytics upload failed, status code = {status_code}"
            if detail:
                message = f"{message}: {detail}"
        super().__init__(message)


class ConfigError(ValueError):
    """Raised when plugin properties cannot be parsed or validated."""


class AgentError(RuntimeError):
    """Raised when the ``buildkite-agent`` command exits unsuccessfully."""

    def __init__(self, command: list[str], returncode: int, output: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"{' '.join(command[:2])} exited with status {returncode}."
        )


__all__ = [
    "AgentError",
    "ConfigError",
    "ResolutionError",
    "ResolutionErrorKind",
    "UploadError",
]

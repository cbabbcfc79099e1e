"""The ``buildkite-agent`` capability used to annotate builds and upload files.

Two implementations are provided:

* :class:`CommandAgent` runs the real ``buildkite-agent`` binary.
* :class:`PretendAgent` prints the command it would have run, for local
  development outside of a Buildkite job.
"""
from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TextIO

import click

from bep_buildkite_bridge.errors import AgentError

logger = logging.getLogger(__name__)

DEFAULT_AGENT_PATH = "buildkite-agent"


class BuildkiteAgent(ABC):
    """Posts annotations and uploads artifacts for the current build."""

    def __init__(self, path: str = "") -> None:
        self.path = path or DEFAULT_AGENT_PATH

    @abstractmethod
    def annotate(self, style: str, context: str, body: bytes) -> None:
        """Append *body* to the annotation identified by *context*.

        Parameters
        ----------
        style:
            Annotation style (``error``, ``warning``, ``info``, ``success``).
        context:
            Deduplication key; bodies sharing a context are appended to one
            annotation.
        body:
            Markdown content.
        """

    @abstractmethod
    def upload_artifact(self, path: str | Path) -> None:
        """Upload the file at *path* as a build artifact."""

    def annotate_command(self, style: str, context: str) -> list[str]:
        return [self.path, "annotate", "--style", style, "--context", context, "--append"]

    def upload_command(self, path: str | Path) -> list[str]:
        return [self.path, "artifact", "upload", str(path)]


class CommandAgent(BuildkiteAgent):
    """Runs ``buildkite-agent`` as a subprocess.

    Parameters
    ----------
    path:
        Binary to invoke; ``buildkite-agent`` from ``$PATH`` when empty.
    timeout:
        Seconds to wait for each invocation.
    """

    def __init__(self, path: str = "", timeout: float | None = None) -> None:
        super().__init__(path)
        self._timeout = timeout

    def annotate(self, style: str, context: str, body: bytes) -> None:
        self._run(self.annotate_command(style, context), stdin=body)

    def upload_artifact(self, path: str | Path) -> None:
        self._run(self.upload_command(path))

    def _run(self, command: list[str], stdin: bytes | None = None) -> None:
        logger.debug("Running %s", " ".join(command))
        completed = subprocess.run(
            command,
            input=stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=self._timeout,
            check=False,
        )
        if completed.returncode != 0:
            output = completed.stdout.decode("utf-8", errors="replace")
            logger.error(
                "buildkite-agent exited with status %d:\n%s", completed.returncode, output
            )
            raise AgentError(command, completed.returncode, output)


class PretendAgent(BuildkiteAgent):
    """Prints the ``buildkite-agent`` invocations instead of running them."""

    def __init__(self, path: str = "", stream: TextIO | None = None) -> None:
        super().__init__(path)
        self._stream = stream

    def annotate(self, style: str, context: str, body: bytes) -> None:
        command = " ".join(self.annotate_command(style, context))
        click.echo(f"{command} <<EOF", file=self._stream)
        click.echo(body.decode("utf-8", errors="replace"), file=self._stream, nl=False)
        click.echo("EOF", file=self._stream)

    def upload_artifact(self, path: str | Path) -> None:
        command = self.upload_command(path)
        click.echo(f"{' '.join(command[:-1])} {str(path)!r}", file=self._stream)

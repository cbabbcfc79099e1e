"""Annotation bodies for failed tests and failed actions."""
from __future__ import annotations

from typing import BinaryIO

TEST_PREAMBLE = """\
:bulb: You can run the following failed test targets with 'bazel test [target]' locally on your
machine to reproduce the issues and iterate faster than having to wait for the CI again.


"""


def render_failed_test(label: str) -> str:
    return f"- **Failed test** `{label}`\n"


def render_action_header(label: str) -> str:
    return f"**Action failed: `{label}`**\n"


def render_output_section(title: str, stream: BinaryIO) -> str:
    """Render the content of *stream* as a fenced terminal block."""
    content = stream.read().decode("utf-8", errors="replace")
    return f"_{title}_:\n```term\n{content}\n```\n"

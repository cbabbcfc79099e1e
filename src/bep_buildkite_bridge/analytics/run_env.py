"""Run identity fields sent with every analytics upload."""
from __future__ import annotations

from typing import Mapping

from pydantic import BaseModel

CI_NAME = "buildkite"


class RunEnvironment(BaseModel):
    """Identity of the CI run an upload belongs to.

    Every field is optional and sent blank when unknown.
    """

    model_config = {"frozen": True}

    key: str = ""
    url: str = ""
    branch: str = ""
    commit_sha: str = ""
    number: str = ""
    job_id: str = ""
    message: str = ""

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "RunEnvironment":
        """Read the ``BUILDKITE_*`` variables describing the current build."""
        return cls(
            key=environ.get("BUILDKITE_BUILD_ID", ""),
            url=environ.get("BUILDKITE_BUILD_URL", ""),
            branch=environ.get("BUILDKITE_BRANCH", ""),
            commit_sha=environ.get("BUILDKITE_COMMIT", ""),
            number=environ.get("BUILDKITE_BUILD_NUMBER", ""),
            job_id=environ.get("BUILDKITE_JOB_ID", ""),
            message=environ.get("BUILDKITE_MESSAGE", ""),
        )

    def form_fields(self) -> list[tuple[str, str]]:
        """Return the ``run_env[...]`` multipart fields, ``CI`` first."""
        fields = [("run_env[CI]", CI_NAME)]
        for name in ("key", "url", "branch", "commit_sha", "number", "job_id", "message"):
            fields.append((f"run_env[{name}]", getattr(self, name)))
        return fields

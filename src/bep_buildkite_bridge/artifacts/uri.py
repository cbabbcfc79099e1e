"""Artifact URI parsing.

Two schemes are understood:

* ``file:///abs/path``: the artifact already sits on a local or shared
  filesystem.
* ``bytestream://host[:port]/resource``: the artifact lives behind a
  remote ByteStream service, usually a remote cache.

Any other scheme is an error, never a silent skip.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import unquote, urlsplit

from bep_buildkite_bridge.errors import ResolutionError, ResolutionErrorKind


class ArtifactScheme(str, Enum):
    FILE = "file"
    BYTESTREAM = "bytestream"


@dataclass(frozen=True)
class ArtifactURI:
    """A parsed artifact location.

    Attributes
    ----------
    raw:
        The URI as received.
    scheme:
        Storage backend the artifact lives on.
    path:
        Local filesystem path (``file``) or resource path (``bytestream``).
    authority:
        ``host[:port]`` of the remote service; empty for ``file``.
    """

    raw: str
    scheme: ArtifactScheme
    path: str
    authority: str = ""

    @property
    def resource_name(self) -> str:
        """ByteStream resource name: the path without its leading slash."""
        return self.path.lstrip("/")

    @classmethod
    def parse(cls, uri: str) -> "ArtifactURI":
        """Parse *uri*, raising :class:`ResolutionError` for unknown schemes."""
        parts = urlsplit(uri)
        scheme = parts.scheme.lower()
        if scheme == ArtifactScheme.FILE.value:
            return cls(raw=uri, scheme=ArtifactScheme.FILE, path=unquote(parts.path))
        if scheme == ArtifactScheme.BYTESTREAM.value:
            if not parts.netloc:
                raise ResolutionError(
                    ResolutionErrorKind.TRANSFER, uri, "missing service address"
                )
            return cls(
                raw=uri,
                scheme=ArtifactScheme.BYTESTREAM,
                path=unquote(parts.path),
                authority=parts.netloc,
            )
        raise ResolutionError(
            ResolutionErrorKind.UNSUPPORTED_SCHEME,
            uri,
            f"scheme not implemented {parts.scheme!r}",
        )

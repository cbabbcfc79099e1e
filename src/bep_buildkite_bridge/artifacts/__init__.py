"""Artifact resolution over local files and remote ByteStream services.

Submodules
----------
- ``uri``         ArtifactURI, ArtifactScheme
- ``bytestream``  ByteStreamConnection, ByteStreamReader, Read messages
- ``resolver``    ArtifactResolver, ConnectionPool
"""
from __future__ import annotations

from bep_buildkite_bridge.artifacts.bytestream import (
    ByteStreamConnection,
    ByteStreamReader,
    ChunkSource,
)
from bep_buildkite_bridge.artifacts.resolver import ArtifactResolver, ConnectionPool
from bep_buildkite_bridge.artifacts.uri import ArtifactScheme, ArtifactURI

__all__ = [
    "ArtifactResolver",
    "ArtifactScheme",
    "ArtifactURI",
    "ByteStreamConnection",
    "ByteStreamReader",
    "ChunkSource",
    "ConnectionPool",
]

"""ArtifactResolver: one read interface over local and remote artifacts.

Test logs and action output can be referenced either as local files or as
blobs behind a remote ByteStream service, depending on whether a remote
cache is configured.  :class:`ArtifactResolver` hides the difference:

* :meth:`ArtifactResolver.open` returns a readable binary stream;
* :meth:`ArtifactResolver.localize` returns a path on the local disk,
  downloading remote blobs into a fresh temporary directory first.

Remote connections are pooled per ``host[:port]`` and released once, when
the resolver is closed.
"""
from __future__ import annotations

import io
import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import BinaryIO, Callable

from bep_buildkite_bridge.artifacts.bytestream import (
    ByteStreamConnection,
    ByteStreamReader,
    ChunkSource,
)
from bep_buildkite_bridge.artifacts.uri import ArtifactScheme, ArtifactURI
from bep_buildkite_bridge.errors import ResolutionError, ResolutionErrorKind

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str], ChunkSource]
"""Type alias: builds a connection for a ``host[:port]`` authority."""

TEMP_DIR_PREFIX = "_bk_artefacts_"


class ConnectionPool:
    """Get-or-create cache of remote connections keyed by authority.

    Lookups are lock-free; creation runs under a lock, so concurrent callers
    asking for the same authority end up sharing a single connection.

    Parameters
    ----------
    factory:
        Callable creating a connection for an authority.  Defaults to
        :class:`ByteStreamConnection`.
    """

    def __init__(self, factory: ConnectionFactory | None = None) -> None:
        self._factory: ConnectionFactory = factory or ByteStreamConnection
        self._connections: dict[str, ChunkSource] = {}
        self._lock = threading.Lock()
        self._closed = False

    def get(self, authority: str) -> ChunkSource:
        """Return the pooled connection for *authority*, creating it once."""
        connection = self._connections.get(authority)
        if connection is not None:
            return connection
        with self._lock:
            if self._closed:
                raise RuntimeError("ConnectionPool is closed.")
            connection = self._connections.get(authority)
            if connection is None:
                connection = self._factory(authority)
                self._connections[authority] = connection
                logger.info("Connected to remote artifact service %s.", authority)
        return connection

    def close(self) -> None:
        """Close every pooled connection.  Later calls are no-ops."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            connection.close()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, authority: object) -> bool:
        return authority in self._connections


class ArtifactResolver:
    """Open or materialise artifacts addressed by ``file://`` or ``bytestream://`` URIs.

    Parameters
    ----------
    pool:
        Connection pool for remote artifacts.  A fresh one is created when
        omitted.
    temp_root:
        Directory under which temporary download directories are created.
        Defaults to the current working directory, so uploaded artifact
        paths stay relative to the job checkout.

    Usage
    -----
    ::

        with ArtifactResolver() as resolver:
            with resolver.open(uri) as stream:
                data = stream.read()
            path = resolver.localize(uri, "test.log")
    """

    def __init__(
        self,
        pool: ConnectionPool | None = None,
        temp_root: str | Path | None = None,
    ) -> None:
        self._pool = pool if pool is not None else ConnectionPool()
        self._temp_root = Path(temp_root) if temp_root is not None else Path(".")

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def open(self, uri: str, timeout: float | None = None) -> BinaryIO:
        """Return a readable binary stream over the artifact at *uri*.

        The caller owns the stream and must close it.

        Raises
        ------
        ResolutionError
            For unsupported schemes, missing files, or remote failures.
        """
        parsed = ArtifactURI.parse(uri)
        if parsed.scheme is ArtifactScheme.FILE:
            return self._open_file(parsed)
        return self._open_remote(parsed, timeout)

    def localize(self, uri: str, name: str, timeout: float | None = None) -> Path:
        """Return a local path holding the artifact at *uri*.

        ``file`` URIs are returned as-is without copying.  ``bytestream``
        URIs are downloaded into ``<temp_root>/_bk_artefacts_*/<name>``,
        flushed and fsynced before the path is returned.  A partially
        written file is removed on failure.

        Raises
        ------
        ResolutionError
            For unsupported schemes or any failure while transferring.
        """
        parsed = ArtifactURI.parse(uri)
        if parsed.scheme is ArtifactScheme.FILE:
            return Path(parsed.path)

        # The connection is acquired first so a closed pool leaves nothing behind.
        source = self._open_remote(parsed, timeout)
        try:
            directory = Path(tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX, dir=self._temp_root))
        except OSError as exc:
            source.close()
            raise ResolutionError(ResolutionErrorKind.TRANSFER, uri, str(exc)) from exc

        destination = directory / Path(name).name
        try:
            with source, destination.open("wb") as sink:
                shutil.copyfileobj(source, sink)
                sink.flush()
                os.fsync(sink.fileno())
        except ResolutionError:
            shutil.rmtree(directory, ignore_errors=True)
            raise
        except OSError as exc:
            shutil.rmtree(directory, ignore_errors=True)
            raise ResolutionError(ResolutionErrorKind.TRANSFER, uri, str(exc)) from exc
        except BaseException:
            shutil.rmtree(directory, ignore_errors=True)
            raise

        logger.info("Downloaded %s to %s.", uri, destination)
        return destination

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release every pooled remote connection."""
        self._pool.close()

    def __enter__(self) -> "ArtifactResolver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_file(self, parsed: ArtifactURI) -> BinaryIO:
        try:
            return open(parsed.path, "rb")
        except FileNotFoundError as exc:
            raise ResolutionError(
                ResolutionErrorKind.NOT_FOUND, parsed.raw, str(exc)
            ) from exc
        except OSError as exc:
            raise ResolutionError(
                ResolutionErrorKind.TRANSFER, parsed.raw, str(exc)
            ) from exc

    def _open_remote(self, parsed: ArtifactURI, timeout: float | None) -> BinaryIO:
        connection = self._pool.get(parsed.authority)
        chunks = connection.read_chunks(parsed.resource_name, timeout=timeout)
        return io.BufferedReader(ByteStreamReader(chunks, parsed.raw))  # type: ignore[return-value]

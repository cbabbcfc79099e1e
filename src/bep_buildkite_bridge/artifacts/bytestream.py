"""Client for the ``google.bytestream.ByteStream`` Read RPC.

Remote caches expose blobs through the ByteStream API: a server-streaming
``Read`` call returning the blob as a sequence of ``ReadResponse.data``
chunks.  Only the two messages that ``Read`` needs are described here, and
they are built at import time into a private descriptor pool so they never
clash with other generated code loaded in the same process.
"""
from __future__ import annotations

import io
import logging
from typing import Iterator, Protocol

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from bep_buildkite_bridge.errors import ResolutionError, ResolutionErrorKind

logger = logging.getLogger(__name__)

READ_METHOD = "/google.bytestream.ByteStream/Read"


def _build_read_messages() -> tuple[type, type]:
    field = descriptor_pb2.FieldDescriptorProto
    proto = descriptor_pb2.FileDescriptorProto(
        name="bep_buildkite_bridge/bytestream_read.proto",
        package="google.bytestream",
        syntax="proto3",
    )
    request = proto.message_type.add(name="ReadRequest")
    request.field.add(
        name="resource_name", number=1, type=field.TYPE_STRING, label=field.LABEL_OPTIONAL
    )
    request.field.add(
        name="read_offset", number=2, type=field.TYPE_INT64, label=field.LABEL_OPTIONAL
    )
    request.field.add(
        name="read_limit", number=3, type=field.TYPE_INT64, label=field.LABEL_OPTIONAL
    )
    response = proto.message_type.add(name="ReadResponse")
    response.field.add(
        name="data", number=10, type=field.TYPE_BYTES, label=field.LABEL_OPTIONAL
    )

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(proto.SerializeToString())
    return (
        message_factory.GetMessageClass(
            pool.FindMessageTypeByName("google.bytestream.ReadRequest")
        ),
        message_factory.GetMessageClass(
            pool.FindMessageTypeByName("google.bytestream.ReadResponse")
        ),
    )


ReadRequest, ReadResponse = _build_read_messages()


class ChunkSource(Protocol):
    """Anything the connection pool can hand out for reading remote blobs."""

    def read_chunks(
        self, resource_name: str, timeout: float | None = None
    ) -> Iterator[bytes]: ...

    def close(self) -> None: ...


class ByteStreamConnection:
    """One gRPC channel to a ByteStream service.

    Parameters
    ----------
    authority:
        ``host[:port]`` of the service.
    channel:
        Pre-built channel; an insecure channel to *authority* is created
        when omitted.
    """

    def __init__(self, authority: str, channel: grpc.Channel | None = None) -> None:
        self.authority = authority
        self._channel = channel or grpc.insecure_channel(authority)
        self._read = self._channel.unary_stream(
            READ_METHOD,
            request_serializer=ReadRequest.SerializeToString,
            response_deserializer=ReadResponse.FromString,
        )
        logger.debug("Opened ByteStream channel to %s.", authority)

    def read_chunks(
        self, resource_name: str, timeout: float | None = None
    ) -> Iterator[bytes]:
        """Stream the blob *resource_name* chunk by chunk.

        *timeout* is the RPC deadline in seconds.  Closing the returned
        generator early cancels the call.
        """
        call = self._read(ReadRequest(resource_name=resource_name), timeout=timeout)
        uri = f"bytestream://{self.authority}/{resource_name}"
        try:
            for response in call:
                if response.data:
                    yield response.data
        except grpc.RpcError as exc:
            code = exc.code() if hasattr(exc, "code") else None
            kind = (
                ResolutionErrorKind.NOT_FOUND
                if code == grpc.StatusCode.NOT_FOUND
                else ResolutionErrorKind.TRANSFER
            )
            raise ResolutionError(kind, uri, str(code)) from exc
        finally:
            call.cancel()

    def close(self) -> None:
        self._channel.close()
        logger.debug("Closed ByteStream channel to %s.", self.authority)

    def __repr__(self) -> str:
        return f"ByteStreamConnection(authority={self.authority!r})"


class ByteStreamReader(io.RawIOBase):
    """Adapts a chunk iterator to a readable binary stream.

    I/O errors raised while iterating are reported as
    :class:`ResolutionError` of kind ``TRANSFER``.
    """

    def __init__(self, chunks: Iterator[bytes], uri: str) -> None:
        super().__init__()
        self._chunks = chunks
        self._uri = uri
        self._pending = b""
        self._exhausted = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # type: ignore[no-untyped-def]
        while not self._pending and not self._exhausted:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                self._exhausted = True
            except OSError as exc:
                raise ResolutionError(
                    ResolutionErrorKind.TRANSFER, self._uri, str(exc)
                ) from exc
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        if not self.closed:
            close_chunks = getattr(self._chunks, "close", None)
            if close_chunks is not None:
                close_chunks()
        super().close()

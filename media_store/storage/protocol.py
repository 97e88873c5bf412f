"""Object store client protocol and the values it exchanges."""

import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, BinaryIO, Callable, Dict, Optional, Protocol, Union


class StreamHandle:
    """Open, undrained object payload.

    Wraps an async iterator of byte chunks and the hook that releases the
    underlying connection or file. Iterate it with ``async for`` and close it
    when done (or use it as an async context manager).
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        close: Optional[Callable[[], Union[None, Awaitable[None]]]] = None,
        content_length: Optional[int] = None,
        content_type: Optional[str] = None,
    ):
        self._chunks = chunks
        self._close = close
        self._closed = False
        self.content_length = content_length
        self.content_type = content_type

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            result = self._close()
            if inspect.isawaitable(result):
                await result

    async def __aenter__(self) -> "StreamHandle":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


# What get_object hands back: a materialized payload or an open stream.
ObjectBody = Union[bytes, str, StreamHandle]

# What put_object accepts: a materialized payload or a readable binary file
# object (sync or async ``read``).
WritePayload = Union[bytes, str, BinaryIO, Any]


async def drain_body(body: ObjectBody) -> Union[bytes, str]:
    """Materialize an object body.

    Buffers and strings are returned as-is. Streams are read to the end,
    chunks concatenated in arrival order, and closed; a read error closes the
    stream and propagates.
    """
    if isinstance(body, (bytes, str)):
        return body
    if isinstance(body, StreamHandle):
        parts = []
        async with body:
            async for chunk in body:
                parts.append(chunk)
        return b"".join(parts)
    raise TypeError(f"Unsupported object body type: {type(body).__name__}")


@dataclass
class ObjectHead:
    """Metadata-only view of a stored object."""

    bucket: str
    key: str
    metadata: Dict[str, str] = field(default_factory=dict)
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    content_length: Optional[int] = None
    content_type: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class StoreResult:
    """Outcome of a mutating store request."""

    bucket: str
    key: str
    action: str  # "put", "copy" or "delete"
    etag: Optional[str] = None
    references: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


class ObjectStoreClient(Protocol):
    """Protocol defining the requests the media provider issues.

    Implementations translate driver failures into
    ``media_store.core.errors`` types (``ObjectNotFoundError``,
    ``PreconditionFailedError``, ``StoreError``) and otherwise report results
    without interpretation.
    """

    async def head_object(self, bucket: str, key: str) -> ObjectHead:
        """Fetch metadata without the payload."""
        ...

    async def get_object(self, bucket: str, key: str) -> ObjectBody:
        """Fetch the payload."""
        ...

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: WritePayload,
        metadata: Dict[str, str],
        content_type: Optional[str] = None,
    ) -> StoreResult:
        """Create or overwrite an object with the given metadata."""
        ...

    async def copy_object(
        self,
        bucket: str,
        source_key: str,
        dest_key: str,
        metadata: Dict[str, str],
        replace_metadata: bool = True,
        if_unmodified_since: Optional[datetime] = None,
        content_type: Optional[str] = None,
    ) -> StoreResult:
        """Copy an object within a bucket.

        ``if_unmodified_since`` makes the copy conditional on the source not
        having changed since then, compared at the store's one-second
        resolution; a lost condition raises ``PreconditionFailedError``.
        ``content_type`` is re-applied when metadata is replaced.

        No ETag condition is offered: the ETag is derived from the
        payload, so a metadata-only rewrite (a self-copy) leaves it unchanged.
        """
        ...

    async def delete_object(self, bucket: str, key: str) -> StoreResult:
        """Remove an object."""
        ...

    async def close(self) -> None:
        """Release connections held by the client."""
        ...

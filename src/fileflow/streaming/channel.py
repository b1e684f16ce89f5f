"""Typed, bounded channels between pipeline stages.

A channel carries items of three shapes from exactly one producer to exactly
one consumer:

    - BUFFER: a fully materialized ``bytes`` blob
    - TEXT:   a fully materialized ``str``
    - STREAM: a lazy, finite, single-pass async iterator of ``bytes`` chunks

The producer finishes with :meth:`Channel.close` (a well-formed end of data)
or :meth:`Channel.fail` (an abrupt close the consumer sees as an error).
The channel never converts between shapes; stages that need a conversion use
the helpers at the bottom of this module.

Example:
    >>> channel = Channel("files")
    >>> await channel.emit_buffer(b"payload")
    >>> await channel.close()
    >>> async for data in channel.buffers():
    ...     print(len(data))
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Iterable,
    Iterator,
    Optional,
    Set,
    Union,
)

from fileflow.errors import ChannelClosedError, ShapeMismatchError, UpstreamFailedError

logger = logging.getLogger(__name__)

Chunks = Union[AsyncIterable[bytes], Iterable[bytes]]


class ItemKind(str, Enum):
    """The shape of an item flowing through a channel."""

    BUFFER = "buffer"
    TEXT = "text"
    STREAM = "stream"


@dataclass(frozen=True)
class Item:
    """One unit of data on a channel.

    Attributes:
        kind: Shape of the payload.
        payload: ``bytes`` for BUFFER, ``str`` for TEXT, an async iterator of
            ``bytes`` for STREAM.
        name: Optional origin (file path, archive entry) used for logging.
    """

    kind: ItemKind
    payload: Any
    name: Optional[str] = None

    def describe(self) -> str:
        """Short label for log messages."""
        label = self.name or "<unnamed>"
        if self.kind is ItemKind.STREAM:
            return f"{label} (stream)"
        return f"{label} ({self.kind.value}, {len(self.payload)} units)"


_CLOSE = object()
_FAIL = object()


class Channel:
    """Ordered, bounded, single-producer/single-consumer item transport.

    The underlying queue holds at most ``capacity`` items; a producer that
    gets ahead of its consumer is suspended until the consumer pulls.

    Attributes:
        name: Channel name, used in logs and errors.
        capacity: Maximum number of items buffered between the two sides.
    """

    def __init__(self, name: str = "channel", capacity: int = 1):
        """Initialize the channel.

        Args:
            name: Channel name.
            capacity: Maximum number of buffered items (at least 1).

        Raises:
            ValueError: If capacity is less than 1.
        """
        if capacity < 1:
            raise ValueError(f"Channel capacity must be at least 1, got {capacity}")

        self.name = name
        self.capacity = capacity
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._error: Optional[BaseException] = None
        self._drained = False
        self._emitted = 0
        self._close_count = 0

    def __repr__(self) -> str:
        state = "failed" if self._error else "closed" if self._closed else "open"
        return f"Channel({self.name!r}, {state}, emitted={self._emitted})"

    # Producer side

    @property
    def closed(self) -> bool:
        """Whether the producer has closed (or failed) the channel."""
        return self._closed

    @property
    def failed(self) -> bool:
        """Whether the producer closed the channel abruptly."""
        return self._error is not None

    @property
    def emitted(self) -> int:
        """Number of items emitted so far."""
        return self._emitted

    @property
    def close_count(self) -> int:
        """Number of effective close operations (0 or 1)."""
        return self._close_count

    async def emit(self, item: Item) -> None:
        """Emit an item, suspending while the channel is full.

        Raises:
            ChannelClosedError: If the channel was already closed.
        """
        if self._closed:
            raise ChannelClosedError(self.name)

        await self._queue.put(item)
        self._emitted += 1
        logger.debug(f"[{self.name}] emitted {item.describe()}")

    async def emit_buffer(self, data: bytes, name: Optional[str] = None) -> None:
        """Emit a BUFFER item."""
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"Buffer items must be bytes, got {type(data).__name__}")
        await self.emit(Item(ItemKind.BUFFER, bytes(data), name))

    async def emit_text(self, text: str, name: Optional[str] = None) -> None:
        """Emit a TEXT item."""
        if not isinstance(text, str):
            raise TypeError(f"Text items must be str, got {type(text).__name__}")
        await self.emit(Item(ItemKind.TEXT, text, name))

    async def emit_stream(self, chunks: Chunks, name: Optional[str] = None) -> None:
        """Emit a STREAM item from a sync or async iterable of byte chunks."""
        await self.emit(Item(ItemKind.STREAM, as_async_chunks(chunks), name))

    async def close(self) -> None:
        """Signal a well-formed end of data.

        Closing twice is a no-op; the consumer observes exactly one end.
        """
        if self._closed:
            logger.debug(f"[{self.name}] close() called on a closed channel")
            return

        self._closed = True
        self._close_count += 1
        await self._queue.put(_CLOSE)
        logger.debug(f"[{self.name}] closed after {self._emitted} item(s)")

    async def fail(self, error: BaseException) -> None:
        """Close the channel abruptly.

        Items already queued are still delivered; after them the consumer
        raises :class:`UpstreamFailedError` instead of terminating cleanly.
        Never blocks, so a failing producer cannot deadlock on a full queue.
        """
        if self._closed:
            return

        self._closed = True
        self._error = error
        try:
            self._queue.put_nowait(_FAIL)
        except asyncio.QueueFull:
            # the consumer finds the error once the queue drains
            pass
        logger.debug(f"[{self.name}] failed: {error}")

    # Consumer side

    def __aiter__(self) -> AsyncIterator[Item]:
        return self.iterate()

    async def iterate(
        self, accepts: Optional[Iterable[ItemKind]] = None
    ) -> AsyncIterator[Item]:
        """Yield items in emission order until the producer closes.

        Args:
            accepts: Shapes the consuming stage supports; ``None`` accepts all.

        Raises:
            ShapeMismatchError: On the first item of an unaccepted shape.
            UpstreamFailedError: If the producer closed abruptly.
        """
        accepted: Optional[Set[ItemKind]] = set(accepts) if accepts is not None else None

        while not self._drained:
            if self._error is not None and self._queue.empty():
                raise UpstreamFailedError(self.name, self._error)

            entry = await self._queue.get()

            if entry is _CLOSE:
                self._drained = True
                return

            if entry is _FAIL:
                raise UpstreamFailedError(self.name, self._error)

            if accepted is not None and entry.kind not in accepted:
                raise ShapeMismatchError(
                    self.name,
                    entry.kind.value,
                    sorted(kind.value for kind in accepted),
                )

            yield entry

    async def buffers(self) -> AsyncIterator[bytes]:
        """Yield BUFFER payloads; any other shape raises ShapeMismatchError."""
        async for item in self.iterate(accepts={ItemKind.BUFFER}):
            yield item.payload

    async def texts(self) -> AsyncIterator[str]:
        """Yield TEXT payloads; any other shape raises ShapeMismatchError."""
        async for item in self.iterate(accepts={ItemKind.TEXT}):
            yield item.payload

    async def streams(self) -> AsyncIterator[AsyncIterator[bytes]]:
        """Yield STREAM payloads; any other shape raises ShapeMismatchError."""
        async for item in self.iterate(accepts={ItemKind.STREAM}):
            yield item.payload


# Shape conversion helpers


async def as_async_chunks(chunks: Chunks) -> AsyncIterator[bytes]:
    """Adapt a sync or async iterable of chunks to an async iterator."""
    if hasattr(chunks, "__aiter__"):
        async for chunk in chunks:  # type: ignore[union-attr]
            yield bytes(chunk)
    else:
        for chunk in chunks:  # type: ignore[union-attr]
            yield bytes(chunk)


def iter_buffer(data: bytes, chunk_size: int) -> Iterator[bytes]:
    """Split a buffer into chunks of at most ``chunk_size`` bytes (BUFFER -> STREAM)."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    view = memoryview(data)
    for start in range(0, len(view), chunk_size):
        yield bytes(view[start : start + chunk_size])


async def read_all(chunks: Chunks) -> bytes:
    """Drain a stream into a single buffer (STREAM -> BUFFER)."""
    parts = []
    async for chunk in as_async_chunks(chunks):
        parts.append(chunk)
    return b"".join(parts)


async def item_bytes(item: Item, encoding: str = "utf-8") -> bytes:
    """Materialize any item as bytes."""
    if item.kind is ItemKind.BUFFER:
        return item.payload
    if item.kind is ItemKind.TEXT:
        return item.payload.encode(encoding)
    return await read_all(item.payload)

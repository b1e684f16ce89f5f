"""Chunked file reading and size-routed emission.

Small files are read whole and emitted as a single BUFFER (or TEXT) item;
large files are emitted as a STREAM of bounded chunks so that they are never
fully materialized. The boundary is inclusive on the small side: a file of
exactly ``threshold_bytes`` is buffered.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Iterator, Union

from fileflow.config import DEFAULT_CHUNK_SIZE, DEFAULT_THRESHOLD_BYTES
from fileflow.errors import SourceNotFoundError
from fileflow.streaming.channel import Channel, ItemKind

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class FileDescriptor:
    """A discovered file and its size.

    Attributes:
        path: Path to the file.
        size_bytes: File size at enumeration time.
    """

    path: str
    size_bytes: int

    @classmethod
    def from_path(cls, path: PathLike) -> "FileDescriptor":
        """Stat a path into a descriptor.

        Raises:
            SourceNotFoundError: If the path does not exist.
        """
        try:
            size = os.stat(path).st_size
        except FileNotFoundError:
            raise SourceNotFoundError(str(path)) from None
        return cls(path=str(path), size_bytes=size)


def choose_transport(
    size_bytes: int, threshold_bytes: int = DEFAULT_THRESHOLD_BYTES
) -> ItemKind:
    """Decide whether an item of the given size is buffered or streamed.

    Args:
        size_bytes: Size of the item.
        threshold_bytes: Largest size still sent as a single buffer.

    Returns:
        ``ItemKind.BUFFER`` when ``size_bytes <= threshold_bytes``,
        ``ItemKind.STREAM`` otherwise.
    """
    if size_bytes > threshold_bytes:
        return ItemKind.STREAM
    return ItemKind.BUFFER


def _open_binary(path: PathLike) -> BinaryIO:
    try:
        return open(path, "rb")
    except FileNotFoundError:
        raise SourceNotFoundError(str(path)) from None


def iter_chunks(
    path: PathLike, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Iterator[bytes]:
    """Read a file lazily in chunks of at most ``chunk_size`` bytes.

    Raises:
        SourceNotFoundError: If the path does not exist.
        ValueError: If chunk_size is not positive.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    with _open_binary(path) as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk


def open_chunked(
    path: PathLike, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> AsyncIterator[bytes]:
    """Open a file and return a lazy async sequence of its chunks.

    The file is opened immediately, so a missing path fails here rather than
    on the first pull. Each read runs in a worker thread; the file is closed
    when the sequence is exhausted or closed.

    Args:
        path: File to read.
        chunk_size: Maximum bytes per chunk.

    Returns:
        Async iterator of byte chunks in file order.

    Raises:
        SourceNotFoundError: If the path does not exist.
        OSError: If the file cannot be opened.
        ValueError: If chunk_size is not positive.

    Example:
        >>> async for chunk in open_chunked("large.bin", chunk_size=64 * 1024):
        ...     sink.write(chunk)
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    handle = _open_binary(path)

    async def chunks() -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    return chunks()


async def read_file(path: PathLike) -> bytes:
    """Read a whole file without blocking the event loop."""

    def _read() -> bytes:
        with _open_binary(path) as f:
            return f.read()

    return await asyncio.to_thread(_read)


async def emit_file(
    channel: Channel,
    descriptor: FileDescriptor,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    threshold_bytes: int = DEFAULT_THRESHOLD_BYTES,
    as_text: bool = False,
    encoding: str = "utf-8",
) -> ItemKind:
    """Emit one file on a channel using the size-routed policy.

    Args:
        channel: Destination channel.
        descriptor: File to emit.
        chunk_size: Chunk size for streamed files.
        threshold_bytes: Largest size emitted whole.
        as_text: Emit small files as TEXT instead of BUFFER.
        encoding: Encoding used when ``as_text`` is set.

    Returns:
        The kind of item that was emitted.
    """
    kind = choose_transport(descriptor.size_bytes, threshold_bytes)

    if kind is ItemKind.STREAM:
        logger.info(
            f"Streaming '{descriptor.path}' ({descriptor.size_bytes} bytes, "
            f"{chunk_size}-byte chunks)"
        )
        await channel.emit_stream(
            open_chunked(descriptor.path, chunk_size), name=descriptor.path
        )
        return kind

    data = await read_file(descriptor.path)
    if as_text:
        await channel.emit_text(data.decode(encoding), name=descriptor.path)
        return ItemKind.TEXT

    await channel.emit_buffer(data, name=descriptor.path)
    return kind

"""Streaming primitives for fileflow.

This package provides the pieces that keep memory bounded regardless of
file size or volume: bounded channels, chunked file reading, size-routed
emission and the memory watchdog.

Example:
    >>> from fileflow.streaming import Channel, FileDescriptor, emit_file
    >>>
    >>> channel = Channel("files")
    >>> await emit_file(channel, FileDescriptor.from_path("big.log"))
    >>> await channel.close()
"""

from fileflow.streaming.channel import (
    Channel,
    Item,
    ItemKind,
    as_async_chunks,
    item_bytes,
    iter_buffer,
    read_all,
)
from fileflow.streaming.reader import (
    FileDescriptor,
    choose_transport,
    emit_file,
    iter_chunks,
    open_chunked,
    read_file,
)
from fileflow.streaming.watchdog import (
    MemoryMonitor,
    ProcessMemoryMonitor,
    TracemallocMonitor,
    Watchdog,
    with_watchdog,
)

__all__ = [
    "Channel",
    "Item",
    "ItemKind",
    "as_async_chunks",
    "item_bytes",
    "iter_buffer",
    "read_all",
    "FileDescriptor",
    "choose_transport",
    "emit_file",
    "iter_chunks",
    "open_chunked",
    "read_file",
    "MemoryMonitor",
    "ProcessMemoryMonitor",
    "TracemallocMonitor",
    "Watchdog",
    "with_watchdog",
]

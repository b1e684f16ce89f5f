"""Memory-watchdog pacing for production loops.

The watchdog samples memory usage before every item a producer emits. When
usage is above the ceiling it pauses the producer; it never drops or reorders
items. This is advisory pacing rather than a hard limit: a slow consumer
gets time to catch up, and pressure is re-evaluated on every item.

Example:
    >>> watchdog = Watchdog(ceiling_bytes=2 * 1024**3, pause_ms=1000)
    >>> async for descriptor in watchdog.pace(descriptors):
    ...     await emit_file(channel, descriptor)
"""

import asyncio
import logging
import os
import tracemalloc
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional, TypeVar, Union

import psutil

from fileflow.config import DEFAULT_MEMORY_CEILING_BYTES, DEFAULT_PAUSE_MS
from fileflow.utils import format_bytes

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MemoryMonitor:
    """Interface for memory samplers.

    Any object with a ``usage_bytes()`` method can be used, which lets tests
    substitute a mock.
    """

    def usage_bytes(self) -> int:
        raise NotImplementedError


class ProcessMemoryMonitor(MemoryMonitor):
    """Resident set size of the current process, via psutil."""

    def __init__(self, pid: Optional[int] = None):
        self._process = psutil.Process(pid or os.getpid())

    def usage_bytes(self) -> int:
        return self._process.memory_info().rss


class TracemallocMonitor(MemoryMonitor):
    """Python heap usage as traced by ``tracemalloc``.

    Starts tracing on first use if it is not already running.
    """

    def usage_bytes(self) -> int:
        if not tracemalloc.is_tracing():
            tracemalloc.start()
        current, _peak = tracemalloc.get_traced_memory()
        return current


class Watchdog:
    """Check-and-pause policy keyed to memory usage.

    Attributes:
        ceiling_bytes: Usage above which the producer pauses.
        pause_ms: Pause length in milliseconds.
        monitor: Memory sampler.
        pauses: Number of pauses taken so far.
    """

    def __init__(
        self,
        ceiling_bytes: int = DEFAULT_MEMORY_CEILING_BYTES,
        pause_ms: float = DEFAULT_PAUSE_MS,
        monitor: Optional[MemoryMonitor] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "watchdog",
    ):
        """Initialize the watchdog.

        Args:
            ceiling_bytes: Usage above which the producer pauses.
            pause_ms: Pause length in milliseconds.
            monitor: Memory sampler; defaults to process RSS.
            sleep: Awaitable sleep, injectable for tests.
            name: Label used in log messages.
        """
        self.ceiling_bytes = ceiling_bytes
        self.pause_ms = pause_ms
        self.monitor = monitor or ProcessMemoryMonitor()
        self.name = name
        self.pauses = 0
        self._sleep = sleep

    def over_ceiling(self) -> bool:
        """Sample memory once and compare it to the ceiling."""
        return self.monitor.usage_bytes() > self.ceiling_bytes

    async def check(self) -> bool:
        """Pause once if memory usage is above the ceiling.

        Returns:
            True if the caller was paused.
        """
        used = self.monitor.usage_bytes()
        if used <= self.ceiling_bytes:
            return False

        logger.warning(
            f"[{self.name}] Too much data in memory (used {format_bytes(used)}, "
            f"ceiling {format_bytes(self.ceiling_bytes)}), "
            f"waiting for {self.pause_ms / 1000:.1f}s"
        )
        self.pauses += 1
        await self._sleep(self.pause_ms / 1000)
        return True

    async def pace(
        self, items: Union[Iterable[T], AsyncIterator[T]]
    ) -> AsyncIterator[T]:
        """Yield items in order, checking memory before each one."""
        if hasattr(items, "__aiter__"):
            async for item in items:  # type: ignore[union-attr]
                await self.check()
                yield item
        else:
            for item in items:  # type: ignore[union-attr]
                await self.check()
                yield item


async def with_watchdog(
    watchdog: Watchdog, step: Callable[[], Awaitable[T]]
) -> T:
    """Run one step of a production loop behind a memory check."""
    await watchdog.check()
    return await step()

"""Source stages that originate items from the filesystem.

Sources enumerate files during Init (cheap: only paths and sizes) and emit
them during Running using the size-routed policy: whole buffers for small
files, chunked streams for large ones. Every emission is paced by a memory
watchdog.
"""

import asyncio
import glob
import logging
import os
from typing import List, Optional

from fileflow.config import FileReaderConfig, GlobReadConfig, ReadFolderConfig
from fileflow.errors import SourceNotFoundError
from fileflow.stages.base import Stage
from fileflow.streaming.channel import ItemKind
from fileflow.streaming.reader import FileDescriptor, emit_file
from fileflow.streaming.watchdog import MemoryMonitor, Watchdog

logger = logging.getLogger(__name__)


def expand_glob(pattern: str) -> List[FileDescriptor]:
    """Expand a glob pattern into sorted descriptors of regular files."""
    paths = sorted(p for p in glob.glob(pattern, recursive=True) if os.path.isfile(p))
    return [FileDescriptor.from_path(p) for p in paths]


def walk_folder(folder: str) -> List[FileDescriptor]:
    """List every regular file under a folder, recursively, in sorted order.

    Raises:
        SourceNotFoundError: If the folder does not exist.
        NotADirectoryError: If the path is not a folder.
    """
    if not os.path.exists(folder):
        raise SourceNotFoundError(folder)
    if not os.path.isdir(folder):
        raise NotADirectoryError(f"Not a folder: {folder}")

    descriptors = []
    for root, dirs, files in os.walk(folder):
        dirs.sort()
        for file_name in sorted(files):
            descriptors.append(FileDescriptor.from_path(os.path.join(root, file_name)))
    return descriptors


class _FileSource(Stage):
    """Shared produce loop for sources that emit enumerated files."""

    def __init__(
        self,
        config=None,
        *,
        watchdog: Optional[Watchdog] = None,
        monitor: Optional[MemoryMonitor] = None,
        **kwargs,
    ):
        super().__init__(config, **kwargs)
        self.descriptors: List[FileDescriptor] = []
        self.watchdog = watchdog
        self._monitor = monitor

    def _make_watchdog(self) -> Watchdog:
        return Watchdog(
            ceiling_bytes=self.config.ceiling_bytes,
            pause_ms=self.config.pause_ms,
            monitor=self._monitor,
            name=self.name,
        )

    async def init(self) -> None:
        await super().init()
        if self.watchdog is None:
            self.watchdog = self._make_watchdog()

    async def produce(self) -> None:
        async for descriptor in self.watchdog.pace(self.descriptors):
            logger.info(f"[{self.name}] processing '{descriptor.path}'")
            kind = await emit_file(
                self.output,
                descriptor,
                chunk_size=self.config.chunk_size,
                threshold_bytes=self.config.threshold_bytes,
            )
            self._update_stats(items_out=1)
            logger.debug(f"[{self.name}] emitted '{descriptor.path}' as {kind.value}")

            if self.config.wait_ms:
                await asyncio.sleep(self.config.wait_ms / 1000)


class GlobRead(_FileSource):
    """Emit every file matching a glob pattern.

    Example:
        >>> source = GlobRead(glob_pattern="data/**/*.json", outputs=[channel])
        >>> await source.run()
    """

    config_class = GlobReadConfig

    async def init(self) -> None:
        await super().init()
        if self.config.binary:
            logger.warning(
                f"[{self.name}] 'binary' has no effect on GlobRead; "
                f"small files are emitted as buffers"
            )
        self.descriptors = await asyncio.to_thread(expand_glob, self.config.glob_pattern)
        logger.info(
            f"[{self.name}] {len(self.descriptors)} file(s) match "
            f"'{self.config.glob_pattern}'"
        )


class ReadFolder(_FileSource):
    """Emit every file under a folder, recursively."""

    config_class = ReadFolderConfig

    async def init(self) -> None:
        await super().init()
        self.folder = os.path.normpath(self.config.folder)
        self.descriptors = await asyncio.to_thread(walk_folder, self.folder)
        logger.info(f"[{self.name}] Reading these files: {[d.path for d in self.descriptors]}")


class FileReader(Stage):
    """Read the files named by upstream text items.

    Each incoming TEXT item is a path relative to ``folder_path``. Small
    files are emitted as TEXT (or BUFFER when ``binary``), large ones as a
    STREAM. A missing file is fatal.
    """

    config_class = FileReaderConfig
    accepts = frozenset({ItemKind.TEXT})

    async def init(self) -> None:
        await super().init()
        self.folder = os.path.abspath(self.config.folder_path)
        if not os.path.isdir(self.folder):
            raise SourceNotFoundError(self.folder)

    async def transform(self) -> None:
        async for item in self.consume():
            file_path = os.path.join(self.folder, item.payload.rstrip("\r\n"))
            logger.info(f"[{self.name}] Reading file at '{file_path}'")
            descriptor = await asyncio.to_thread(FileDescriptor.from_path, file_path)
            await emit_file(
                self.output,
                descriptor,
                chunk_size=self.config.chunk_size,
                threshold_bytes=self.config.threshold_bytes,
                as_text=not self.config.binary,
                encoding=self.config.encoding,
            )
            self._update_stats(items_out=1)

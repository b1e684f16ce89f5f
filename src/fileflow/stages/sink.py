"""Sink stage that persists a channel to a file.

Items are appended to the destination as they arrive: BUFFER and TEXT items
in one write, STREAM items chunk by chunk so a large stream is never held in
memory. In text mode streamed bytes pass through an incremental decoder, so
a multi-byte character split across two chunks is still written correctly.
"""

import asyncio
import codecs
import logging
import os
from typing import Callable, Optional

from fileflow.config import WriteFileConfig
from fileflow.errors import SourceNotFoundError
from fileflow.stages.base import Stage
from fileflow.streaming.channel import Item, ItemKind

logger = logging.getLogger(__name__)


class WriteFile(Stage):
    """Append every incoming item to a file.

    Example:
        >>> sink = WriteFile(path="out/result.txt", inputs=[channel])
        >>> await sink.run()
    """

    config_class = WriteFileConfig

    def __init__(
        self,
        config: Optional[WriteFileConfig] = None,
        *,
        progress: Optional[Callable[[int], None]] = None,
        **kwargs,
    ):
        """Initialize the sink.

        Args:
            config: Sink configuration.
            progress: Called with the byte count of every write.
            **kwargs: Passed to :class:`Stage`.
        """
        super().__init__(config, **kwargs)
        self.progress = progress
        self._stats["bytes_written"] = 0

    async def init(self) -> None:
        await super().init()
        self.path = os.path.abspath(self.config.path)
        parent = os.path.dirname(self.path)

        if self.config.create_parents:
            os.makedirs(parent, exist_ok=True)
        elif not os.path.isdir(parent):
            raise SourceNotFoundError(parent)

        if self.config.overwrite:
            await asyncio.to_thread(self._truncate)

    def _truncate(self) -> None:
        with open(self.path, "wb"):
            pass

    def _open(self):
        if self.config.binary:
            return open(self.path, "ab")
        return open(self.path, "a", encoding=self.config.encoding, newline="")

    async def transform(self) -> None:
        async for item in self.consume():
            logger.debug(f"[{self.name}] Writing {item.describe()} to '{self.path}'")
            if item.kind is ItemKind.STREAM:
                await self._append_stream(item)
            else:
                await asyncio.to_thread(self._append_whole, item)

    def _append_whole(self, item: Item) -> None:
        if item.kind is ItemKind.TEXT:
            data = item.payload.encode(self.config.encoding)
        else:
            data = item.payload

        with self._open() as f:
            f.write(data if self.config.binary else data.decode(self.config.encoding))
        self._record(len(data))

    async def _append_stream(self, item: Item) -> None:
        decoder = None
        if not self.config.binary:
            decoder = codecs.getincrementaldecoder(self.config.encoding)()

        f = await asyncio.to_thread(self._open)
        try:
            async for chunk in item.payload:
                data = decoder.decode(chunk) if decoder else chunk
                if data:
                    await asyncio.to_thread(f.write, data)
                self._record(len(chunk))
            if decoder:
                tail = decoder.decode(b"", final=True)
                if tail:
                    await asyncio.to_thread(f.write, tail)
        finally:
            await asyncio.to_thread(f.close)

    def _record(self, num_bytes: int) -> None:
        self._stats["bytes_written"] += num_bytes
        if self.progress is not None:
            self.progress(num_bytes)

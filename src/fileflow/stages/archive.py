"""Decompression stages.

``UnzipFile`` expands one container archive into one BUFFER per entry.
``GunzipFile`` turns one compressed input into one decompressed STREAM.

A corrupt input is never fatal. It is logged at ERROR level with its index
and name, dropped, and the stage moves on to the next item.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from fileflow.codecs import decompress_chunks, get_container
from fileflow.config import GunzipConfig, UnzipConfig
from fileflow.errors import CorruptInputError
from fileflow.stages.base import Stage
from fileflow.streaming.channel import Item, ItemKind, iter_buffer, read_all

logger = logging.getLogger(__name__)


def _label(index: int, item: Item) -> str:
    return f"#{index} '{item.name}'" if item.name else f"#{index}"


class UnzipFile(Stage):
    """Extract every entry of each incoming archive.

    Streamed input is first read into a buffer, since archive formats need
    random access. Entries are emitted in archive order.
    """

    config_class = UnzipConfig
    accepts = frozenset({ItemKind.BUFFER, ItemKind.STREAM})

    async def init(self) -> None:
        await super().init()
        self.handler = get_container(self.config.format)

    async def transform(self) -> None:
        index = 0
        async for item in self.consume():
            index += 1
            label = _label(index, item)
            data = item.payload if item.kind is ItemKind.BUFFER else await read_all(item.payload)

            entries = self.handler.iter_entries(data, label)
            emitted = 0
            try:
                while True:
                    entry = await asyncio.to_thread(next, entries, None)
                    if entry is None:
                        break
                    logger.info(f"[{self.name}] Unzipping received file '{entry.name}'")
                    await self.emit(Item(ItemKind.BUFFER, entry.payload, entry.name))
                    emitted += 1
            except CorruptInputError as e:
                logger.error(
                    f"[{self.name}] Ignoring invalid archive {label} "
                    f"after {emitted} entr{'y' if emitted == 1 else 'ies'}: {e.reason}"
                )
                logger.debug(f"[{self.name}] Archive error detail", exc_info=True)
                self._update_stats(items_dropped=1, errors=1)


class GunzipFile(Stage):
    """Decompress each incoming item into one output stream.

    The decoder is primed before anything is emitted: input is pulled until
    the first decompressed bytes appear or the input ends, so a bad header
    or an empty/truncated input produces no item at all. If corruption shows
    up only after the stream was emitted, the stream ends early, the error
    is logged and the item counts as dropped.
    """

    config_class = GunzipConfig
    accepts = frozenset({ItemKind.BUFFER, ItemKind.STREAM})

    async def transform(self) -> None:
        index = 0
        async for item in self.consume():
            index += 1
            label = _label(index, item)

            if item.kind is ItemKind.BUFFER:
                chunks = iter_buffer(item.payload, self.config.chunk_size)
            else:
                chunks = item.payload

            decompressed = decompress_chunks(chunks, self.config.codec, label)
            try:
                first: Optional[bytes] = await decompressed.__anext__()
            except StopAsyncIteration:
                first = None
            except CorruptInputError as e:
                logger.error(f"[{self.name}] Ignoring invalid {self.config.codec} input {label}: {e.reason}")
                logger.debug(f"[{self.name}] Decompression error detail", exc_info=True)
                self._update_stats(items_dropped=1, errors=1)
                continue

            logger.info(f"[{self.name}] Unzipping received file {label}")
            await self.emit(
                Item(ItemKind.STREAM, self._resume(first, decompressed, label), item.name)
            )

    async def _resume(
        self, first: Optional[bytes], rest: AsyncIterator[bytes], label: str
    ) -> AsyncIterator[bytes]:
        if first is None:
            return
        yield first
        try:
            async for chunk in rest:
                yield chunk
        except CorruptInputError as e:
            logger.error(f"[{self.name}] Stream {label} truncated by corrupt data: {e.reason}")
            self._update_stats(items_dropped=1, errors=1)

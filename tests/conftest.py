"""Shared fixtures for fileflow tests."""

import asyncio
import gzip
import io
import zipfile

import pytest

from fileflow.streaming.channel import ItemKind, read_all


async def drive_stage(stage, items=()):
    """Run one stage, feeding its input and draining its output.

    Stream payloads are materialized as they arrive. Returns a list of
    ``(kind, name, payload)`` tuples.
    """
    collected = []

    async def feed():
        for item in items:
            await stage.input.emit(item)
        await stage.input.close()

    async def drain():
        async for item in stage.output:
            payload = item.payload
            if item.kind is ItemKind.STREAM:
                payload = await read_all(payload)
            collected.append((item.kind, item.name, payload))

    coros = [stage.run()]
    if stage.inputs:
        coros.append(feed())
    if stage.outputs:
        coros.append(drain())
    await asyncio.gather(*coros)
    return collected


@pytest.fixture
def drive():
    """Synchronous wrapper around :func:`drive_stage`."""

    def _drive(stage, items=()):
        return asyncio.run(drive_stage(stage, items))

    return _drive


@pytest.fixture
def zip_bytes():
    """A zip archive holding a.txt and b.txt."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("a.txt", "contents of a")
        archive.writestr("b.txt", "contents of b")
    return buffer.getvalue()


@pytest.fixture
def gzip_bytes():
    """Gzip-compressed 'hello world'."""
    return gzip.compress(b"hello world")

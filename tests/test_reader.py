"""Tests for chunked reading and size-routed emission."""

import asyncio

import pytest

from fileflow.errors import SourceNotFoundError
from fileflow.streaming.channel import Channel, ItemKind, read_all
from fileflow.streaming.reader import (
    FileDescriptor,
    choose_transport,
    emit_file,
    iter_chunks,
    open_chunked,
    read_file,
)


def run(coro):
    return asyncio.run(coro)


class TestChooseTransport:
    """Test the size routing decision."""

    def test_small_file_is_buffered(self):
        """Test sizes below the threshold."""
        assert choose_transport(10, threshold_bytes=100) is ItemKind.BUFFER

    def test_exact_threshold_is_buffered(self):
        """Test that a file of exactly the threshold size is buffered."""
        assert choose_transport(100, threshold_bytes=100) is ItemKind.BUFFER

    def test_one_byte_over_is_streamed(self):
        """Test the first size above the threshold."""
        assert choose_transport(101, threshold_bytes=100) is ItemKind.STREAM

    def test_empty_file_is_buffered(self):
        """Test zero-byte files."""
        assert choose_transport(0, threshold_bytes=0) is ItemKind.BUFFER


class TestChunkedReading:
    """Test lazy chunk reading."""

    def test_iter_chunks_round_trip(self, tmp_path):
        """Test that concatenated chunks equal the file contents."""
        data = bytes(range(256)) * 10
        path = tmp_path / "data.bin"
        path.write_bytes(data)

        chunks = list(iter_chunks(path, chunk_size=100))

        assert b"".join(chunks) == data
        assert all(len(chunk) <= 100 for chunk in chunks)
        assert len(chunks) == 26

    def test_open_chunked_round_trip(self, tmp_path):
        """Test the async chunk sequence."""
        data = b"x" * 1000 + b"y" * 24
        path = tmp_path / "data.bin"
        path.write_bytes(data)

        async def scenario():
            chunks = [chunk async for chunk in open_chunked(path, chunk_size=256)]
            return chunks

        chunks = run(scenario())
        assert b"".join(chunks) == data
        assert [len(chunk) for chunk in chunks] == [256, 256, 256, 256]

    def test_open_chunked_missing_file_fails_eagerly(self, tmp_path):
        """Test that a missing path fails before the first pull."""
        with pytest.raises(SourceNotFoundError):
            open_chunked(tmp_path / "missing.bin")

    def test_chunk_size_validation(self, tmp_path):
        """Test chunk size must be positive."""
        path = tmp_path / "f"
        path.write_bytes(b"a")
        with pytest.raises(ValueError):
            list(iter_chunks(path, chunk_size=0))

    def test_read_file(self, tmp_path):
        """Test whole-file reads."""
        path = tmp_path / "small.txt"
        path.write_bytes(b"hello")
        assert run(read_file(path)) == b"hello"


class TestFileDescriptor:
    """Test file descriptors."""

    def test_from_path_records_size(self, tmp_path):
        """Test that the descriptor carries the file's own size."""
        path = tmp_path / "f.txt"
        path.write_bytes(b"12345")

        descriptor = FileDescriptor.from_path(path)

        assert descriptor.size_bytes == 5
        assert descriptor.path == str(path)

    def test_missing_path(self, tmp_path):
        """Test descriptor of a missing file."""
        with pytest.raises(SourceNotFoundError):
            FileDescriptor.from_path(tmp_path / "nope")


class TestEmitFile:
    """Test size-routed emission onto a channel."""

    def _emit(self, path, threshold, as_text=False):
        async def scenario():
            channel = Channel(capacity=2)
            kind = await emit_file(
                channel,
                FileDescriptor.from_path(path),
                chunk_size=4,
                threshold_bytes=threshold,
                as_text=as_text,
            )
            await channel.close()
            items = [item async for item in channel]
            payload = items[0].payload
            if items[0].kind is ItemKind.STREAM:
                payload = await read_all(payload)
            return kind, items[0], payload

        return run(scenario())

    def test_small_file_emitted_as_buffer(self, tmp_path):
        """Test files at the threshold travel whole."""
        path = tmp_path / "small.bin"
        path.write_bytes(b"0123456789")

        kind, item, payload = self._emit(path, threshold=10)

        assert kind is ItemKind.BUFFER
        assert item.kind is ItemKind.BUFFER
        assert payload == b"0123456789"
        assert item.name == str(path)

    def test_large_file_emitted_as_stream(self, tmp_path):
        """Test files above the threshold are streamed."""
        path = tmp_path / "large.bin"
        path.write_bytes(b"0123456789a")

        kind, item, payload = self._emit(path, threshold=10)

        assert kind is ItemKind.STREAM
        assert payload == b"0123456789a"

    def test_small_file_emitted_as_text(self, tmp_path):
        """Test text emission for small files."""
        path = tmp_path / "small.txt"
        path.write_text("héllo", encoding="utf-8")

        kind, item, payload = self._emit(path, threshold=100, as_text=True)

        assert kind is ItemKind.TEXT
        assert payload == "héllo"

"""Archive and compression codec support.

Two kinds of capability are registered here:

    - Container handlers list the named entries of a multi-entry archive
      (zip, tar) held in a buffer.
    - Stream codecs decompress one continuous byte stream (gzip, zlib,
      raw deflate, bz2, xz) incrementally, chunk by chunk.

Both registries can be extended at runtime.

Example:
    >>> handler = get_container("zip")
    >>> for entry in handler.iter_entries(data):
    ...     print(entry.name, len(entry.payload))
    >>>
    >>> async for chunk in decompress_chunks(chunks, "gzip", label="logs.gz"):
    ...     sink.write(chunk)
"""

import bz2
import io
import logging
import lzma
import tarfile
import zipfile
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterator, List

from fileflow.errors import CorruptInputError
from fileflow.streaming.channel import Chunks, as_async_chunks

logger = logging.getLogger(__name__)

# Errors raised by the stdlib archive and codec modules on malformed input
DECOMPRESSION_ERRORS = (
    zlib.error,
    lzma.LZMAError,
    EOFError,
    OSError,
    ValueError,
)

ARCHIVE_ERRORS = DECOMPRESSION_ERRORS + (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    tarfile.TarError,
    KeyError,
    NotImplementedError,
    RuntimeError,
)


@dataclass(frozen=True)
class ArchiveEntry:
    """One named entry extracted from a container archive.

    Attributes:
        name: Entry path inside the archive.
        payload: Entry bytes (decompressed).
    """

    name: str
    payload: bytes


class ContainerHandler(ABC):
    """Abstract base class for container-archive handlers."""

    name: str = ""

    @abstractmethod
    def sniff(self, data: bytes) -> bool:
        """Return True if the buffer looks like this archive format."""
        pass

    @abstractmethod
    def _entries(self, data: bytes) -> Iterator[ArchiveEntry]:
        pass

    def iter_entries(self, data: bytes, label: str = "archive") -> Iterator[ArchiveEntry]:
        """Yield the archive's file entries in archive order.

        Entries are read one at a time; directories are skipped.

        Raises:
            CorruptInputError: If the archive cannot be parsed.
        """
        try:
            yield from self._entries(data)
        except CorruptInputError:
            raise
        except ARCHIVE_ERRORS as e:
            raise CorruptInputError(label, f"{type(e).__name__}: {e}") from e


class ZipHandler(ContainerHandler):
    """Zip archives, via :mod:`zipfile`."""

    name = "zip"

    def sniff(self, data: bytes) -> bool:
        return zipfile.is_zipfile(io.BytesIO(data))

    def _entries(self, data: bytes) -> Iterator[ArchiveEntry]:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                logger.debug(f"Reading zip entry '{info.filename}' ({info.file_size} bytes)")
                yield ArchiveEntry(info.filename, archive.read(info))


class TarHandler(ContainerHandler):
    """Tar archives, plain or gzip/bz2/xz compressed, via :mod:`tarfile`."""

    name = "tar"

    def sniff(self, data: bytes) -> bool:
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:*"):
                return True
        except ARCHIVE_ERRORS:
            return False

    def _entries(self, data: bytes) -> Iterator[ArchiveEntry]:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
            for member in archive:
                if not member.isfile():
                    continue
                logger.debug(f"Reading tar entry '{member.name}' ({member.size} bytes)")
                extracted = archive.extractfile(member)
                if extracted is None:
                    continue
                with extracted:
                    yield ArchiveEntry(member.name, extracted.read())


class AutoHandler(ContainerHandler):
    """Detects zip or tar by content."""

    name = "auto"

    def __init__(self):
        self._candidates = [ZipHandler(), TarHandler()]

    def sniff(self, data: bytes) -> bool:
        return any(handler.sniff(data) for handler in self._candidates)

    def _entries(self, data: bytes) -> Iterator[ArchiveEntry]:
        for handler in self._candidates:
            if handler.sniff(data):
                yield from handler._entries(data)
                return
        raise ValueError("not a zip or tar archive")


class StreamDecoder:
    """Incremental decoder over a family of stdlib decompressor objects.

    Wraps objects exposing ``decompress()``, ``eof`` and ``unused_data``.
    With ``multi_member`` set, concatenated streams (as produced by
    ``cat a.gz b.gz``) are decoded back to back.
    """

    def __init__(self, factory: Callable[[], Any], multi_member: bool = False):
        self._factory = factory
        self._multi_member = multi_member
        self._decompressor = factory()

    @property
    def eof(self) -> bool:
        return self._decompressor.eof

    def decompress(self, data: bytes) -> bytes:
        out = []
        while data:
            if self._decompressor.eof:
                if not self._multi_member:
                    raise ValueError("trailing data after end of compressed stream")
                self._decompressor = self._factory()
            out.append(self._decompressor.decompress(data))
            data = self._decompressor.unused_data if self._decompressor.eof else b""
        return b"".join(out)


class Registry:
    """Name-to-factory registry.

    Example:
        >>> registry = Registry("codec")
        >>> registry.register("gzip", make_gzip_decoder)
        >>> decoder = registry.get("gzip")()
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._entries: Dict[str, Callable[[], Any]] = {}

    def register(self, name: str, factory: Callable[[], Any], override: bool = False) -> None:
        """Register a factory.

        Raises:
            ValueError: If the name is already registered and override=False.
        """
        key = name.lower()
        if key in self._entries and not override:
            raise ValueError(f"{self.kind.capitalize()} '{name}' is already registered")
        self._entries[key] = factory

    def get(self, name: str) -> Callable[[], Any]:
        """Look up a factory by name.

        Raises:
            ValueError: If no factory is registered under the name.
        """
        try:
            return self._entries[name.lower()]
        except KeyError:
            raise ValueError(
                f"Unknown {self.kind} '{name}'. Supported: {self.names()}"
            ) from None

    def names(self) -> List[str]:
        return sorted(self._entries)


_containers = Registry("archive format")
_containers.register("zip", ZipHandler)
_containers.register("tar", TarHandler)
_containers.register("auto", AutoHandler)

_codecs = Registry("codec")
_codecs.register(
    "gzip", lambda: StreamDecoder(lambda: zlib.decompressobj(16 + zlib.MAX_WBITS), True)
)
_codecs.register("zlib", lambda: StreamDecoder(lambda: zlib.decompressobj(zlib.MAX_WBITS)))
_codecs.register("deflate", lambda: StreamDecoder(lambda: zlib.decompressobj(-zlib.MAX_WBITS)))
_codecs.register("bz2", lambda: StreamDecoder(bz2.BZ2Decompressor, True))
_codecs.register("xz", lambda: StreamDecoder(lzma.LZMADecompressor, True))


def register_container(name: str, factory: Callable[[], ContainerHandler], override: bool = False) -> None:
    """Register a container handler with the global registry."""
    _containers.register(name, factory, override)


def get_container(name: str) -> ContainerHandler:
    """Create a container handler by format name."""
    return _containers.get(name)()


def container_names() -> List[str]:
    return _containers.names()


def register_codec(name: str, factory: Callable[[], StreamDecoder], override: bool = False) -> None:
    """Register a stream codec with the global registry."""
    _codecs.register(name, factory, override)


def get_codec(name: str) -> StreamDecoder:
    """Create a fresh decoder for a codec name."""
    return _codecs.get(name)()


def codec_names() -> List[str]:
    return _codecs.names()


async def decompress_chunks(
    chunks: Chunks, codec: str, label: str = "stream"
) -> AsyncIterator[bytes]:
    """Decompress a chunk sequence incrementally.

    Only non-empty output chunks are yielded. Nothing beyond one input chunk
    and its output is held at a time.

    Args:
        chunks: Compressed input chunks.
        codec: Registered codec name.
        label: Item label for error messages.

    Raises:
        CorruptInputError: If the data is malformed or ends before the
            codec's end-of-stream marker.
    """
    decoder = get_codec(codec)

    async for chunk in as_async_chunks(chunks):
        try:
            out = decoder.decompress(chunk)
        except DECOMPRESSION_ERRORS as e:
            raise CorruptInputError(label, f"{type(e).__name__}: {e}") from e
        if out:
            yield out

    if not decoder.eof:
        raise CorruptInputError(label, "compressed stream ended before the end-of-stream marker")

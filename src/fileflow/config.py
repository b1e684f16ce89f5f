"""Configuration dataclasses for fileflow stages.

Every stage type has its own configuration dataclass. ``validate()`` returns
a list of error messages (empty when valid); stages call it during Init and
refuse to start on any error.
"""

import codecs
import re
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

from fileflow.errors import ConfigurationError

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB

DEFAULT_CHUNK_SIZE = 1024
DEFAULT_THRESHOLD_BYTES = 5 * MIB
DEFAULT_MEMORY_CEILING_BYTES = 3 * GIB
DEFAULT_PAUSE_MS = 5000
DEFAULT_WAIT_MS = 0
DEFAULT_ENCODING = "utf-8"


@dataclass
class StreamDefaults:
    """Shared streaming defaults.

    Attributes:
        chunk_size: Bytes per chunk for streamed files.
        threshold_bytes: Largest file size emitted as a single buffer.
        memory_ceiling_bytes: Memory usage above which producers pause.
        pause_ms: How long a producer pauses when over the ceiling.
        wait_ms: Delay between emitted items.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    threshold_bytes: int = DEFAULT_THRESHOLD_BYTES
    memory_ceiling_bytes: int = DEFAULT_MEMORY_CEILING_BYTES
    pause_ms: int = DEFAULT_PAUSE_MS
    wait_ms: int = DEFAULT_WAIT_MS


def _check_positive(errors: List[str], name: str, value: Any) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        errors.append(f"'{name}' must be a positive integer, got {value!r}")


def _check_non_negative(errors: List[str], name: str, value: Any) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
        errors.append(f"'{name}' must be a non-negative number, got {value!r}")


def _check_bool(errors: List[str], name: str, value: Any) -> None:
    if not isinstance(value, bool):
        errors.append(f"'{name}' must be true or false, got {value!r}")


def _check_encoding(errors: List[str], value: Any) -> None:
    try:
        codecs.lookup(value)
    except (LookupError, TypeError):
        errors.append(f"Unknown encoding: {value!r}")


@dataclass
class StageConfig:
    """Base configuration shared by all stages."""

    def validate(self) -> List[str]:
        """Validate the configuration.

        Returns:
            List of validation error messages. Empty list if valid.
        """
        return []

    def ensure_valid(self) -> None:
        """Raise ConfigurationError if ``validate()`` reports any error."""
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid {self.__class__.__name__}", errors
            )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "StageConfig":
        """Build a configuration from a plain dictionary.

        Raises:
            ConfigurationError: If the dictionary has unknown keys.
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown option(s) for {cls.__name__}",
                [f"'{key}' is not a valid option" for key in unknown],
            )
        return cls(**data)


@dataclass
class _ChunkedConfig(StageConfig):
    chunk_size: int = DEFAULT_CHUNK_SIZE
    threshold_bytes: int = DEFAULT_THRESHOLD_BYTES

    def validate(self) -> List[str]:
        errors = super().validate()
        _check_positive(errors, "chunk_size", self.chunk_size)
        _check_non_negative(errors, "threshold_bytes", self.threshold_bytes)
        return errors


@dataclass
class GlobReadConfig(_ChunkedConfig):
    """Configuration for the glob source.

    Attributes:
        glob_pattern: Pattern to expand (``**`` is recursive).
        wait_ms: Delay between emitted files.
        binary: Accepted for compatibility and ignored: small files are
            always emitted as buffers. Setting it logs a warning.
        memory_ceiling_bytes: Watchdog ceiling.
        pause_ms: Watchdog pause.
        close_on_end: Close the output once every file is emitted.
    """

    glob_pattern: str = ""
    wait_ms: float = DEFAULT_WAIT_MS
    binary: bool = False
    memory_ceiling_bytes: int = DEFAULT_MEMORY_CEILING_BYTES
    pause_ms: float = DEFAULT_PAUSE_MS
    close_on_end: bool = True

    def validate(self) -> List[str]:
        errors = super().validate()
        if not isinstance(self.glob_pattern, str) or not self.glob_pattern:
            errors.append("'glob_pattern' is required")
        _check_non_negative(errors, "wait_ms", self.wait_ms)
        _check_bool(errors, "binary", self.binary)
        _check_positive(errors, "memory_ceiling_bytes", self.memory_ceiling_bytes)
        _check_non_negative(errors, "pause_ms", self.pause_ms)
        _check_bool(errors, "close_on_end", self.close_on_end)
        return errors

    @property
    def ceiling_bytes(self) -> int:
        return self.memory_ceiling_bytes


@dataclass
class ReadFolderConfig(_ChunkedConfig):
    """Configuration for the folder source.

    Attributes:
        folder: Folder to walk recursively.
        max_memory_gb: Watchdog ceiling in GiB.
        memory_ceiling_bytes: Watchdog ceiling in bytes; wins over
            ``max_memory_gb`` when set.
        pause_ms: Watchdog pause.
        wait_ms: Delay between emitted files.
        close_on_end: Close the output once every file is emitted.
    """

    folder: str = ""
    max_memory_gb: float = DEFAULT_MEMORY_CEILING_BYTES / GIB
    memory_ceiling_bytes: Optional[int] = None
    pause_ms: float = DEFAULT_PAUSE_MS
    wait_ms: float = DEFAULT_WAIT_MS
    close_on_end: bool = True

    def validate(self) -> List[str]:
        errors = super().validate()
        if not isinstance(self.folder, str) or not self.folder:
            errors.append("'folder' is required")
        if (
            not isinstance(self.max_memory_gb, (int, float))
            or isinstance(self.max_memory_gb, bool)
            or self.max_memory_gb <= 0
        ):
            errors.append(
                f"'max_memory_gb' must be a positive number, got {self.max_memory_gb!r}"
            )
        _check_non_negative(errors, "pause_ms", self.pause_ms)
        _check_non_negative(errors, "wait_ms", self.wait_ms)
        if self.memory_ceiling_bytes is not None:
            _check_positive(errors, "memory_ceiling_bytes", self.memory_ceiling_bytes)
        _check_bool(errors, "close_on_end", self.close_on_end)
        return errors

    @property
    def ceiling_bytes(self) -> int:
        if self.memory_ceiling_bytes is not None:
            return self.memory_ceiling_bytes
        return int(self.max_memory_gb * GIB)


@dataclass
class FileReaderConfig(_ChunkedConfig):
    """Configuration for the stage that reads files named by upstream text.

    Attributes:
        folder_path: Folder the incoming names are resolved against.
        binary: Emit small files as buffers instead of text.
        encoding: Encoding for text items.
    """

    folder_path: str = "."
    binary: bool = False
    encoding: str = DEFAULT_ENCODING

    def validate(self) -> List[str]:
        errors = super().validate()
        if not isinstance(self.folder_path, str) or not self.folder_path:
            errors.append("'folder_path' is required")
        _check_bool(errors, "binary", self.binary)
        _check_encoding(errors, self.encoding)
        return errors


@dataclass
class SubstituteConfig(StageConfig):
    """Configuration for pattern substitution.

    Attributes:
        source: Literal token or regular expression to replace.
        replace: Replacement text (a ``re`` template when ``regexp`` is set).
        regexp: Treat ``source`` as a regular expression.
        encoding: Encoding used to decode buffer input.
    """

    source: str = ""
    replace: str = ""
    regexp: bool = False
    encoding: str = DEFAULT_ENCODING

    def validate(self) -> List[str]:
        errors = super().validate()
        if not isinstance(self.source, str) or not self.source:
            errors.append("'source' is required")
        if not isinstance(self.replace, str):
            errors.append(f"'replace' must be a string, got {self.replace!r}")
        _check_bool(errors, "regexp", self.regexp)
        if self.regexp is True and isinstance(self.source, str) and self.source:
            try:
                re.compile(self.source)
            except re.error as e:
                errors.append(f"'source' is not a valid regular expression: {e}")
        _check_encoding(errors, self.encoding)
        return errors


@dataclass
class EnvsubConfig(StageConfig):
    """Configuration for environment-variable interpolation.

    Attributes:
        encoding: Encoding used to decode buffer input.
    """

    encoding: str = DEFAULT_ENCODING

    def validate(self) -> List[str]:
        errors = super().validate()
        _check_encoding(errors, self.encoding)
        return errors


@dataclass
class UnzipConfig(StageConfig):
    """Configuration for container-archive extraction.

    Attributes:
        format: Container format name (``zip``, ``tar`` or ``auto``).
    """

    format: str = "zip"

    def validate(self) -> List[str]:
        from fileflow.codecs import container_names

        errors = super().validate()
        if self.format not in container_names():
            errors.append(
                f"Unknown archive format '{self.format}'. "
                f"Must be one of: {container_names()}"
            )
        return errors


@dataclass
class GunzipConfig(StageConfig):
    """Configuration for single-stream decompression.

    Attributes:
        codec: Compression codec name.
        chunk_size: Chunk size when a buffer input is promoted to a stream.
    """

    codec: str = "gzip"
    chunk_size: int = 64 * KIB

    def validate(self) -> List[str]:
        from fileflow.codecs import codec_names

        errors = super().validate()
        if self.codec not in codec_names():
            errors.append(
                f"Unknown codec '{self.codec}'. Must be one of: {codec_names()}"
            )
        _check_positive(errors, "chunk_size", self.chunk_size)
        return errors


@dataclass
class WriteFileConfig(StageConfig):
    """Configuration for the file sink.

    Attributes:
        path: Destination file; items are appended to it.
        binary: Write bytes instead of text.
        encoding: Encoding for text mode.
        overwrite: Truncate the destination during Init.
        create_parents: Create missing parent directories during Init.
    """

    path: str = ""
    binary: bool = False
    encoding: str = DEFAULT_ENCODING
    overwrite: bool = False
    create_parents: bool = True

    def validate(self) -> List[str]:
        errors = super().validate()
        if not isinstance(self.path, str) or not self.path:
            errors.append("'path' is required")
        _check_bool(errors, "binary", self.binary)
        _check_bool(errors, "overwrite", self.overwrite)
        _check_bool(errors, "create_parents", self.create_parents)
        _check_encoding(errors, self.encoding)
        return errors


CONFIG_TYPES: Dict[str, type] = {
    "GlobRead": GlobReadConfig,
    "ReadFolder": ReadFolderConfig,
    "FileReader": FileReaderConfig,
    "Substitute": SubstituteConfig,
    "Envsub": EnvsubConfig,
    "UnzipFile": UnzipConfig,
    "GunzipFile": GunzipConfig,
    "WriteFile": WriteFileConfig,
}

__all__ = [
    "StreamDefaults",
    "StageConfig",
    "GlobReadConfig",
    "ReadFolderConfig",
    "FileReaderConfig",
    "SubstituteConfig",
    "EnvsubConfig",
    "UnzipConfig",
    "GunzipConfig",
    "WriteFileConfig",
    "CONFIG_TYPES",
]

"""Tests for stage configuration dataclasses."""

import pytest

from fileflow.config import (
    CONFIG_TYPES,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MEMORY_CEILING_BYTES,
    DEFAULT_PAUSE_MS,
    DEFAULT_THRESHOLD_BYTES,
    GIB,
    EnvsubConfig,
    FileReaderConfig,
    GlobReadConfig,
    GunzipConfig,
    ReadFolderConfig,
    StageConfig,
    StreamDefaults,
    SubstituteConfig,
    UnzipConfig,
    WriteFileConfig,
)
from fileflow.errors import ConfigurationError


class TestDefaults:
    """Test default values."""

    def test_stream_defaults(self):
        """Test the shared streaming defaults."""
        defaults = StreamDefaults()

        assert defaults.chunk_size == DEFAULT_CHUNK_SIZE == 1024
        assert defaults.threshold_bytes == DEFAULT_THRESHOLD_BYTES == 5 * 1024 * 1024
        assert defaults.memory_ceiling_bytes == DEFAULT_MEMORY_CEILING_BYTES == 3 * GIB
        assert defaults.pause_ms == DEFAULT_PAUSE_MS == 5000
        assert defaults.wait_ms == 0

    def test_glob_read_defaults(self):
        """Test GlobReadConfig defaults."""
        config = GlobReadConfig(glob_pattern="*")

        assert config.close_on_end is True
        assert config.chunk_size == 1024
        assert config.validate() == []

    def test_read_folder_ceiling(self):
        """Test the gigabyte ceiling conversion."""
        assert ReadFolderConfig(folder="x", max_memory_gb=2).ceiling_bytes == 2 * GIB
        assert ReadFolderConfig(folder="x").ceiling_bytes == 3 * GIB
        assert ReadFolderConfig(folder="x", max_memory_gb=2, memory_ceiling_bytes=1024).ceiling_bytes == 1024


class TestValidation:
    """Test validate() error reporting."""

    def test_valid_configs(self):
        """Test that sensible configs have no errors."""
        configs = [
            StageConfig(),
            GlobReadConfig(glob_pattern="*.txt"),
            ReadFolderConfig(folder="data"),
            FileReaderConfig(),
            SubstituteConfig(source="a"),
            EnvsubConfig(),
            UnzipConfig(format="auto"),
            GunzipConfig(codec="xz"),
            WriteFileConfig(path="out.txt"),
        ]
        for config in configs:
            assert config.validate() == [], config

    def test_collects_every_error(self):
        """Test that all problems are reported at once."""
        errors = GlobReadConfig(chunk_size=0, wait_ms=-1, pause_ms="soon").validate()

        assert len(errors) == 4
        assert any("glob_pattern" in e for e in errors)
        assert any("chunk_size" in e for e in errors)

    def test_bool_fields_are_strict(self):
        """Test that truthy strings are not booleans."""
        assert GlobReadConfig(glob_pattern="*", close_on_end="yes").validate()
        assert ReadFolderConfig(folder="x", close_on_end=0).validate()
        assert WriteFileConfig(path="x", overwrite=1).validate()

    def test_close_on_end_only_on_sources(self):
        """Test that transform and sink configs have no close_on_end."""
        for config_class in (SubstituteConfig, EnvsubConfig, UnzipConfig, GunzipConfig, WriteFileConfig):
            with pytest.raises(ConfigurationError):
                config_class.from_dict({"close_on_end": False})

    def test_invalid_byte_ceiling(self):
        """Test ReadFolder's byte ceiling validation."""
        errors = ReadFolderConfig(folder="x", memory_ceiling_bytes=0).validate()
        assert any("memory_ceiling_bytes" in e for e in errors)

    def test_unknown_encoding(self):
        """Test encoding lookup."""
        errors = EnvsubConfig(encoding="klingon-8").validate()
        assert errors == ["Unknown encoding: 'klingon-8'"]

    def test_invalid_regexp(self):
        """Test regex compilation check."""
        errors = SubstituteConfig(source="[", regexp=True).validate()
        assert any("regular expression" in e for e in errors)

    def test_literal_source_not_compiled(self):
        """Test that literal tokens may contain metacharacters."""
        assert SubstituteConfig(source="[").validate() == []

    def test_unknown_codec_and_format(self):
        """Test registry-backed options."""
        assert GunzipConfig(codec="lz4").validate()
        assert UnzipConfig(format="7z").validate()

    def test_ensure_valid_raises(self):
        """Test the raising wrapper."""
        with pytest.raises(ConfigurationError) as exc_info:
            WriteFileConfig().ensure_valid()

        assert exc_info.value.errors == ["'path' is required"]
        assert "Invalid WriteFileConfig" in str(exc_info.value)


class TestFromDict:
    """Test building configs from dictionaries."""

    def test_known_keys(self):
        """Test normal construction."""
        config = SubstituteConfig.from_dict({"source": "x", "replace": "y", "regexp": True})

        assert config == SubstituteConfig(source="x", replace="y", regexp=True)

    def test_unknown_keys(self):
        """Test that unknown keys are rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            GunzipConfig.from_dict({"codec": "gzip", "level": 9})

        assert exc_info.value.errors == ["'level' is not a valid option"]

    def test_empty(self):
        """Test None and empty input."""
        assert EnvsubConfig.from_dict(None) == EnvsubConfig()

    def test_config_types_cover_stages(self):
        """Test the type name mapping."""
        assert set(CONFIG_TYPES) == {
            "GlobRead",
            "ReadFolder",
            "FileReader",
            "Substitute",
            "Envsub",
            "UnzipFile",
            "GunzipFile",
            "WriteFile",
        }

"""Tests for pipeline wiring and execution."""

import gzip
import io
import zipfile
from unittest.mock import Mock

import pytest

from fileflow.errors import ConfigurationError, PipelineError, StageInitError
from fileflow.pipeline import Pipeline, PipelineStats, run_pipeline
from fileflow.stages import Envsub, GlobRead, GunzipFile, Stage, Substitute, UnzipFile, WriteFile
from fileflow.streaming.channel import Channel


def quiet_monitor():
    monitor = Mock()
    monitor.usage_bytes.return_value = 0
    return monitor


class Exploding(Stage):
    """Consumes one item, then fails."""

    async def transform(self):
        async for _ in self.consume():
            raise RuntimeError("exploded")


class TestWiring:
    """Test structural validation."""

    def test_channel_needs_one_consumer(self):
        """Test that a dangling output is rejected."""
        channel = Channel("dangling")

        with pytest.raises(ConfigurationError) as exc_info:
            Pipeline([GlobRead(glob_pattern="*", outputs=[channel])])

        assert any("exactly one consumer" in e for e in exc_info.value.errors)

    def test_channel_needs_one_producer(self):
        """Test that two producers on one channel are rejected."""
        channel = Channel("shared")

        with pytest.raises(ConfigurationError) as exc_info:
            Pipeline(
                [
                    GlobRead(glob_pattern="*", outputs=[channel], name="g1"),
                    GlobRead(glob_pattern="*", outputs=[channel], name="g2"),
                    WriteFile(path="out", inputs=[channel]),
                ]
            )

        assert any("exactly one producer" in e for e in exc_info.value.errors)

    def test_duplicate_stage_names(self):
        """Test stage name uniqueness."""
        a, b = Channel("a"), Channel("b")

        with pytest.raises(ConfigurationError):
            Pipeline(
                [
                    GlobRead(glob_pattern="*", outputs=[a], name="same"),
                    Substitute(source="x", inputs=[a], outputs=[b], name="same"),
                    WriteFile(path="out", inputs=[b]),
                ]
            )


class TestRun:
    """Test end-to-end runs."""

    def test_glob_gunzip_write(self, tmp_path):
        """Test reading, decompressing and concatenating several files."""
        src = tmp_path / "src"
        src.mkdir()
        (src / "1.gz").write_bytes(gzip.compress(b"first\n"))
        (src / "2.gz").write_bytes(gzip.compress(b"second\n" * 1000))
        target = tmp_path / "out.txt"

        raw, plain = Channel("raw"), Channel("plain")
        stats = run_pipeline(
            [
                GlobRead(
                    glob_pattern=str(src / "*.gz"),
                    threshold_bytes=20,
                    chunk_size=16,
                    outputs=[raw],
                    monitor=quiet_monitor(),
                ),
                GunzipFile(inputs=[raw], outputs=[plain]),
                WriteFile(path=str(target), inputs=[plain]),
            ]
        )

        assert target.read_text() == "first\n" + "second\n" * 1000
        assert stats.succeeded
        assert stats.item_errors == 0
        assert raw.close_count == 1
        assert plain.close_count == 1

    def test_unzip_envsub_write(self, tmp_path, monkeypatch):
        """Test archive entries flowing through a text rewrite."""
        monkeypatch.setenv("GREETING", "hi")
        archive = io.BytesIO()
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("a.txt", "${GREETING} a\n")
            zf.writestr("b.txt", "${GREETING} b\n")
        (tmp_path / "bundle.zip").write_bytes(archive.getvalue())
        (tmp_path / "broken.zip").write_bytes(b"not a zip")
        target = tmp_path / "out" / "result.txt"

        files, entries, text = Channel("files"), Channel("entries"), Channel("text")
        stats = run_pipeline(
            [
                GlobRead(glob_pattern=str(tmp_path / "*.zip"), outputs=[files], monitor=quiet_monitor()),
                UnzipFile(inputs=[files], outputs=[entries], name="unzip"),
                Envsub(inputs=[entries], outputs=[text]),
                WriteFile(path=str(target), inputs=[text]),
            ]
        )

        assert target.read_text() == "hi a\nhi b\n"
        assert stats.succeeded
        assert stats.item_errors == 1
        assert stats.stages["unzip"]["items_dropped"] == 1

    def test_init_failure_starts_nothing(self, tmp_path):
        """Test that an Init failure aborts before any stage runs."""
        (tmp_path / "a.txt").write_text("a")
        channel = Channel()
        pipeline = Pipeline(
            [
                GlobRead(glob_pattern=str(tmp_path / "*.txt"), outputs=[channel], monitor=quiet_monitor()),
                Substitute(source="(", regexp=True, inputs=[channel], name="bad-regex"),
            ]
        )

        with pytest.raises(StageInitError) as exc_info:
            pipeline.run()

        assert exc_info.value.stage == "bad-regex"
        assert channel.emitted == 0
        assert not pipeline.stats.succeeded
        assert pipeline.stats.failed_stage == "bad-regex"

    def test_running_failure_names_root_stage(self, tmp_path):
        """Test that a fatal error terminates the run and names its stage."""
        (tmp_path / "a.txt").write_text("a")
        (tmp_path / "b.txt").write_text("b")
        channel = Channel()
        pipeline = Pipeline(
            [
                GlobRead(glob_pattern=str(tmp_path / "*.txt"), outputs=[channel], monitor=quiet_monitor()),
                Exploding(inputs=[channel], name="boom"),
            ]
        )

        with pytest.raises(PipelineError) as exc_info:
            pipeline.run()

        assert exc_info.value.stage == "boom"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert pipeline.stats.failed_stage == "boom"

    def test_upstream_failure_reaches_sink(self, tmp_path):
        """Test that a source failure is attributed to the source."""
        (tmp_path / "a.txt").write_text("a")
        channel = Channel()
        source = GlobRead(glob_pattern=str(tmp_path / "*.txt"), outputs=[channel], monitor=quiet_monitor(), name="src")
        pipeline = Pipeline([source, WriteFile(path=str(tmp_path / "out.txt"), inputs=[channel])])

        async def broken_produce():
            raise OSError("disk failure")

        source.produce = broken_produce

        with pytest.raises(PipelineError) as exc_info:
            pipeline.run()

        assert exc_info.value.stage == "src"


class TestPipelineStats:
    """Test run statistics."""

    def test_to_dict(self):
        """Test serialization."""
        stats = PipelineStats(stages={"s": {"errors": 2}}, start_time=10.0, end_time=12.5, succeeded=True)

        result = stats.to_dict()

        assert result["elapsed_seconds"] == 2.5
        assert result["item_errors"] == 2
        assert result["succeeded"] is True

    def test_elapsed_before_start(self):
        """Test default timing."""
        assert PipelineStats().elapsed_seconds == 0.0

"""Fileflow: memory-bounded file processing pipelines.

Stages read files, decompress archives, rewrite text and write results,
passing data through bounded channels. Small files travel as whole buffers,
large ones as lazy chunk streams, and sources pause whenever the process
uses more memory than allowed.

QUICK START:
    >>> from fileflow import Channel, GlobRead, GunzipFile, WriteFile, run_pipeline
    >>> raw, plain = Channel("raw"), Channel("plain")
    >>> run_pipeline([
    ...     GlobRead(glob_pattern="logs/*.gz", outputs=[raw]),
    ...     GunzipFile(inputs=[raw], outputs=[plain]),
    ...     WriteFile(path="all.log", inputs=[plain]),
    ... ])

FROM A FILE:
    >>> from fileflow import load_pipeline
    >>> load_pipeline("pipeline.yaml").run()

Modules:
    - streaming: channels, chunked file reading, memory watchdog
    - stages: sources, decompression, text rewrites, file sink
    - codecs: archive and compression registries
    - pipeline: wiring checks and concurrent execution
    - loader: YAML pipeline descriptions
"""

__version__ = "0.1.0"

from fileflow.errors import (
    ChannelClosedError,
    ConfigurationError,
    CorruptInputError,
    FileflowError,
    PipelineError,
    ShapeMismatchError,
    SourceNotFoundError,
    StageInitError,
    UpstreamFailedError,
    format_error,
)
from fileflow.loader import build_pipeline, create_stage, load_pipeline, register_stage
from fileflow.pipeline import Pipeline, PipelineStats, run_pipeline
from fileflow.stages import (
    Envsub,
    FileReader,
    GlobRead,
    GunzipFile,
    ReadFolder,
    Stage,
    Substitute,
    UnzipFile,
    WriteFile,
)
from fileflow.streaming import Channel, Item, ItemKind, Watchdog

__all__ = [
    "__version__",
    # Pipeline
    "Pipeline",
    "PipelineStats",
    "run_pipeline",
    "load_pipeline",
    "build_pipeline",
    "create_stage",
    "register_stage",
    # Channels
    "Channel",
    "Item",
    "ItemKind",
    "Watchdog",
    # Stages
    "Stage",
    "GlobRead",
    "ReadFolder",
    "FileReader",
    "Substitute",
    "Envsub",
    "UnzipFile",
    "GunzipFile",
    "WriteFile",
    # Errors
    "FileflowError",
    "ConfigurationError",
    "SourceNotFoundError",
    "ShapeMismatchError",
    "ChannelClosedError",
    "UpstreamFailedError",
    "StageInitError",
    "PipelineError",
    "CorruptInputError",
    "format_error",
]

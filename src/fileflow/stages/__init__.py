"""Pipeline stages for fileflow.

Stages share one lifecycle (see :mod:`fileflow.stages.base`) and talk to
each other only through channels.

Sources:
    - GlobRead: files matching a glob pattern
    - ReadFolder: every file under a folder
    - FileReader: files named by upstream text items

Transforms:
    - UnzipFile: container archive -> one buffer per entry
    - GunzipFile: compressed input -> one decompressed stream
    - Substitute: literal or regex replacement
    - Envsub: ``${NAME}`` environment interpolation

Sinks:
    - WriteFile: append items to a file
"""

from fileflow.stages.archive import GunzipFile, UnzipFile
from fileflow.stages.base import Stage, StageState, run_concurrently
from fileflow.stages.sink import WriteFile
from fileflow.stages.sources import FileReader, GlobRead, ReadFolder, expand_glob, walk_folder
from fileflow.stages.text import Envsub, Substitute, envsub, substitute

__all__ = [
    "Stage",
    "StageState",
    "run_concurrently",
    "GlobRead",
    "ReadFolder",
    "FileReader",
    "expand_glob",
    "walk_folder",
    "UnzipFile",
    "GunzipFile",
    "Substitute",
    "Envsub",
    "substitute",
    "envsub",
    "WriteFile",
]

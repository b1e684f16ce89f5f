"""Build pipelines from YAML (or plain dictionary) descriptions.

A pipeline file declares its channels and its stages; each stage names its
type, the channel it reads (``input``) and the channel it writes
(``output``), plus its options:

    channels: [raw, plain]
    stages:
      - type: GlobRead
        output: raw
        glob_pattern: "logs/*.gz"
      - type: GunzipFile
        input: raw
        output: plain
      - type: WriteFile
        input: plain
        path: out/all.log

Option names may be written in snake_case or camelCase; sizes accept
strings such as ``"5MiB"``. An optional ``defaults`` mapping gives options per
stage type; a stage's own options win.
"""

import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type, Union

import yaml

from fileflow.errors import ConfigurationError, SourceNotFoundError
from fileflow.pipeline import Pipeline
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
from fileflow.streaming.channel import Channel
from fileflow.streaming.watchdog import MemoryMonitor
from fileflow.utils import merge_configs, parse_size

logger = logging.getLogger(__name__)

_STAGE_TYPES: Dict[str, Type[Stage]] = {}

# Option names used by earlier pipeline descriptions
OPTION_ALIASES = {
    "glob": "glob_pattern",
    "wait": "wait_ms",
    "pause": "pause_ms",
    "max_memory": "max_memory_gb",
    "folder_location": "folder",
    "chunk_size_bytes": "chunk_size",
    "size_threshold_bytes": "threshold_bytes",
    "pause_millis": "pause_ms",
    "inter_item_delay_millis": "wait_ms",
    "source_pattern": "source",
    "replacement": "replace",
    "is_regex": "regexp",
}

# Option names that mean something else on other stage types
STAGE_OPTION_ALIASES: Dict[Type[Stage], Dict[str, str]] = {
    ReadFolder: {"folder_path": "folder"},
}

SIZE_OPTIONS = {"chunk_size", "threshold_bytes", "memory_ceiling_bytes"}

RESERVED_KEYS = {"type", "name", "input", "output"}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def register_stage(type_name: str, stage_class: Type[Stage], override: bool = False) -> None:
    """Register a stage class under a type name.

    Raises:
        ValueError: If the name is taken and override=False.
    """
    if type_name in _STAGE_TYPES and not override:
        raise ValueError(f"Stage type '{type_name}' is already registered")
    _STAGE_TYPES[type_name] = stage_class


def stage_types() -> List[str]:
    return sorted(_STAGE_TYPES)


for _name, _cls in (
    ("GlobRead", GlobRead),
    ("ReadFolder", ReadFolder),
    ("FolderRead", ReadFolder),
    ("FileReader", FileReader),
    ("ReadFile", FileReader),
    ("GetFileFromFolder", FileReader),
    ("Substitute", Substitute),
    ("Envsub", Envsub),
    ("UnzipFile", UnzipFile),
    ("GunzipFile", GunzipFile),
    ("WriteFile", WriteFile),
):
    register_stage(_name, _cls)


def normalize_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Convert option names to snake_case, resolve aliases and parse sizes."""
    normalized = {}
    for key, value in options.items():
        snake = _CAMEL_BOUNDARY.sub("_", str(key)).lower()
        snake = OPTION_ALIASES.get(snake, snake)
        if snake in normalized:
            raise ConfigurationError(f"Option '{key}' given more than once")
        if snake in SIZE_OPTIONS and isinstance(value, str):
            try:
                value = parse_size(value)
            except ValueError as e:
                raise ConfigurationError(f"Invalid size for '{key}'", [str(e)]) from e
        normalized[snake] = value
    return normalized


def create_stage(
    type_name: str,
    options: Optional[Dict[str, Any]] = None,
    *,
    inputs: Optional[List[Channel]] = None,
    outputs: Optional[List[Channel]] = None,
    name: Optional[str] = None,
    **runtime: Any,
) -> Stage:
    """Create a stage by type name.

    Args:
        type_name: Registered stage type.
        options: Configuration options (any naming style).
        inputs: Upstream channels.
        outputs: Downstream channels.
        name: Stage name.
        **runtime: Non-configuration constructor arguments (``progress``,
            ``monitor``, ``environ``...), passed only where accepted.

    Raises:
        ConfigurationError: If the type is unknown or options are invalid.
    """
    stage_class = _STAGE_TYPES.get(type_name)
    if stage_class is None:
        raise ConfigurationError(
            f"Unknown stage type '{type_name}'",
            [f"Supported types: {', '.join(stage_types())}"],
        )

    normalized = _apply_stage_aliases(stage_class, normalize_options(options or {}))
    config = stage_class.config_class.from_dict(normalized)
    accepted = {key: value for key, value in runtime.items() if key in _runtime_args(stage_class)}
    return stage_class(
        config,
        inputs=inputs or [],
        outputs=outputs or [],
        name=name,
        **accepted,
    )


def _apply_stage_aliases(stage_class: Type[Stage], options: Dict[str, Any]) -> Dict[str, Any]:
    aliases = {}
    for cls, mapping in STAGE_OPTION_ALIASES.items():
        if issubclass(stage_class, cls):
            aliases.update(mapping)

    result = {}
    for key, value in options.items():
        key = aliases.get(key, key)
        if key in result:
            raise ConfigurationError(f"Option '{key}' given more than once")
        result[key] = value
    return result


def _runtime_args(stage_class: Type[Stage]) -> set:
    if issubclass(stage_class, WriteFile):
        return {"progress"}
    if issubclass(stage_class, (GlobRead, ReadFolder)):
        return {"monitor", "watchdog"}
    if issubclass(stage_class, Envsub):
        return {"environ"}
    return set()


def _channel_list(stage_def: Dict[str, Any], key: str, channels: Dict[str, Channel], stage: str) -> List[Channel]:
    value = stage_def.get(key)
    if value is None:
        return []
    names = value if isinstance(value, list) else [value]
    result = []
    for channel_name in names:
        if channel_name not in channels:
            raise ConfigurationError(
                f"Stage '{stage}' refers to unknown channel '{channel_name}'",
                [f"Declared channels: {', '.join(sorted(channels)) or 'none'}"],
            )
        result.append(channels[channel_name])
    return result


def build_pipeline(
    description: Dict[str, Any],
    progress: Optional[Callable[[int], None]] = None,
    monitor: Optional[MemoryMonitor] = None,
) -> Pipeline:
    """Build a wired pipeline from a dictionary description.

    Args:
        description: Mapping with ``channels``, ``stages`` and optional
            ``defaults`` keys.
        progress: Byte-count callback given to every WriteFile stage.
        monitor: Memory monitor given to every source stage.

    Raises:
        ConfigurationError: On any structural or option error.
    """
    if not isinstance(description, dict):
        raise ConfigurationError("Pipeline description must be a mapping")

    channels: Dict[str, Channel] = {}
    for entry in description.get("channels") or []:
        if isinstance(entry, dict):
            channel_name, capacity = entry.get("name"), entry.get("capacity", 1)
        else:
            channel_name, capacity = entry, 1
        if not isinstance(channel_name, str) or not channel_name:
            raise ConfigurationError(f"Invalid channel declaration: {entry!r}")
        if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < 1:
            raise ConfigurationError(
                f"Invalid capacity for channel '{channel_name}'",
                [f"'capacity' must be a positive integer, got {capacity!r}"],
            )
        if channel_name in channels:
            raise ConfigurationError(f"Channel '{channel_name}' declared twice")
        channels[channel_name] = Channel(channel_name, capacity=capacity)

    stage_defs = description.get("stages")
    if not stage_defs or not isinstance(stage_defs, list):
        raise ConfigurationError("Pipeline description needs a non-empty 'stages' list")

    defaults = description.get("defaults") or {}
    if not isinstance(defaults, dict):
        raise ConfigurationError("'defaults' must map stage types to options")

    stages = []
    for index, stage_def in enumerate(stage_defs, 1):
        if not isinstance(stage_def, dict) or "type" not in stage_def:
            raise ConfigurationError(f"Stage #{index} must be a mapping with a 'type'")

        stage_name = stage_def.get("name") or f"{stage_def['type']}-{index}"
        options = {key: value for key, value in stage_def.items() if key not in RESERVED_KEYS}
        type_defaults = defaults.get(stage_def["type"])
        if type_defaults:
            options = merge_configs(normalize_options(type_defaults), normalize_options(options))
        stages.append(
            create_stage(
                stage_def["type"],
                options,
                inputs=_channel_list(stage_def, "input", channels, stage_name),
                outputs=_channel_list(stage_def, "output", channels, stage_name),
                name=stage_name,
                progress=progress,
                monitor=monitor,
            )
        )

    logger.debug(f"Built pipeline: {[stage.name for stage in stages]}")
    return Pipeline(stages)


def load_pipeline(
    path: Union[str, Path],
    progress: Optional[Callable[[int], None]] = None,
    monitor: Optional[MemoryMonitor] = None,
) -> Pipeline:
    """Load a pipeline from a YAML file.

    Raises:
        SourceNotFoundError: If the file does not exist.
        ConfigurationError: If the YAML is malformed or invalid.
    """
    path = Path(path)
    if not path.exists():
        raise SourceNotFoundError(str(path))

    try:
        with open(path, encoding="utf-8") as f:
            description = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse pipeline file {path}", [str(e)]) from e

    return build_pipeline(description, progress=progress, monitor=monitor)

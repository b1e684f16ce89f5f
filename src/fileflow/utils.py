"""Utility functions for fileflow.

This module provides helper functions used across the fileflow package
for size handling, configuration merging and log formatting.
"""

import re
from typing import Any, Dict, Union

_SIZE_UNITS = {
    "": 1,
    "b": 1,
    "kb": 1000,
    "mb": 1000**2,
    "gb": 1000**3,
    "kib": 1024,
    "mib": 1024**2,
    "gib": 1024**3,
    "k": 1024,
    "m": 1024**2,
    "g": 1024**3,
}

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$")


def parse_size(value: Union[int, float, str]) -> int:
    """Parse a size into bytes.

    Args:
        value: An integer byte count or a string such as "5MiB" or "3GB".

    Returns:
        The size in bytes.

    Raises:
        ValueError: If the value cannot be parsed or is negative.

    Example:
        >>> parse_size("5MiB")
        5242880
        >>> parse_size(1024)
        1024
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid size: {value!r}")

    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Size must be non-negative: {value}")
        return int(value)

    match = _SIZE_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid size: {value!r}")

    number, unit = match.groups()
    multiplier = _SIZE_UNITS.get(unit.lower())
    if multiplier is None:
        raise ValueError(f"Unknown size unit '{unit}' in {value!r}")

    return int(float(number) * multiplier)


def format_bytes(num_bytes: float) -> str:
    """Format a byte count for humans.

    Example:
        >>> format_bytes(5 * 1024 * 1024)
        '5.00 MiB'
    """
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(num_bytes) < 1024 or unit == "GiB":
            if unit == "B":
                return f"{int(num_bytes)} B"
            return f"{num_bytes:.2f} {unit}"
        num_bytes /= 1024
    return f"{num_bytes:.2f} GiB"


def truncate_string(value: str, max_length: int, suffix: str = "...") -> str:
    """Truncate a string to a maximum length.

    Args:
        value: The string to truncate.
        max_length: Maximum length of the result.
        suffix: Suffix to add if truncated.

    Returns:
        The truncated string.
    """
    if len(value) <= max_length:
        return value

    return value[: max_length - len(suffix)] + suffix


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge two configuration dictionaries.

    Args:
        base: Base configuration.
        override: Configuration to override base values.

    Returns:
        Merged configuration.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result

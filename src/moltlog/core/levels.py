"""Log level table.

Levels use the numeric scale that JSON log producers in the Node ecosystem
emit (``10`` trace through ``60`` fatal), so records coming from other
services and records produced by :class:`moltlog.Logger` map the same way.

Example:
    >>> normalize_level(40)
    'warn'
    >>> normalize_level("WARNING")
    'warn'
    >>> level_value("error")
    50
"""

from __future__ import annotations

from typing import Final

LEVEL_VALUES: Final[dict[str, int]] = {
    "trace": 10,
    "debug": 20,
    "info": 30,
    "warn": 40,
    "error": 50,
    "fatal": 60,
}

LEVEL_NAMES: Final[dict[int, str]] = {value: name for name, value in LEVEL_VALUES.items()}

_ALIASES: Final[dict[str, str]] = {
    "warning": "warn",
    "critical": "fatal",
    "verbose": "debug",
    "log": "info",
}

DEFAULT_LEVEL: Final[str] = "info"

# Threshold-only level: nothing is emitted
SILENT: Final[str] = "silent"
SILENT_VALUE: Final[int] = 1_000


def normalize_level(level: object, default: str = DEFAULT_LEVEL) -> str:
    """Return the canonical level name for a numeric or named level.

    Unknown values map to ``default``.
    """
    if isinstance(level, bool):
        return default
    if isinstance(level, float):
        if not level.is_integer():
            return default
        level = int(level)
    if isinstance(level, int):
        return LEVEL_NAMES.get(level, default)
    if isinstance(level, str):
        name = level.strip().lower()
        if name.isdecimal():
            return LEVEL_NAMES.get(int(name), default)
        name = _ALIASES.get(name, name)
        if name in LEVEL_VALUES:
            return name
    return default


def level_value(level: object) -> int:
    """Numeric value for a level, accepting ``"silent"`` as a threshold."""
    if isinstance(level, str) and level.strip().lower() == SILENT:
        return SILENT_VALUE
    return LEVEL_VALUES[normalize_level(level)]


def parse_threshold(level: object) -> str:
    """Normalize a configured threshold; ``silent`` is kept as-is."""
    if isinstance(level, str) and level.strip().lower() == SILENT:
        return SILENT
    return normalize_level(level)


__all__ = [
    "DEFAULT_LEVEL",
    "LEVEL_NAMES",
    "LEVEL_VALUES",
    "SILENT",
    "level_value",
    "normalize_level",
    "parse_threshold",
]

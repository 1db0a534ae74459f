"""Helpers for parsing the logging settings file."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

_LEVEL_MAP: dict[str, int | None] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "off": None,
}

_DESTINATIONS = ("terminal", "sessions")
_DEFAULT_LEVEL = logging.INFO
_DEFAULT_RETENTION_HOURS = 48


@dataclass(frozen=True)
class LoggingSettings:
    terminal_level: int | None = _DEFAULT_LEVEL
    sessions_level: int | None = _DEFAULT_LEVEL
    retention_hours: int = _DEFAULT_RETENTION_HOURS


def _parse_retention(value: str) -> int:
    try:
        return max(0, int(value))
    except ValueError:
        return _DEFAULT_RETENTION_HOURS


def parse_logging_settings(path: Path) -> LoggingSettings:
    """Parse ``key = value`` lines; a missing file yields the defaults.

    ``terminal`` and ``sessions`` accept debug/info/warning/off. Unknown
    levels fall back to info.
    """

    values: dict[str, object] = {}
    if not path.exists():
        return LoggingSettings()

    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        key = key.lower()
        if key == "retention_hours":
            values["retention_hours"] = _parse_retention(value)
        elif key in _DESTINATIONS:
            values[f"{key}_level"] = _LEVEL_MAP.get(value.lower(), _DEFAULT_LEVEL)

    return LoggingSettings(**values)


__all__ = ["LoggingSettings", "parse_logging_settings"]

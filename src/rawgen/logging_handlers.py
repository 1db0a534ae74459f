"""Logging handlers and setup for synthesis runs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

from .config import Settings, get_settings
from .logging_settings import parse_logging_settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
SESSIONS_LOGGER = "rawgen.sessions"


class DateStampedFileHandler(logging.FileHandler):
    """File handler writing to ``<directory>/<date>/<prefix>_<timestamp>_UTC.log``."""

    def __init__(
        self,
        directory: str | Path,
        *,
        prefix: str = "rawgen",
        encoding: str = "utf-8",
        delay: bool = False,
        current_time: Optional[datetime] = None,
    ) -> None:
        timestamp = (current_time or datetime.now(timezone.utc)).astimezone(timezone.utc)
        log_path = (
            Path(directory).resolve()
            / timestamp.strftime("%Y-%m-%d")
            / f"{prefix}_{timestamp.strftime('%Y-%m-%d_%H-%M-%S')}_UTC.log"
        )
        log_path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(log_path, mode="a", encoding=encoding, delay=delay)


def cleanup_old_logs(
    log_directories: Iterable[str | Path],
    retention_hours: int,
    logger: Optional[logging.Logger] = None,
) -> tuple[int, int]:
    """Delete ``*.log`` files older than ``retention_hours``.

    Returns ``(files_deleted, errors)``. A retention of 0 disables cleanup.
    """

    if retention_hours <= 0:
        return (0, 0)

    cutoff = (datetime.now(timezone.utc) - timedelta(hours=retention_hours)).timestamp()
    deleted = 0
    errors = 0

    for directory in log_directories:
        root = Path(directory).resolve()
        if not root.is_dir():
            continue

        for log_file in root.rglob("*.log"):
            try:
                if log_file.stat().st_mtime < cutoff:
                    log_file.unlink()
                    deleted += 1
            except OSError as exc:
                errors += 1
                if logger:
                    logger.warning(f"Failed to delete {log_file}: {exc}")

        for date_dir in sorted(root.iterdir(), reverse=True):
            if date_dir.is_dir() and not any(date_dir.iterdir()):
                try:
                    date_dir.rmdir()
                except OSError as exc:
                    if logger:
                        logger.debug(f"Could not remove {date_dir}: {exc}")

    if logger and deleted:
        logger.info(f"Log cleanup removed {deleted} file(s), {errors} error(s)")
    return (deleted, errors)


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Attach terminal and session-file handlers per the logging settings file."""

    settings = settings or get_settings()
    log_settings = parse_logging_settings(settings.logging_settings_path)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    package_logger = logging.getLogger("rawgen")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    sessions_logger = logging.getLogger(SESSIONS_LOGGER)
    for handler in list(sessions_logger.handlers):
        sessions_logger.removeHandler(handler)
        handler.close()

    levels = [
        level
        for level in (log_settings.terminal_level, log_settings.sessions_level)
        if level is not None
    ]
    package_logger.setLevel(min(levels) if levels else logging.CRITICAL + 1)
    package_logger.propagate = False

    if log_settings.terminal_level is not None:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_settings.terminal_level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    sessions_dir = settings.log_dir / "sessions"
    if log_settings.sessions_level is not None:
        file_handler = DateStampedFileHandler(sessions_dir, prefix="session", delay=True)
        file_handler.setLevel(log_settings.sessions_level)
        file_handler.setFormatter(formatter)
        sessions_logger.addHandler(file_handler)

    # websockets logs every frame at DEBUG
    websockets_level = logging.DEBUG if log_settings.terminal_level == logging.DEBUG else logging.WARNING
    logging.getLogger("websockets").setLevel(websockets_level)

    cleanup_old_logs([sessions_dir], log_settings.retention_hours, logger=package_logger)


__all__ = [
    "DateStampedFileHandler",
    "SESSIONS_LOGGER",
    "cleanup_old_logs",
    "configure_logging",
]

"""
Logging setup for agentstore.

Everything under the ``agentstore`` logger goes to a dated file in the log
directory. Storage events (migrations applied or rolled back) also go to a
separate append-only event log so schema history can be audited without
digging through debug output.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from agentstore.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _log_dir(log_dir: Optional[Union[str, Path]]) -> Path:
    if log_dir is not None:
        return Path(log_dir)
    return get_settings().resolved_log_dir()


def setup_agentstore_logging(
    level: str = "INFO", log_dir: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """Configure the ``agentstore`` logger.

    Args:
        level: Level name, case-insensitive. Unknown names fall back to INFO.
        log_dir: Directory for log files. Defaults to ``<data_dir>/logs``.

    Returns:
        The configured logger. Calling this again reuses existing handlers.
    """
    logger = logging.getLogger("agentstore")
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logger.setLevel(numeric_level)

    directory = _log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        date_str = datetime.now().strftime("%Y-%m-%d")
        file_handler = logging.FileHandler(directory / f"agentstore-{date_str}.log")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if numeric_level == logging.DEBUG:
        has_console = any(
            isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
            for h in logger.handlers
        )
        if not has_console:
            console = logging.StreamHandler()
            console.setFormatter(formatter)
            logger.addHandler(console)

    return logger


def log_storage_event(
    event_type: str, details: str, log_dir: Optional[Union[str, Path]] = None
) -> None:
    """Append one line to the storage event log."""
    directory = _log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    date_str = datetime.now().strftime("%Y-%m-%d")
    timestamp = datetime.now().isoformat(timespec="seconds")
    with open(directory / f"storage-events-{date_str}.log", "a", encoding="utf-8") as f:
        f.write(f"{timestamp} | {event_type} | {details}\n")

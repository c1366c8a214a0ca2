# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Structured logging setup for archgraph.

Log records go to a daily JSON-lines file under ``.archgraph_logs/`` and,
optionally, to stdout in a human-readable format. Sync summaries attach
their counters with ``extra={"extra_fields": {...}}``; the JSON formatter
merges those fields into the record.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

DEFAULT_LOG_DIRNAME = ".archgraph_logs"

# Third-party loggers that are chatty at DEBUG/INFO
NOISY_LOGGERS = ("watchdog",)

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredFormatter(logging.Formatter):
    """Formats a record as one JSON object per line.

    Warnings and errors also carry ``location`` (module:line) so parse
    failures and sync errors can be traced without the console log.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.levelno >= logging.WARNING:
            entry["location"] = f"{record.module}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            entry.update(extra_fields)

        # Paths and datetimes in extra_fields are written as strings
        return json.dumps(entry, default=str)


def log_file_for(log_dir: Path, day: Optional[datetime] = None) -> Path:
    """Daily log file path, e.g. ``archgraph_20250101.log``."""
    day = day or datetime.now(timezone.utc)
    return log_dir / f"archgraph_{day.strftime('%Y%m%d')}.log"


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: int = logging.INFO,
    console_output: bool = True,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> Path:
    """Configure the root logger for a sync or watch session.

    Replaces any existing root handlers.

    Args:
        log_dir: Directory for log files. If None, uses ./.archgraph_logs/
        log_level: Logging level (default: INFO)
        console_output: Also log to stdout (default: True)
        quiet_loggers: Loggers held at WARNING unless log_level is more verbose
            than INFO.

    Returns:
        Path of the JSON-lines log file.
    """
    log_dir = log_dir or Path.cwd() / DEFAULT_LOG_DIRNAME
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    log_file = log_file_for(log_dir)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(
            logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        root_logger.addHandler(console_handler)

    if log_level >= logging.INFO:
        for name in quiet_loggers:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging initialized, writing to {log_file}")
    return log_file

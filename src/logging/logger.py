# src/logging/logger.py — v2
"""Logger setup for thegrid: JSON or text records carrying workflow context.

Every record is stamped with the pipeline, event, step and origin held in
``thegrid.logging.context``, so the lines written while one pipeline is
resumed can be told apart from another's when handlers run concurrently.

Console and file output are separate handlers with their own levels. The
CLI keeps a quiet console on stderr and, when ``LOG_FILE`` is set, adds a
verbose file next to it via ``add_file_handler``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO

from thegrid.logging.context import get_context

ROOT_LOGGER = "thegrid"


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JsonFormatter(logging.Formatter):
    """One JSON object per record; workflow context under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = get_context().as_dict()
        if context:
            entry["context"] = context
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line format for terminals.

    ``2026-03-01 12:00:00 [INFO    ] thegrid.x <event> [pipeline] (step) @origin - msg``
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_context()
        parts = [
            _record_time(record).strftime("%Y-%m-%d %H:%M:%S"),
            f"[{record.levelname:8s}]",
            record.name,
        ]
        if ctx.event:
            parts.append(f"<{ctx.event}>")
        if ctx.pipeline_id:
            parts.append(f"[{ctx.pipeline_id}]")
        if ctx.step:
            parts.append(f"({ctx.step})")
        if ctx.origin:
            parts.append(f"@{ctx.origin}")
        parts.append(f"- {record.getMessage()}")
        line = " ".join(parts)
        if record.exc_info and record.exc_info[1] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under ``thegrid``. Configured by setup_logging()."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def _formatter(log_format: str) -> logging.Formatter:
    return JsonFormatter() if log_format == "json" else TextFormatter()


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | Path | None = None,
    rotation: str = "10MB",
    retention: int = 30,
    stream: TextIO | None = None,
) -> None:
    """Configure the ``thegrid`` logger, replacing any earlier handlers.

    Args:
        level: Log level for console and file (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format ("json" or "text").
        log_file: Path to a rotating log file (None = console only).
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of rotated files to keep.
        stream: Console stream. Defaults to stdout.
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_level = _level(level)
    root_logger.setLevel(console_level)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(_formatter(log_format))
    root_logger.addHandler(console_handler)

    if log_file:
        add_file_handler(
            log_file, level=level, log_format=log_format,
            rotation=rotation, retention=retention,
        )


def add_file_handler(
    log_file: str | Path,
    level: str = "INFO",
    log_format: str = "json",
    rotation: str = "10MB",
    retention: int = 30,
) -> logging.Handler:
    """Attach a rotating file handler without touching the console handler.

    The logger level is lowered to ``level`` if needed; existing handlers
    keep their own levels, so a WARNING console stays quiet while the
    file receives INFO.
    """
    from thegrid.logging.handlers import create_rotating_handler

    root_logger = logging.getLogger(ROOT_LOGGER)
    file_level = _level(level)
    handler = create_rotating_handler(log_file, rotation=rotation, retention=retention)
    handler.setLevel(file_level)
    handler.setFormatter(_formatter(log_format))
    root_logger.addHandler(handler)
    if root_logger.level == logging.NOTSET or root_logger.level > file_level:
        root_logger.setLevel(file_level)
    return handler

"""
Centralized Logging

Architectural Intent:
- Provides structured JSON logging for all bandwatch components
- Centralizes log configuration to avoid scattered print() calls
- Supports configurable log levels via CLI flags (--verbose, --debug)
"""

import json
import logging
import sys
from datetime import datetime, UTC
from typing import Union


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def resolve_level(level: Union[int, str]) -> int:
    """Accept either a logging constant or a level name such as "info"."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_format: bool = False,
) -> None:
    """Configure logging for the bandwatch application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, etc.) or its name
        json_format: If True, use JSON structured output. Otherwise human-readable.
    """
    level = resolve_level(level)
    root = logging.getLogger("bandwatch")
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root.addHandler(handler)

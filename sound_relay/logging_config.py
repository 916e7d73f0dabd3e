"""Logging configuration with JSON formatting for production."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed via logger.info(..., extra={...})
        for key in ("stage", "passes", "short_transfers", "interruptions", "dropped_buffers"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data)


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.environ.get("SOUND_RELAY_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(level: int | str | None = None) -> None:
    """Configure logging based on environment.

    In production (SOUND_RELAY_ENV=production): structured JSON logs to stderr
    Otherwise: human-readable logs to stderr

    Level comes from the argument, then SOUND_RELAY_LOG_LEVEL, then INFO.
    Logs go to stderr so stdout stays free for command output.
    """
    env = os.environ.get("SOUND_RELAY_ENV", "development").lower()
    is_production = env in ("production", "prod", "staging")
    resolved = _resolve_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)

    # Remove existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(resolved)

    if is_production:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

"""
Centralized logging configuration for the CV refiner.

Provides session-tagged logging so every line emitted while serving a
request can be correlated with the session it touched. Set DEBUG_MODE=true
to force DEBUG level regardless of the configured log level.
"""

import json
import logging
import os
import sys
from typing import Optional


def is_debug_mode() -> bool:
    """Check if debug mode is enabled through the environment."""
    return os.getenv("DEBUG_MODE", "false").lower() == "true"


class SessionLogger(logging.LoggerAdapter):
    """
    Logger adapter for refinement operations.

    Prefixes messages with ``[session:xxxxxxxx] [operation]`` and attaches
    both values to the record, where the JSON formatter picks them up.
    """

    def __init__(self, logger: logging.Logger, session_id: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(logger, {"session_id": session_id, "operation": operation})

    @property
    def session_id(self) -> Optional[str]:
        return self.extra["session_id"]

    @session_id.setter
    def session_id(self, value: Optional[str]) -> None:
        # Upload learns its session id only after the store creates it
        self.extra["session_id"] = value

    def process(self, msg, kwargs):
        prefix_parts = []
        if self.extra["session_id"]:
            prefix_parts.append(f"[session:{self.extra['session_id'][:8]}]")
        if self.extra["operation"]:
            prefix_parts.append(f"[{self.extra['operation']}]")
        if prefix_parts:
            msg = f"{' '.join(prefix_parts)} {msg}"

        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


class JsonFormatter(logging.Formatter):
    """One JSON object per line, parseable by log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for key in ("session_id", "operation"):
            value = getattr(record, key, None)
            if value:
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", format: str = "simple") -> None:
    """
    Configure global logging settings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Log format ("simple" or "json")
    """
    log_level = logging.DEBUG if is_debug_mode() else getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if format == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)


def get_logger(
    name: str,
    session_id: Optional[str] = None,
    operation: Optional[str] = None,
) -> SessionLogger:
    """
    Get a session logger instance.

    Args:
        name: Logger name (usually __name__)
        session_id: Optional session identifier
        operation: Optional operation name (e.g., "chat", "generate_resume")

    Returns:
        SessionLogger instance
    """
    return SessionLogger(logging.getLogger(name), session_id, operation)

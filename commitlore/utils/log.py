"""Logging utilities for commitlore."""

import json
import logging
import sys
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


_LOG_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "asctime",
    "stacklevel",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """Formatter with ISO timestamps and context."""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return timestamp.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _LOG_RECORD_FIELDS and not key.startswith("_")
        }
        if extras:
            try:
                serialized = json.dumps(extras, sort_keys=True, ensure_ascii=True, default=str)
            except (TypeError, ValueError):
                serialized = str(extras)
            return f"{message} | {serialized}"
        return message


class CommitloreLogger:
    """Logger for commitlore."""

    def __init__(self, name: str = "commitlore", log_dir: Optional[Path] = None):
        self.logger = logging.getLogger(name)
        level_name = os.getenv("COMMITLORE_LOG_LEVEL", "WARNING").upper()
        level = getattr(logging, level_name, logging.WARNING)
        # File handlers capture debug logs; the console respects the configured level.
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level)
            console_formatter = logging.Formatter("%(levelname)s: %(message)s")
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        self._file_handler: Optional[logging.Handler] = None
        self._file_handler_path: Optional[Path] = None

        if log_dir:
            self.attach_file_handler(default_log_path(log_dir))

    def attach_file_handler(self, log_file: Path) -> Path:
        """Attach or replace a file handler for logging to disk."""
        log_file.parent.mkdir(parents=True, exist_ok=True)
        if self._file_handler and self._file_handler_path == log_file:
            return log_file

        if self._file_handler:
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_formatter = StructuredFormatter("%(asctime)s [%(levelname)s] %(message)s")
        file_handler.setFormatter(file_formatter)
        self.logger.addHandler(file_handler)
        self._file_handler = file_handler
        self._file_handler_path = log_file
        return log_file

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log error message."""
        self.logger.error(message, *args, **kwargs)

    def exception(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log an exception with traceback."""
        self.logger.exception(message, *args, **kwargs)


# Global logger instance
_logger: Optional[CommitloreLogger] = None


def get_logger() -> CommitloreLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = CommitloreLogger()
    return _logger


def app_home() -> Path:
    """Per-user directory holding commitlore state and logs."""
    return Path.home() / ".commitlore"


def default_log_path(log_dir: Optional[Path] = None, when: Optional[datetime] = None) -> Path:
    """Build the daily log file path."""
    directory = log_dir or (app_home() / "logs")
    stamp = (when or datetime.now()).strftime("%Y%m%d")
    return directory / f"commitlore_{stamp}.log"


def init_logger(log_dir: Optional[Path] = None) -> CommitloreLogger:
    """Initialize the global logger."""
    global _logger
    _logger = CommitloreLogger(log_dir=log_dir)
    return _logger


def enable_file_logging(log_dir: Optional[Path] = None) -> Path:
    """Ensure the global logger also writes to the daily log file."""
    logger = get_logger()
    log_file = logger.attach_file_handler(default_log_path(log_dir))
    logger.debug(f"[logging] File logging enabled at {log_file}")
    return log_file

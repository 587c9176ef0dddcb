"""
BASTION Logging Configuration

Centralized logging configuration for the BASTION response system with
support for:
- Structured JSON lines (machine-parseable, for SIEM ingestion)
- Rotating file handlers with size limits
- Per-component log level configuration

Usage:
    from bastion.logging_config import setup_logging, get_logger

    # Initialize logging at application startup
    setup_logging(log_level="INFO", log_file="/var/log/bastion/bastion.log")

    # Get a logger for your module
    logger = get_logger("Executor")
    logger.info("Dispatch complete")
"""

import json
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Module-level constants
ROOT_LOGGER = "BASTION"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "logger": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _level(name: str) -> int:
    return LOG_LEVELS.get(name.upper(), logging.INFO)


def setup_logging(
    log_level: str = DEFAULT_LOG_LEVEL,
    log_file: Optional[str | Path] = None,
    json_format: bool = False,
) -> logging.Logger:
    """Configure logging for the BASTION application.

    Sets up the BASTION logger with a console handler and an optional
    rotating file handler. Calling it again replaces the handlers.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file; enables file logging with rotation
        json_format: If True, emit JSON lines instead of text

    Returns:
        The configured BASTION logger
    """
    level = _level(log_level)
    formatter = (
        JsonFormatter() if json_format
        else logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)
    )

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=DEFAULT_MAX_BYTES,
            backupCount=DEFAULT_BACKUP_COUNT,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the BASTION namespace.

    Args:
        name: Component name, e.g. "Executor" or "BASTION.Executor"

    Returns:
        Logger instance
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def set_service_level(component: str, level: str) -> None:
    """Set log level for one component.

    Example:
        set_service_level("Sequences", "DEBUG")
        set_service_level("Watchdog", "WARNING")
    """
    get_logger(component).setLevel(_level(level))

"""
Logging Utilities

This module sets up logging for the project with a consistent format for
console output and an optional, more detailed log file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "las_retile"

_CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
_FILE_FORMAT = '%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s'
_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _file_handler(log_file: str, level: int) -> logging.FileHandler:
    # Create parent directories if they don't exist
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_file)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        logger.addHandler(_file_handler(log_file, level))

    return logger


def configure_package_logging(level: int, log_file: Optional[str] = None) -> None:
    """
    Apply a level, and optionally a log file, to every logger of the package.

    Module loggers are created at import time with the default level, so the
    CLI calls this once the configuration is known.
    """
    manager = logging.root.manager
    names = [
        n for n in list(manager.loggerDict)
        if n == PACKAGE_LOGGER or n.startswith(PACKAGE_LOGGER + ".")
    ]
    shared_file = _file_handler(log_file, level) if log_file else None
    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
        if shared_file is not None and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
            logger.addHandler(shared_file)

"""Logging utilities for consistent logger creation across the project.

Every logger of the application lives under the ``plugged_kbd`` namespace
(``plugged_kbd.poller``, ``plugged_kbd.keyboards``, ...), so configuring the
root ``plugged_kbd`` logger once configures them all.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

ROOT_LOGGER = 'plugged_kbd'


def get_logger(name: str | None = None) -> logging.Logger:
    """Create or retrieve a logger under the application namespace.

    Args:
        name: Short component name (e.g., 'poller'). A name already starting
            with the application namespace is used as is. None returns the
            application root logger.

    Returns:
        logging.Logger: Logger instance

    Examples:
        >>> get_logger('poller').name
        'plugged_kbd.poller'
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    if name == ROOT_LOGGER or name.startswith(f'{ROOT_LOGGER}.'):
        return logging.getLogger(name)
    return logging.getLogger(f'{ROOT_LOGGER}.{name}')


class ISOFormatter(logging.Formatter):
    """Log formatter with ISO timestamp including milliseconds.

    Formats log messages as:
        <ISO-datetime-with-ms> <log-level> [<logger>]: <message>
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).isoformat(timespec='milliseconds')
        message = f'{timestamp} {record.levelname} [{record.name}]: {record.getMessage()}'
        if record.exc_info:
            message += '\n' + self.formatException(record.exc_info)
        return message


def setup_logging_handler(
    logger: logging.Logger,
    log_level: str = 'INFO',
    foreground: bool = True,
    log_file: Path | None = None,
) -> None:
    """Set up console and file handlers on a logger.

    Args:
        logger: Logger instance to configure
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        foreground: If True, also log to stderr
        log_file: Path to log file, or None for no file logging
    """
    level = getattr(logging, log_level.upper())
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = ISOFormatter()

    if foreground:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

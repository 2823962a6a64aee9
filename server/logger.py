"""
Logging shared by the server, the indexing scripts and the CLIs.
- Each module asks for its own named logger, which is cached here.
- All loggers write to one rotating file (`LOG_FILE`), so the handler is shared per file path.
- Console output is opt-in per logger and starts at `LOG_CONSOLE_LEVEL`.
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv(usecwd=True))

# Logs priority levels:
# CRITICAL > ERROR > WARNING > INFO > DEBUG > NOTSET

LOG_FILE: str = os.getenv("LOG_FILE", "app.log")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "DEBUG").upper()
LOG_CONSOLE_LEVEL: str = os.getenv("LOG_CONSOLE_LEVEL", "WARNING").upper()
LOG_MAX_BYTES: int = int(os.getenv("LOG_MAX_BYTES", 5 * 1024 * 1024))
LOG_BACKUP_COUNT: int = 3

FORMATTER = logging.Formatter(
    '%(asctime)s.%(msecs)03d [%(levelname)-8s] [%(name)s] %(message)s',
    datefmt='%d-%m-%y %H:%M:%S'
)

_logger_instances: dict[str, logging.Logger] = {}
_file_handlers: dict[str, logging.Handler] = {}


def _get_file_handler(log_file: str) -> logging.Handler:
    """One rotating handler per log file, shared by every logger writing to it."""

    path = os.path.abspath(log_file)
    if path not in _file_handlers:
        handler = RotatingFileHandler(
            path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
        )
        handler.setLevel(LOG_LEVEL)
        handler.setFormatter(FORMATTER)
        _file_handlers[path] = handler
    return _file_handlers[path]


def get_logger(
    name: str = "unset",
    log_to_console: bool = False,
    log_to_file: bool = True,
    log_file: Optional[str] = LOG_FILE,
) -> logging.Logger:
    """Get the logger of a module, creating it on first use.

    Args:
        name (str): Name of the logger (logged as source).
        log_to_console (bool): Also print records at `LOG_CONSOLE_LEVEL` or above.
        log_to_file (bool): Write records to `log_file`.
        log_file (Optional[str]): Path of the shared log file. None disables file logging.

    Returns:
        logging.Logger: The configured (possibly cached) logger.
    """

    if name in _logger_instances:
        return _logger_instances[name]

    logger = logging.getLogger(name)
    logger.setLevel(LOG_LEVEL)
    logger.propagate = False

    if log_to_file and log_file:
        logger.addHandler(_get_file_handler(log_file))

    if log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(LOG_CONSOLE_LEVEL)
        console_handler.setFormatter(FORMATTER)
        logger.addHandler(console_handler)

    logger.debug(f"Logger '{name}' ready (file: {log_file if log_to_file else 'off'}, console: {log_to_console})")

    _logger_instances[name] = logger
    return logger

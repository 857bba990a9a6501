"""
Logging Configuration
=====================
Package logger setup driven by the `logging:` config section.

Every module logs through logging.getLogger(__name__), so configuring the
"stds" logger once covers the engine, the tree, the channel, and the server.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .config import LoggingConfig
from .exceptions import InvalidConfigError

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'


def resolve_level(level: str) -> int:
    """Map a level name from config to its logging constant."""
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise InvalidConfigError(f"Unknown log level: {level!r}")
    return value


def setup_logger(
    settings: Optional[LoggingConfig] = None,
    name: str = "stds",
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Attach console and rotating-file handlers to the package logger.

    Calling it again replaces the handlers, so a reloaded config takes
    effect without duplicating output.

    Args:
        settings: Level and rotation limits (defaults when omitted)
        name: Logger to configure
        log_file: Where to write the log; no file handler when None
        console: Whether to log INFO and above to stdout

    Raises:
        InvalidConfigError: if settings.level is not a logging level
    """
    settings = settings or LoggingConfig()
    level = resolve_level(settings.level)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(max(level, logging.INFO))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=settings.max_size_mb * 1024 * 1024,
            backupCount=settings.backup_count
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger

"""
Logging setup for the proctor monitor

Attaches handlers to the ``proctor_monitor`` package logger only, so an
embedding application (the exam backend, uvicorn) keeps its own root
configuration.
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from ..config import Settings, settings as default_settings

PACKAGE_LOGGER = "proctor_monitor"
HANDLER_PREFIX = "proctor-monitor"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _drop_own_handlers(logger: logging.Logger):
    for handler in list(logger.handlers):
        if (handler.get_name() or "").startswith(HANDLER_PREFIX):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(
    settings: Optional[Settings] = None,
    level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure the package logger from settings.

    Calling it again replaces the handlers it installed earlier.

    Args:
        settings: Source of LOG_LEVEL, LOG_TO_FILE, LOG_DIR and rotation sizes
        level: Overrides LOG_LEVEL
        log_to_file: Overrides LOG_TO_FILE
        log_to_console: Write to stderr

    Returns:
        The package logger
    """
    settings = settings or default_settings
    level = (level or settings.LOG_LEVEL).upper()
    if log_to_file is None:
        log_to_file = settings.LOG_TO_FILE

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, level, logging.INFO))
    _drop_own_handlers(logger)

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.set_name(f"{HANDLER_PREFIX}-console")
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_to_file:
        directory = Path(settings.LOG_DIR)
        directory.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            directory / "proctor-monitor.log",
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8"
        )
        file_handler.set_name(f"{HANDLER_PREFIX}-file")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Our handlers already format the records; avoid duplicates via root
    logger.propagate = not logger.handlers

    return logger

# Logging configuration: structured format, console plus optional rotating file.

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from possync.core.config import settings

LOGGER_NAME = "possync"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: str | int | None = None,
    log_path: str | Path | None = None,
    max_bytes: int | None = None,
    backup_count: int | None = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure the ``possync`` logger hierarchy.

    Only handlers previously installed by this function are replaced, so
    calling it again (one call per ``create_app``) never stacks duplicates and
    leaves handlers owned by the server or the test runner alone. Records still
    propagate to the root logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level if level is not None else settings.log_level)

    for handler in list(logger.handlers):
        if getattr(handler, "_possync_owned", False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        console_handler._possync_owned = True
        logger.addHandler(console_handler)

    log_path = log_path if log_path is not None else settings.log_file
    if log_path:
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes or settings.log_max_bytes,
            backupCount=settings.log_backup_count if backup_count is None else backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler._possync_owned = True
        logger.addHandler(file_handler)

    return logger

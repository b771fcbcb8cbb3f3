"""Logging configuration for the embedctl package."""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from embedctl.config import Config

NOISY_LOGGERS = ("urllib3", "kubernetes")


def setup_logger(name: str, level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with the specified name and log level.

    Args:
        name: The name of the logger
        level: The logging level (default: logging.INFO)
        log_file: Optional path of a rotating log file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Don't add handlers if they're already configured, only follow the new level
    if logger.handlers:
        for handler in logger.handlers:
            if not isinstance(handler, logging.handlers.RotatingFileHandler):
                handler.setLevel(level)
    else:
        formatter = logging.Formatter(Config.LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if log_file:
            path = Path(log_file).expanduser().absolute()
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=path,
                maxBytes=Config.LOG_MAX_SIZE_MB * 1024 * 1024,
                backupCount=Config.LOG_BACKUP_COUNT
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    # the log file keeps debug records, the console only shows `level`
    has_file = any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers)
    logger.setLevel(logging.DEBUG if has_file else level)

    return logger


def quiet_noisy_loggers(debug_mode: bool) -> None:
    """Keep chatty third-party libraries at WARNING unless debugging."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug_mode else logging.WARNING)

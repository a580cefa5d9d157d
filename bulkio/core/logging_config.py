"""
Logging configuration for the job engine.
"""
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from bulkio.core.config import settings

# Log format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``bulkio`` logger with console and rotating file handlers.

    Safe to call more than once; handlers are only attached on the first call.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the rotating log file

    Returns:
        The configured package logger
    """
    global _configured

    logger = logging.getLogger("bulkio")
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logger.setLevel(log_level)

    if _configured:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (rotating)
    directory = Path(log_dir or settings.LOG_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        directory / "bulkio.log",
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logger.propagate = False

    # Third-party noise
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    _configured = True
    return logger

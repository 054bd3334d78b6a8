"""Logging setup for counter analytics.

Every module logs through ``logging.getLogger(__name__)``; the handlers
are installed once on the package logger by :func:`setup_logger`.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str = "src",
    log_file: Optional[str] = None,
    level: str = "INFO",
) -> logging.Logger:
    """Configure console and optional file output for a logger.

    Calling it again for a logger that already has handlers only updates
    its level, so the CLI can reconfigure verbosity after loading config.

    Args:
        name: Logger name. The default covers every module of the package.
        log_file: Optional path to a log file. Parent directories are
            created when missing.
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL). Unknown
            names fall back to INFO.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(name)
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(numeric_level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(numeric_level)
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger

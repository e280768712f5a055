"""Shared logging configuration for Sentinel Monitor."""
import logging
import os
from logging.handlers import RotatingFileHandler

from sentinel_monitor.config.constants import LOG_DIR


def setup_logging(name: str, level: str = "INFO", log_dir: str = None) -> logging.Logger:
    """Set up logging with console and rotating file handlers.

    Args:
        name: Logger name (usually the package name)
        level: Log level string (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the log file, defaults to SENTINEL_LOG_DIR

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers if called multiple times
    if logger.handlers:
        return logger

    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(log_level)

    log_dir = log_dir or LOG_DIR
    os.makedirs(log_dir, exist_ok=True)

    # Format: timestamp | level | module | message
    formatter = logging.Formatter(
        fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (rotating, captures all levels)
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, "sentinel_monitor.log"),
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger

"""
Logging configuration for the quote feed service.

Every module logger hangs under the "quotefeed" root, so one stdout handler
serves the whole service. The level starts from LOG_LEVEL and can be moved
later with set_level (FeedConfig.log_level at app startup).
"""
import logging
import os
import sys

ROOT_LOGGER_NAME = "quotefeed"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logger = logging.getLogger(ROOT_LOGGER_NAME)
logger.setLevel(LOG_LEVEL)

if not logger.handlers:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(LOG_LEVEL)
    console_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(console_handler)

# Prevent propagation to root logger (avoid duplicate logs)
logger.propagate = False


def set_level(level: str) -> None:
    """Apply level to the service root logger and its handlers."""
    level = level.upper()
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a service logger.

    Args:
        name: Dotted module suffix, e.g. "cache.content_pool" -> "quotefeed.cache.content_pool"

    Returns:
        The named child logger, or the service root logger when name is empty
    """
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logger

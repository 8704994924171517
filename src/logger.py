"""Centralized logging configuration for the pipe MQTT bridge.

Call configure_logging() once at application startup, then use
standard logging.getLogger(__name__) throughout the codebase.
"""

import logging
import sys

# Module-level constants
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(log_level: str = "INFO", debug: bool = False) -> None:
    """Configure application-wide logging.

    Args:
        log_level: Level name from the configuration (e.g. "INFO")
        debug: Force DEBUG level so per-event lines are emitted

    Example:
        >>> configure_logging(config.log_level, debug=args.debug)
        >>> logger = logging.getLogger(__name__)
        >>> logger.info("Application started")
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers to avoid duplicates
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(handler)

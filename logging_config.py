"""
Logging Configuration

Centralized logging configuration for the orbit tracker.
Library modules log through ``logging.getLogger(__name__)``, so every record
from the engine lands under the ``orbit_tracker`` logger; applications call
``configure_logging`` once at startup to decide where records go.

Usage:
    from logging_config import get_logger, configure_logging

    configure_logging(logging.INFO, package_level=logging.DEBUG)
    logger = get_logger(__name__)
    logger.info("Catalog refreshed")
    logger.warning("Skipping malformed TLE")
    logger.error("Failed to load TLE catalog")
"""

import logging
import sys
from typing import Optional

# Default logging format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Parent of every engine module logger
PACKAGE_LOGGER = "orbit_tracker"


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None,
                      package_level: Optional[int] = None) -> None:
    """
    Configure logging for the entire application.

    Parameters
    ----------
    level : int
        Root logging level (e.g., logging.DEBUG, logging.INFO)
    log_file : str, optional
        Path to log file. If None, logs only to console.
    package_level : int, optional
        Level for the tracker's own loggers. Lets per-tick debug output be
        switched on without the HTTP client's debug chatter.
    """
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    logging.getLogger(PACKAGE_LOGGER).setLevel(
        logging.NOTSET if package_level is None else package_level
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance.

    Parameters
    ----------
    name : str, optional
        Name of the logger (typically __name__). Defaults to the
        tracker's package logger.

    Returns
    -------
    logging.Logger
        Logger instance
    """
    return logging.getLogger(name or PACKAGE_LOGGER)

"""
Logging configuration for the ensemble data-assimilation engine.

Provides a centralized logging setup with consistent formatting across all modules.

Usage:
    from ensemble_da.utils.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Assimilation cycle started...")
    logger.debug("Covariance symmetry error: %.3e", sym_err)
    logger.warning("Krylov solve fell back to a direct solve")
    logger.error("Observation covariance is not positive definite")

Configuration:
    - LOG_LEVEL environment variable controls verbosity (DEBUG, INFO, WARNING, ERROR)
    - Default level is INFO
    - Logs to both console and file (if LOG_FILE is set)
"""

import logging
import os
import sys
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logging_configured = False


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    format_string: Optional[str] = None
) -> None:
    """
    Configure logging for the entire application.

    Should be called once by the simulation driver. Later calls are no-ops.

    Parameters
    ----------
    level : str, optional
        Logging level. One of: DEBUG, INFO, WARNING, ERROR, CRITICAL.
        Defaults to LOG_LEVEL environment variable or INFO.
    log_file : str, optional
        Path to log file. If None, uses LOG_FILE environment variable.
        If neither is set, logs only to console.
    format_string : str, optional
        Custom format string. Defaults to DEFAULT_FORMAT.
    """
    global _logging_configured

    if _logging_configured:
        return

    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if format_string is None:
        format_string = DEFAULT_FORMAT

    formatter = logging.Formatter(format_string, datefmt=DEFAULT_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file is None:
        log_file = os.environ.get("LOG_FILE")

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Suppress verbose TensorFlow logging
    logging.getLogger("tensorflow").setLevel(logging.WARNING)
    logging.getLogger("absl").setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module name.

    Automatically configures logging if not already done.

    Parameters
    ----------
    name : str
        Logger name (typically __name__).

    Returns
    -------
    logging.Logger
        Configured logger instance.

    Example
    -------
    >>> logger = get_logger(__name__)
    >>> logger.info("Updating %d ensemble members", num_members)
    """
    if not _logging_configured:
        setup_logging()

    return logging.getLogger(name)


"""
Logging setup shared by the API server and client-side tooling.

Modules log through ``logging.getLogger(__name__)``; this module only
installs a single handler on the package logger.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from omegaconf import DictConfig

LOGGER_NAME = "factory_inspection"


def configure_logging(config: DictConfig, level: Optional[str] = None) -> logging.Logger:
    """
    Configure the package logger from the ``logging`` config section.

    Args:
        config: Runtime configuration
        level: Optional level name overriding ``logging.level``

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_level = logging.getLevelName((level or config.logging.level).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    formatter = logging.Formatter(config.logging.format, datefmt=config.logging.datefmt)

    # Replace handlers so repeated calls don't duplicate output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    logger.setLevel(log_level)
    return logger

"""Logging configuration for Trust Debt."""

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


LOG_LEVEL_ENV = "TRUSTDEBT_LOG_LEVEL"
LOG_FORMAT = "%(name)s | %(message)s"


def setup_logging(level: Optional[str] = None, console: Optional[Console] = None) -> None:
    """
    Install a Rich handler on the trustdebt logger tree.

    Args:
        level: Level name; defaults to $TRUSTDEBT_LOG_LEVEL or INFO
        console: Console to log to (stderr by default, keeps stdout for results)
    """
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logger = logging.getLogger("trustdebt")
    for existing in list(logger.handlers):
        if isinstance(existing, RichHandler):
            logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False


def get_stage_logger(label: str) -> logging.Logger:
    """Get the logger for a pipeline stage."""
    return logging.getLogger(f"trustdebt.pipeline.{label}")

"""Logging setup for clusterssh."""

import sys

from loguru import logger

LOG_FORMAT = "<level>{level: <8}</level> <cyan>{name}</cyan> {message}"


def setup_logging(verbose: bool = False) -> None:
    """Enable clusterssh logging on a stderr sink at the chosen level."""
    logger.enable("clusterssh")
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "WARNING",
        format=LOG_FORMAT,
        colorize=None,
    )

# recordfabric/log_config.py
"""Logging configuration for the recordfabric library using Loguru.

The library logs through the shared Loguru ``logger`` but keeps its own
namespace disabled until an application opts in, either by calling
:func:`configure_logging` or ``logger.enable("recordfabric")``.
"""

import sys

from loguru import logger

LOGGER_NAMESPACE = "recordfabric"


def configure_logging(level: str = "INFO", sink=sys.stderr, *, library_only: bool = False):
    """
    Configures Loguru logger for recordfabric.

    Removes default handlers, adds a new one with the specified level and sink,
    and enables the recordfabric namespace.

    Args:
        level: The minimum logging level (e.g., "DEBUG", "INFO", "WARNING").
        sink: The output sink (e.g., sys.stderr, "file.log").
        library_only: When True, only records emitted from recordfabric
            modules reach the sink.
    """
    logger.remove()
    logger.add(
        sink,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        colorize=sink is sys.stderr,
        filter=LOGGER_NAMESPACE if library_only else None,
        backtrace=True,
        diagnose=True,
    )
    logger.enable(LOGGER_NAMESPACE)
    logger.info(
        f"Loguru logger configured with level={level.upper()} writing to {sink}"
    )

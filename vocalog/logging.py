"""
vocalog.logging - Centralized logging configuration.

Provides the package logger and a simple setup with optional verbose mode.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("vocalog")

# Chatty at DEBUG; only interesting when their own errors surface.
_NOISY_LOGGERS = ("aiohttp", "asyncio")


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the vocalog package.

    Args:
        verbose: If True, enable DEBUG level logging for vocalog; otherwise
            WARNING level
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s" if verbose else "%(levelname)s: %(message)s",
    )
    logger.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

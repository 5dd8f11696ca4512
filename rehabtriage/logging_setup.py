"""Logging configuration for applications embedding the engine.

Library modules only create loggers (``logging.getLogger(__name__)``); the
host application decides where records go by calling ``configure_logging``.
"""

from __future__ import annotations

import logging

LOGGER_NAME = "rehabtriage"

formatter = logging.Formatter(
    "%(asctime)s — %(name)s — %(levelname)s — %(message)s"
)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a console handler to the package logger.

    Calling this more than once replaces the handler instead of stacking
    duplicates.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_rehabtriage", False):
            logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler._rehabtriage = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)
    return logger

"""Logging helpers: one logger hierarchy rooted at ``wastetrack``."""

import logging
from typing import Optional

ROOT_LOGGER_NAME = "wastetrack"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger inside the ``wastetrack`` hierarchy.

    Module names that already start with ``wastetrack`` are used as-is, so
    ``get_logger(__name__)`` is the usual call.
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Install a single stream handler on the root ``wastetrack`` logger."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    if not any(getattr(h, "_wastetrack_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._wastetrack_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger

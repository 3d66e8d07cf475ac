"""Project-wide logging utilities.

Provides a single logger configured lazily; applications embedding tailstream
can override handlers or levels as needed. We default to WARNING to stay quiet
unless something noteworthy happens (e.g., a watcher failing to start, a
listener raising).
"""
from __future__ import annotations

import logging
from typing import Optional

_LOGGER: Optional[logging.Logger] = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the package logger, or a child of it when ``name`` is given."""
    global _LOGGER
    if _LOGGER is None:
        logger = logging.getLogger("tailstream")
        # Only add a handler if the application hasn't configured logging.
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("[%(name)s] %(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(logging.WARNING)
        _LOGGER = logger
    if name:
        return _LOGGER.getChild(name)
    return _LOGGER

__all__ = ["get_logger"]

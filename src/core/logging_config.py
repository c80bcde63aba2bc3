"""Logging setup for processes that run the service (bot worker, scripts)."""

import logging

from src.core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = LOG_LEVEL) -> None:
    """Attach a single stream handler to the `src` logger tree."""
    root = logging.getLogger("src")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

"""Logging setup shared by the web app and the seed script."""
from __future__ import annotations

import logging

from settings import settings


def configure_logging(level: str | None = None) -> None:
    """Initialize basic logging with a shared format and log level.

    The level can be provided directly or through the ``LOG_LEVEL`` setting
    (defaults to ``INFO``).
    """

    resolved_level = (level or settings.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

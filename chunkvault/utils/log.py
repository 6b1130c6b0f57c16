"""Logging configuration for the command line entry point."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def configure_logging(level: str = "WARNING") -> None:
    numeric_level: int = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)

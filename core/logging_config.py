"""
core/logging_config.py
Root logger setup for processes that embed the strategy core.

Library modules only ever call logging.getLogger(__name__); the host process
calls configure_logging() once at startup.
"""

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Apply a single pipe-delimited format; unknown level names fall back to INFO."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

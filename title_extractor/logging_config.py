"""
Logging setup for the title extractor.

Usage:
    from title_extractor.logging_config import setup_logging
    setup_logging()
    logger = logging.getLogger(__name__)
"""
import logging
import sys
from typing import Optional

from .config import LOG_LEVEL

_configured = False


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the package logger once (idempotent)."""
    global _configured

    root = logging.getLogger("title_extractor")
    root.setLevel((level or LOG_LEVEL).upper())
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))
    root.addHandler(handler)
    root.propagate = False
    _configured = True

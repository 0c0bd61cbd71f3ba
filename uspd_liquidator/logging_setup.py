"""Logging configuration for the liquidator process."""
from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
_NOISY_LOGGERS = ("aiohttp", "web3", "urllib3")


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger.

    Unknown level names fall back to INFO. Third-party HTTP and RPC loggers
    are capped at WARNING.
    """
    numeric = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

"""Logging configuration for the CLI."""
from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_QUIET_LOGGERS = ("aiohttp", "asyncio")


class _CliHandler(logging.StreamHandler):
    """Marker type so repeated configuration replaces only our own handler."""


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging.

    Unknown level names fall back to INFO. Noisy third-party loggers are kept
    at WARNING regardless of the requested level.
    """
    resolved = logging.getLevelName(level.upper()) if level else logging.INFO
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, _CliHandler):
            root.removeHandler(handler)

    handler = _CliHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(resolved)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

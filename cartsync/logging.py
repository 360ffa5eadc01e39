"""
Logging setup for cartsync.

Every module logs through a child of the ``cartsync`` logger:

    from cartsync.logging import get_logger
    logger = get_logger(__name__)
    logger.warning("Guest cart write failed for profile %s", sanitize_id_for_logging(pid))

User ids, product ids and server text are untrusted; pass them through
the sanitizers before they reach a log line.
"""

import logging
import sys
from functools import cache

from cartsync import config

PACKAGE_LOGGER = "cartsync"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
COMPACT_FORMAT = "%(levelname)s - %(name)s - %(message)s"

# Transport chatter: one line per request is too much for a cart UI
_NOISY_LOGGERS = ("httpx", "httpcore", "upstash_redis")

_CONTROL_CHARS = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t", "\x00": None})


def configure_logging(level: str | None = None, compact: bool | None = None) -> logging.Logger:
    """
    Attach a stdout handler to the package logger.

    Safe to call more than once; an already configured logger only has
    its level updated. Defaults come from LOG_LEVEL and CARTSYNC_ENV.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    resolved_level = getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO)
    package_logger.setLevel(resolved_level)

    if not package_logger.handlers:
        if compact is None:
            compact = config.CARTSYNC_ENV == "production"
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(COMPACT_FORMAT if compact else DETAILED_FORMAT))
        package_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return package_logger


configure_logging()


@cache
def get_logger(name: str) -> logging.Logger:
    """Logger for a module; names outside the package are nested under it."""
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def sanitize_id_for_logging(id_value: str | None) -> str:
    """First 8 characters of an id with control characters escaped, or "N/A"."""
    if not id_value:
        return "N/A"
    return str(id_value).translate(_CONTROL_CHARS)[:8]


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    """Escape control characters in free text and cut it at max_length."""
    if not value:
        return "N/A"
    safe_value = str(value).translate(_CONTROL_CHARS)
    if len(safe_value) <= max_length:
        return safe_value
    return safe_value[:max_length] + "..."


__all__ = [
    "configure_logging",
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]

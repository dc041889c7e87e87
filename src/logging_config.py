"""Logging setup for the BlockPilot client.

Everything goes to stderr so log lines never interleave with the chat
transcript the CLI prints on stdout.
"""

import logging
import sys
from typing import Literal

from src.settings import get_settings

LOG_FORMAT = "%(levelname)s | %(name)s | %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s %(levelname)s | %(name)s | %(message)s"

# HTTP and event-loop libraries log every request and poll tick
NOISY_LOGGERS = [
    "httpcore",
    "httpx",
    "asyncio",
    "urllib3",
]


def suppress_noisy_loggers(level: int = logging.WARNING) -> None:
    """Hold third-party loggers at ``level`` and drop handlers they installed."""
    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(level)
        noisy.handlers.clear()


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
) -> None:
    """Install the stderr handler and set client log levels.

    Args:
        level: Override for ``settings.log_level``. At DEBUG the format
            gains timestamps, which helps when following poll intervals.
    """
    settings = get_settings()
    log_level = level or settings.log_level
    numeric = getattr(logging, log_level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric)
    handler.setFormatter(
        logging.Formatter(
            DEBUG_LOG_FORMAT if numeric <= logging.DEBUG else LOG_FORMAT,
            datefmt="%H:%M:%S",
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    logging.getLogger("src").setLevel(numeric)
    suppress_noisy_loggers()
